"""Room state: registry, participant directory and message log."""

from .models import (
    ONLINE,
    OFFLINE,
    USER_MESSAGE,
    VOICE_TRANSCRIPTION_MESSAGE,
    Room,
    RoomSettings,
    Participant,
    FileAttachment,
    Message,
)

__all__ = [
    "ONLINE",
    "OFFLINE",
    "USER_MESSAGE",
    "VOICE_TRANSCRIPTION_MESSAGE",
    "Room",
    "RoomSettings",
    "Participant",
    "FileAttachment",
    "Message",
]
