"""Shared DTOs and errors used across the meeting room modules."""

from .errors import (
    MeetingError,
    InvalidRequest,
    Forbidden,
    UpstreamUnavailable,
    PersistenceError,
    RateLimitExceeded,
)
from .dto import (
    EventPayload,
    EVENT_PAYLOADS,
    JoinRoomRequest,
    SendMessageRequest,
    FileAttachmentPayload,
    TypingRequest,
    LeaveRoomRequest,
    EndMeetingRequest,
    VoicePresenceRequest,
    SignalRequest,
    AsrControlRequest,
    AudioChunkRequest,
)

__all__ = [
    # Errors
    "MeetingError",
    "InvalidRequest",
    "Forbidden",
    "UpstreamUnavailable",
    "PersistenceError",
    "RateLimitExceeded",
    # DTOs
    "EventPayload",
    "EVENT_PAYLOADS",
    "JoinRoomRequest",
    "SendMessageRequest",
    "FileAttachmentPayload",
    "TypingRequest",
    "LeaveRoomRequest",
    "EndMeetingRequest",
    "VoicePresenceRequest",
    "SignalRequest",
    "AsrControlRequest",
    "AudioChunkRequest",
]
