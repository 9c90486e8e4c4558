"""WebRTC signaling relay and voice-call presence."""

from .relay import SignalingRelay
from .voice import VoicePresence

__all__ = ["SignalingRelay", "VoicePresence"]
