"""Real-time meeting room server.

Rooms, presence, chat history, WebRTC signaling relay and streaming
speech-to-text fan-out over a single WebSocket per client.
"""

from .config import Settings
from .context import MeetingContext
from .coordinator import MeetingCoordinator

__all__ = ["Settings", "MeetingContext", "MeetingCoordinator"]
