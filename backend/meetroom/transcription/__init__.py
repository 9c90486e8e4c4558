"""Streaming speech-to-text sessions backed by iFlytek."""

from .iflytek import (
    IflytekProtocol,
    IatProtocol,
    RtasrProtocol,
    UpstreamEvent,
    build_protocol,
)
from .session import SessionState, TranscriptionManager, TranscriptionSession

__all__ = [
    "IflytekProtocol",
    "IatProtocol",
    "RtasrProtocol",
    "UpstreamEvent",
    "build_protocol",
    "SessionState",
    "TranscriptionManager",
    "TranscriptionSession",
]
