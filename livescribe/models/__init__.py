"""Data models for the LiveScribe application."""

from .audio import AudioStats
from .events import AudioEvent, ChannelEvent, ChannelEventKind, TranscriptEvent
from .latency import LatencyStats
from .session import SessionConfig, SessionState

__all__ = [
    "AudioStats",
    "AudioEvent",
    "ChannelEvent",
    "ChannelEventKind",
    "TranscriptEvent",
    "LatencyStats",
    "SessionConfig",
    "SessionState",
]
