"""Event models exchanged between capture, recognition channel and session."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass
class AudioEvent:
    """Audio chunk event with metadata."""
    chunk_id: str
    audio_data: bytes
    timestamp: float  # Unix timestamp when chunk was captured
    sequence_number: int
    sample_rate: int = 16000
    channels: int = 1


@dataclass(frozen=True)
class TranscriptEvent:
    """One transcript result for the utterance in progress.

    `text` is the first alternative's transcript, or None when the backend
    sent no usable alternative.
    """
    text: Optional[str]
    is_final: bool
    speech_final: bool = False
    alternative_index: int = 0


class ChannelEventKind(Enum):
    """Kinds of events a recognition channel delivers."""
    READY = "ready"
    TRANSCRIPT = "transcript"
    ERROR = "error"
    CLOSED = "closed"
    OPEN_FAILED = "open_failed"


@dataclass(frozen=True)
class ChannelEvent:
    """Event emitted by a recognition channel to its listener."""
    kind: ChannelEventKind
    transcript: Optional[TranscriptEvent] = None
    error: Optional[Exception] = None

    @classmethod
    def ready(cls) -> "ChannelEvent":
        return cls(ChannelEventKind.READY)

    @classmethod
    def closed(cls) -> "ChannelEvent":
        return cls(ChannelEventKind.CLOSED)

    @classmethod
    def for_transcript(cls, transcript: TranscriptEvent) -> "ChannelEvent":
        return cls(ChannelEventKind.TRANSCRIPT, transcript=transcript)

    @classmethod
    def for_error(cls, error: Exception) -> "ChannelEvent":
        return cls(ChannelEventKind.ERROR, error=error)

    @classmethod
    def open_failed(cls, error: Exception) -> "ChannelEvent":
        return cls(ChannelEventKind.OPEN_FAILED, error=error)
