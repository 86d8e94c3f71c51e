"""Session-related data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SessionState(Enum):
    """Lifecycle of a streaming session. IDLE is initial, CLOSED is terminal."""
    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    CLOSING = "closing"
    CLOSED = "closed"


class SessionConfig(BaseModel):
    """Capture and recognition settings for one streaming session.

    Built once before the session starts and never mutated. Values are only
    checked for presence and type; each field maps directly onto a
    recognition request parameter or the capture stream format.
    """
    model_config = ConfigDict(frozen=True, strict=True, extra="forbid")

    sample_rate: int
    channels: int = 1
    encoding: str = "linear16"
    model: str = "nova-2"
    smart_format: bool = True
    punctuate: bool = False
    interim_results: bool = True
    endpointing_ms: int = 200
    utterance_end_ms: int = 1000
