"""Latency statistics models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LatencyStats:
    """Snapshot of per-utterance processing-time statistics (milliseconds)."""
    count: int
    total_ms: float
    average_ms: float
    min_ms: Optional[float] = None
    max_ms: Optional[float] = None
    last_ms: Optional[float] = None
