"""Per-utterance processing-time tracking."""

import logging
from collections import deque
from typing import Deque, List, Optional

from ..models.latency import LatencyStats

logger = logging.getLogger(__name__)


class LatencyTracker:
    """Running statistics over per-utterance processing times.

    Only positive durations are recorded: a zero or negative duration means
    the utterance was not measurable (its first and final event arrived
    together) and is discarded without touching the totals.
    """

    def __init__(self, max_samples: Optional[int] = None):
        """Initialize tracker.

        Args:
            max_samples: Maximum number of raw samples to retain. Older samples
                are evicted once the cap is reached; count and total stay exact.
        """
        self._samples: Deque[float] = deque(maxlen=max_samples)
        self.total_ms: float = 0
        self.count = 0
        self._min_ms: Optional[float] = None
        self._max_ms: Optional[float] = None

    def record(self, duration_ms: float) -> bool:
        """Record one utterance processing time.

        Args:
            duration_ms: Processing time in milliseconds

        Returns:
            True if the duration was recorded, False if it was discarded
        """
        if duration_ms <= 0:
            logger.debug(f"Discarding non-positive processing time: {duration_ms}ms")
            return False

        self._samples.append(duration_ms)
        self.total_ms += duration_ms
        self.count += 1
        if self._min_ms is None or duration_ms < self._min_ms:
            self._min_ms = duration_ms
        if self._max_ms is None or duration_ms > self._max_ms:
            self._max_ms = duration_ms
        return True

    def average(self) -> float:
        """Average processing time in milliseconds, 0.0 when nothing was recorded."""
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count

    @property
    def samples(self) -> List[float]:
        """Retained raw samples, oldest first."""
        return list(self._samples)

    def get_stats(self) -> LatencyStats:
        """Get a snapshot of the current statistics."""
        return LatencyStats(
            count=self.count,
            total_ms=self.total_ms,
            average_ms=self.average(),
            min_ms=self._min_ms,
            max_ms=self._max_ms,
            last_ms=self._samples[-1] if self._samples else None,
        )

    def reset(self) -> None:
        """Forget all recorded durations."""
        self._samples.clear()
        self.total_ms = 0
        self.count = 0
        self._min_ms = None
        self._max_ms = None
