"""
Append-only time series of reduced samples.

Backfilled history is appended in full before any live sample, and live
samples arrive in feed order, so the buffer is time-ordered in practice.
Ordering is not enforced: window() scans instead of bisecting.
"""

from __future__ import annotations

from ..types import Sample


class SeriesStore:
    """
    Owns the sample sequence for the process lifetime.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = ('_samples',)

    def __init__(self) -> None:
        self._samples: list[Sample] = []

    def append(self, sample: Sample) -> None:
        """Append one sample. No ordering check, no capacity bound."""
        self._samples.append(sample)

    def extend(self, samples: list[Sample]) -> None:
        self._samples.extend(samples)

    def window(self, since_ms: int) -> list[Sample]:
        """Every sample with timestamp >= since_ms, in stored order. O(n)."""
        return [s for s in self._samples if s.timestamp >= since_ms]

    def latest(self) -> Sample | None:
        return self._samples[-1] if self._samples else None

    def __len__(self) -> int:
        return len(self._samples)
