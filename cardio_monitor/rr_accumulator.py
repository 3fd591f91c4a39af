"""
RR-interval accumulation.

Turns successive beat timestamps into validated inter-beat (RR) intervals
held in a fixed-capacity FIFO window.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Iterator, Optional, Tuple

import numpy as np

from cardio_monitor.config import DEFAULT_CONFIG, PipelineConfig

logger = logging.getLogger(__name__)


class RRWindow:
    """Bounded ring buffer of RR intervals (ms); the oldest value is evicted when full."""

    def __init__(self, capacity: int = DEFAULT_CONFIG.rr_capacity) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._data: Deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._data.maxlen

    def append(self, interval_ms: float) -> None:
        self._data.append(float(interval_ms))

    def clear(self) -> None:
        self._data.clear()

    def snapshot(self) -> Tuple[float, ...]:
        """Immutable copy of the window, oldest first."""
        return tuple(self._data)

    def as_array(self) -> np.ndarray:
        return np.asarray(self._data, dtype=np.float64)

    @property
    def is_full(self) -> bool:
        return len(self._data) == self._data.maxlen

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[float]:
        return iter(tuple(self._data))


class RRAccumulator:
    """
    Converts beat timestamps into RR intervals.

    Intervals outside ``[rr_min_ms, rr_max_ms]`` are discarded as noise.  With
    ``rr_advance_on_reject`` the rejected beat still becomes the new
    reference, so a missed detection costs one interval rather than two.
    """

    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.window = RRWindow(config.rr_capacity)
        self.last_beat_ms: Optional[float] = None
        self.rejected = 0

    def add_beat(self, timestamp_ms: float) -> Optional[float]:
        """
        Register a beat.  Returns the accepted interval in ms, or *None* when
        this is the first beat or the interval was rejected.
        """
        if self.last_beat_ms is None:
            self.last_beat_ms = timestamp_ms
            return None
        if timestamp_ms <= self.last_beat_ms:
            logger.debug("Ignoring out-of-order beat at %.0f ms", timestamp_ms)
            return None

        interval = timestamp_ms - self.last_beat_ms
        if self.config.rr_min_ms <= interval <= self.config.rr_max_ms:
            self.window.append(interval)
            self.last_beat_ms = timestamp_ms
            return interval

        self.rejected += 1
        logger.debug("Rejected RR interval %.0f ms", interval)
        if self.config.rr_advance_on_reject:
            self.last_beat_ms = timestamp_ms
        return None

    def skip_beat(self, timestamp_ms: float) -> None:
        """Use *timestamp_ms* as the new reference without recording an interval."""
        if self.last_beat_ms is None or timestamp_ms > self.last_beat_ms:
            self.last_beat_ms = timestamp_ms

    def reset(self) -> None:
        self.window.clear()
        self.last_beat_ms = None
        self.rejected = 0

    def __len__(self) -> int:
        return len(self.window)
