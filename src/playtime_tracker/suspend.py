"""Suspend/resume detection from gaps between consecutive samples."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)


class SuspendGap(NamedTuple):
    suspended_at: float
    resumed_at: float

    @property
    def seconds(self) -> float:
        return self.resumed_at - self.suspended_at


class SuspendDetector:
    """Reports wall-clock gaps longer than ``threshold`` between observations.

    A gap that long means the process was not scheduled at all, typically
    because the device was suspended.
    """

    def __init__(self, threshold: timedelta) -> None:
        self.threshold = threshold
        self._last: Optional[float] = None

    def observe(self, now: float) -> Optional[SuspendGap]:
        last, self._last = self._last, now
        if last is None or now - last <= self.threshold.total_seconds():
            return None
        gap = SuspendGap(suspended_at=last, resumed_at=now)
        logger.info("Detected suspend gap of %.0fs.", gap.seconds)
        return gap
