"""Periodic timers aligned to wall-clock multiples of their period."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

Callback = Callable[[float], None]


def next_aligned(last_fire: float, now: float, period: float) -> float:
    """Return the first multiple of ``period`` that is > ``last_fire`` and >= ``now``."""
    boundary = math.ceil(now / period) * period
    if boundary <= last_fire:
        boundary = (math.floor(last_fire / period) + 1) * period
    return boundary


@dataclass(slots=True)
class Timer:
    period: float
    callback: Callback
    deadline: float

    def check(self, now: float) -> None:
        if self.deadline > now:
            return
        self.callback(now)
        self.deadline += self.period
        if self.deadline <= now:
            skipped = int((now - self.deadline) // self.period) + 1
            logger.warning(
                "Timer %ss fell behind; skipped %d period(s).", self.period, skipped
            )
            self.deadline = next_aligned(now, now, self.period)


class AlignedScheduler:
    """Runs callbacks on fixed multiples of their periods since the unix epoch.

    Callbacks that are due in the same tick run in registration order. A timer
    that fell behind by several periods fires once and then resumes from the
    next boundary after ``now``.
    """

    def __init__(self, timers: list[Timer]) -> None:
        if not timers:
            raise ValueError("At least one timer is required.")
        self._timers = timers
        self._next_deadline = min(timer.deadline for timer in timers)

    @classmethod
    def build(
        cls, params: Iterable[tuple[float, Callback]], now: float
    ) -> "AlignedScheduler":
        timers: list[Timer] = []
        for period, callback in params:
            if period <= 0:
                raise ValueError(f"Timer period must be positive, got {period}")
            timers.append(
                Timer(
                    period=period,
                    callback=callback,
                    deadline=next_aligned(now - period, now, period),
                )
            )
        return cls(timers)

    def next_deadline(self) -> float:
        return self._next_deadline

    def tick(self, now: float) -> None:
        for timer in self._timers:
            timer.check(now)
        self._next_deadline = min(timer.deadline for timer in self._timers)
