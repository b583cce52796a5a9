"""Configuration models and helpers for the playtime tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the playtime tracker."""

    update_interval: timedelta = timedelta(seconds=1)
    commit_interval: timedelta = timedelta(seconds=60)
    suspend_threshold: timedelta = timedelta(minutes=2)
    poll_interval: timedelta = timedelta(seconds=1)
    launcher_name: str = "steam"

    def __post_init__(self) -> None:
        for name in ("update_interval", "commit_interval", "poll_interval"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be positive")
        if self.update_interval.total_seconds() % 1:
            raise ValueError("update_interval must be a whole number of seconds")

    @property
    def update_seconds(self) -> int:
        """Active seconds credited to each running app per sample."""
        return int(self.update_interval.total_seconds())

    @classmethod
    def from_intervals(
        cls,
        update_seconds: int,
        commit_seconds: int,
        suspend_minutes: float | None = None,
        launcher_name: str = "steam",
    ) -> "TrackerSettings":
        suspend = (
            suspend_minutes
            if suspend_minutes is not None
            else max(commit_seconds / 60.0, 2.0)
        )
        return cls(
            update_interval=timedelta(seconds=update_seconds),
            commit_interval=timedelta(seconds=commit_seconds),
            suspend_threshold=timedelta(minutes=suspend),
            poll_interval=timedelta(seconds=update_seconds),
            launcher_name=launcher_name,
        )
