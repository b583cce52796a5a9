"""Domain models for recorded playtime."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

BUCKET_SECONDS = 3600


def bucket_of(timestamp: float) -> int:
    """Return the hour bucket that contains ``timestamp`` (unix seconds)."""
    return int(timestamp // BUCKET_SECONDS)


class EventKind(enum.Enum):
    """Lifecycle markers written to the event journal."""

    RUNNING = "running"
    STARTED = "started"
    STOPPED = "stopped"
    SUSPENDED = "suspended"
    RESUMED = "resumed"

    @property
    def code(self) -> int:
        return _KIND_TO_CODE[self]

    @classmethod
    def from_code(cls, code: int) -> "EventKind":
        try:
            return _CODE_TO_KIND[code]
        except KeyError:
            raise ValueError(f"Unknown event kind code: {code}") from None

    @property
    def is_heartbeat(self) -> bool:
        """Heartbeat rows are replaced wholesale on every write."""
        return self is EventKind.RUNNING

    @property
    def is_broadcast(self) -> bool:
        """Broadcast kinds are written once per running app."""
        return self in (EventKind.RUNNING, EventKind.SUSPENDED, EventKind.RESUMED)


# Stored in the ``events.event_kind`` column; never renumber.
_KIND_TO_CODE: dict[EventKind, int] = {
    EventKind.RUNNING: 0,
    EventKind.STARTED: 1,
    EventKind.STOPPED: 2,
    EventKind.SUSPENDED: 3,
    EventKind.RESUMED: 4,
}
_CODE_TO_KIND: dict[int, EventKind] = {code: kind for kind, code in _KIND_TO_CODE.items()}


@dataclass(slots=True)
class EventRecord:
    """A single row of the event journal."""

    timestamp: int
    app_id: int
    kind: EventKind
    alias: Optional[str] = None


@dataclass(slots=True)
class BackupGroup:
    """Events displaced by a backward clock jump."""

    backup_id: int
    start_ts: int
    end_ts: int
    event_count: int = 0
