"""Short human-readable feed of what just happened on the farm.

The engine turns each lifecycle event into an :class:`ActivityEntry` so a
front end can show the last few happenings without walking the roster.  The
feed is a fixed-size ring; older entries fall off the front.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Iterable, List, Optional

from .events import (
    AssistSuggested,
    AutoAssigned,
    Burnout,
    DaemonUnlocked,
    Destroyed,
    JobCancelled,
    JobCompleted,
    JobExpired,
    JobPosted,
    LifecycleEvent,
    StorageOverflow,
)
from .runtime.config import ACTIVITY_LOG_CAPACITY


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    tick: int
    kind: str
    message: str
    proc_id: Optional[str] = None


def describe(event: LifecycleEvent) -> str:
    """Return a one-line description of ``event``."""

    if isinstance(event, JobCompleted):
        return f"{event.proc_id} finished {event.job_id}: +{event.payout:.0f} cr, Q{event.quality}, {event.data_units} DU"
    if isinstance(event, Burnout):
        return f"{event.proc_id} burned out on {event.job_id}"
    if isinstance(event, Destroyed):
        return f"{event.proc_id} wore out and was destroyed"
    if isinstance(event, AutoAssigned):
        return f"daemon on {event.proc_id} took {event.job_id} (eta {event.eta:.0f})"
    if isinstance(event, AssistSuggested):
        return f"daemon on {event.proc_id} suggests {event.job_id} (rel {event.reliability:.1%})"
    if isinstance(event, JobExpired):
        where = f" on {event.proc_id}" if event.proc_id else ""
        return f"{event.job_id} expired{where}"
    if isinstance(event, JobCancelled):
        where = f" on {event.proc_id}" if event.proc_id else " from the board"
        return f"{event.job_id} cancelled{where}"
    if isinstance(event, JobPosted):
        return f"new {'+'.join(event.tags)} job {event.job_id}"
    if isinstance(event, StorageOverflow):
        return f"storage full: lost {event.lost} DU from {event.job_id}"
    if isinstance(event, DaemonUnlocked):
        return f"daemon firmware unlocked on {event.units} unit(s)"
    return event.kind


class ActivityLog:
    """Fixed-size activity history."""

    def __init__(self, capacity: int = ACTIVITY_LOG_CAPACITY) -> None:
        self.capacity = max(1, capacity)
        self._entries: Deque[ActivityEntry] = deque(maxlen=self.capacity)

    def record(self, event: LifecycleEvent) -> ActivityEntry:
        entry = ActivityEntry(
            tick=event.tick,
            kind=event.kind,
            message=describe(event),
            proc_id=getattr(event, "proc_id", None),
        )
        self._entries.append(entry)
        return entry

    def record_all(self, events: Iterable[LifecycleEvent]) -> None:
        for event in events:
            self.record(event)

    def __len__(self) -> int:
        return len(self._entries)

    def get_recent(
        self,
        *,
        kind: Optional[str] = None,
        proc_id: Optional[str] = None,
        limit: int = ACTIVITY_LOG_CAPACITY,
    ) -> List[ActivityEntry]:
        """Return the newest entries matching the optional filters, oldest first."""

        selected: List[ActivityEntry] = []
        for entry in reversed(self._entries):
            if kind and entry.kind != kind:
                continue
            if proc_id and entry.proc_id != proc_id:
                continue
            selected.append(entry)
            if len(selected) >= limit:
                break
        return list(reversed(selected))

    def summary(self) -> List[str]:
        return [f"[{entry.tick}] {entry.message}" for entry in self._entries]

    def clear(self) -> None:
        self._entries.clear()


def ensure_activity_log(world: Any) -> ActivityLog:
    log = getattr(world, "activity_log", None)
    if not isinstance(log, ActivityLog):
        log = ActivityLog()
        setattr(world, "activity_log", log)
    return log


__all__ = ["ActivityEntry", "ActivityLog", "describe", "ensure_activity_log"]
