"""Lifecycle events and the bounded in-process event bus.

Each tick produces a list of typed lifecycle events (completions, burnouts,
destruction, automation decisions).  The engine publishes them to an
:class:`EventBus` which keeps a bounded ring of recent envelopes and delivers
pending ones to subscribers, in sequence order, when :meth:`EventBus.drain` is
called between ticks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Iterable, Optional, Tuple, Union


class EventKind:
    """String constants for lifecycle events."""

    JOB_POSTED = "JOB_POSTED"
    JOB_COMPLETED = "JOB_COMPLETED"
    JOB_EXPIRED = "JOB_EXPIRED"
    JOB_CANCELLED = "JOB_CANCELLED"
    BURNOUT = "BURNOUT"
    DESTROYED = "DESTROYED"
    AUTO_ASSIGNED = "AUTO_ASSIGNED"
    ASSIST_SUGGESTED = "ASSIST_SUGGESTED"
    STORAGE_OVERFLOW = "STORAGE_OVERFLOW"
    DAEMON_UNLOCKED = "DAEMON_UNLOCKED"


@dataclass(frozen=True, slots=True)
class JobPosted:
    kind: ClassVar[str] = EventKind.JOB_POSTED
    tick: int
    job_id: str
    tags: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class JobCompleted:
    kind: ClassVar[str] = EventKind.JOB_COMPLETED
    tick: int
    job_id: str
    proc_id: str
    payout: float
    data_units: int
    quality: int


@dataclass(frozen=True, slots=True)
class JobExpired:
    kind: ClassVar[str] = EventKind.JOB_EXPIRED
    tick: int
    job_id: str
    proc_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class JobCancelled:
    kind: ClassVar[str] = EventKind.JOB_CANCELLED
    tick: int
    job_id: str
    proc_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Burnout:
    kind: ClassVar[str] = EventKind.BURNOUT
    tick: int
    proc_id: str
    job_id: str


@dataclass(frozen=True, slots=True)
class Destroyed:
    kind: ClassVar[str] = EventKind.DESTROYED
    tick: int
    proc_id: str
    job_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AutoAssigned:
    kind: ClassVar[str] = EventKind.AUTO_ASSIGNED
    tick: int
    proc_id: str
    job_id: str
    eta: float


@dataclass(frozen=True, slots=True)
class AssistSuggested:
    kind: ClassVar[str] = EventKind.ASSIST_SUGGESTED
    tick: int
    proc_id: str
    job_id: str
    eta: float
    reliability: float
    heat: float


@dataclass(frozen=True, slots=True)
class StorageOverflow:
    kind: ClassVar[str] = EventKind.STORAGE_OVERFLOW
    tick: int
    job_id: str
    lost: int


@dataclass(frozen=True, slots=True)
class DaemonUnlocked:
    kind: ClassVar[str] = EventKind.DAEMON_UNLOCKED
    tick: int
    units: int


LifecycleEvent = Union[
    JobPosted,
    JobCompleted,
    JobExpired,
    JobCancelled,
    Burnout,
    Destroyed,
    AutoAssigned,
    AssistSuggested,
    StorageOverflow,
    DaemonUnlocked,
]


@dataclass(frozen=True, slots=True)
class Envelope:
    seq: int
    event: LifecycleEvent

    @property
    def kind(self) -> str:
        return self.event.kind

    @property
    def tick(self) -> int:
        return self.event.tick


@dataclass(slots=True)
class EventBusConfig:
    enabled: bool = True
    max_events: int = 5_000


@dataclass(slots=True)
class _Subscription:
    handler: Callable[[Envelope], None]
    kinds: frozenset[str] | None
    active: bool = True


class EventBus:
    def __init__(self, config: EventBusConfig | None = None) -> None:
        self.config = config or EventBusConfig()
        self._events: list[Envelope] = []
        self._base_seq = 0
        self._next_seq = 0
        self._pending: list[Envelope] = []
        self._subscriptions: dict[int, _Subscription] = {}
        self._next_sub_id = 1

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def publish(self, event: LifecycleEvent) -> Envelope | None:
        """Queue ``event`` for the next drain; ``None`` when the bus is disabled."""

        if not self.config.enabled:
            return None
        envelope = Envelope(seq=self._next_seq, event=event)
        self._next_seq += 1
        self._append_to_ring(envelope)
        self._pending.append(envelope)
        return envelope

    def publish_all(self, events: Iterable[LifecycleEvent]) -> None:
        for event in events:
            self.publish(event)

    def _append_to_ring(self, envelope: Envelope) -> None:
        self._events.append(envelope)
        max_events = max(1, int(self.config.max_events))
        if len(self._events) > max_events:
            overflow = len(self._events) - max_events
            del self._events[:overflow]
            self._base_seq += overflow

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------
    def subscribe(
        self, handler: Callable[[Envelope], None], *, kinds: set[str] | frozenset[str] | None = None
    ) -> int:
        sub_id = self._next_sub_id
        self._next_sub_id += 1
        self._subscriptions[sub_id] = _Subscription(handler=handler, kinds=frozenset(kinds) if kinds else None)
        return sub_id

    def unsubscribe(self, sub_id: int) -> None:
        if sub_id in self._subscriptions:
            self._subscriptions[sub_id].active = False
            del self._subscriptions[sub_id]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def drain(self) -> list[Envelope]:
        delivered: list[Envelope] = []
        pending_now = list(self._pending)
        self._pending.clear()
        for envelope in pending_now:
            delivered.append(envelope)
            for subscription in list(self._subscriptions.values()):
                if not subscription.active:
                    continue
                if subscription.kinds is not None and envelope.kind not in subscription.kinds:
                    continue
                subscription.handler(envelope)
        return delivered

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def get_since(self, seq: int) -> list[Envelope]:
        if seq < self._base_seq:
            seq = self._base_seq
        return list(self._events[seq - self._base_seq :])

    def latest_seq(self) -> int:
        return self._next_seq - 1 if self._next_seq > 0 else -1


def ensure_event_bus(world: Any) -> EventBus:
    cfg = getattr(world, "event_bus_cfg", None)
    if not isinstance(cfg, EventBusConfig):
        cfg = EventBusConfig()
        setattr(world, "event_bus_cfg", cfg)
    bus = getattr(world, "event_bus", None)
    if not isinstance(bus, EventBus):
        bus = EventBus(cfg)
        setattr(world, "event_bus", bus)
    return bus


__all__ = [
    "AssistSuggested",
    "AutoAssigned",
    "Burnout",
    "DaemonUnlocked",
    "Destroyed",
    "Envelope",
    "EventBus",
    "EventBusConfig",
    "EventKind",
    "JobCompleted",
    "JobCancelled",
    "JobExpired",
    "JobPosted",
    "LifecycleEvent",
    "StorageOverflow",
    "ensure_event_bus",
]
