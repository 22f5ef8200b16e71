"""Core scheduling primitives for the farm simulation.

* A ``SimulationClock`` that counts ticks and converts them to in-game days.
* Enumeration of the canonical update phases executed each tick.
* A ``SimulationScheduler`` that executes registered callables in the fixed
  phase order and records per-handler timing.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, auto
from time import perf_counter
from typing import Callable, DefaultDict, Iterable, List, Optional, Tuple

from ..runtime.config import TICKS_PER_DAY

TickHandler = Callable[["SimulationClock"], None]


@dataclass(frozen=True)
class HandlerMetrics:
    """Execution metadata captured for each handler invocation."""

    name: str
    phase: "Phase"
    cadence: int
    duration_ms: float


@dataclass(frozen=True)
class PhaseMetrics:
    phase: "Phase"
    handlers: Tuple[HandlerMetrics, ...]

    @property
    def duration_ms(self) -> float:
        return sum(handler.duration_ms for handler in self.handlers)


@dataclass(frozen=True)
class TickMetrics:
    """Summary metrics for a completed tick."""

    tick: int
    phases: Tuple[PhaseMetrics, ...]


@dataclass(slots=True)
class _HandlerRegistration:
    handler: TickHandler
    cadence: int
    name: str
    order: int


class Phase(Enum):
    """Simulation phases executed in fixed order every tick."""

    SPAWN = auto()
    RELIABILITY = auto()
    AUTOMATION = auto()
    ECONOMY = auto()
    REPORT = auto()

    @classmethod
    def ordered(cls) -> Iterable["Phase"]:
        """Return phases in canonical execution order."""

        return (cls.SPAWN, cls.RELIABILITY, cls.AUTOMATION, cls.ECONOMY, cls.REPORT)


@dataclass(slots=True)
class SimulationClock:
    """Track elapsed ticks; a day is ``ticks_per_day`` ticks."""

    ticks_per_day: int = TICKS_PER_DAY
    current_tick: int = 0
    last_dt: int = 1

    def advance(self, ticks: int = 1) -> None:
        if ticks < 0:
            raise ValueError("ticks must be non-negative")
        self.current_tick += ticks
        self.last_dt = ticks

    @property
    def current_day(self) -> int:
        return self.current_tick // self.ticks_per_day

    def ticks_until_day_boundary(self) -> int:
        return self.ticks_per_day - (self.current_tick % self.ticks_per_day)

    def copy(self) -> "SimulationClock":
        return SimulationClock(
            ticks_per_day=self.ticks_per_day,
            current_tick=self.current_tick,
            last_dt=self.last_dt,
        )


@dataclass
class SimulationScheduler:
    """Execute registered handlers phase by phase."""

    clock: SimulationClock = field(default_factory=SimulationClock)
    phase_handlers: DefaultDict[Phase, List[_HandlerRegistration]] = field(
        default_factory=lambda: defaultdict(list)
    )
    _registration_counter: int = 0
    _last_tick_metrics: Optional[TickMetrics] = None

    def register_handler(
        self,
        phase: Phase,
        handler: TickHandler,
        *,
        cadence: int = 1,
        name: Optional[str] = None,
    ) -> None:
        """Attach ``handler`` to ``phase``; ``cadence`` of 1 runs it every tick.

        Handlers in the same phase run in registration order.
        """

        if cadence <= 0:
            raise ValueError("cadence must be positive")
        self._registration_counter += 1
        self.phase_handlers[phase].append(
            _HandlerRegistration(
                handler=handler,
                cadence=cadence,
                name=name or getattr(handler, "__name__", f"handler_{self._registration_counter}"),
                order=self._registration_counter,
            )
        )

    def run_tick(self, dt: int = 1) -> TickMetrics:
        """Advance the clock by ``dt`` ticks and execute every phase once."""

        if dt <= 0:
            raise ValueError("dt must be positive")
        # Advance first so that handlers observe the new tick when executed.
        self.clock.advance(dt)
        snapshot = self.clock.copy()
        phase_metrics = [self._execute_phase(phase, snapshot) for phase in Phase.ordered()]
        self._last_tick_metrics = TickMetrics(tick=snapshot.current_tick, phases=tuple(phase_metrics))
        return self._last_tick_metrics

    def run(self, ticks: int) -> None:
        if ticks < 0:
            raise ValueError("ticks must be non-negative")
        for _ in range(ticks):
            self.run_tick()

    def last_tick_metrics(self) -> Optional[TickMetrics]:
        return self._last_tick_metrics

    def _execute_phase(self, phase: Phase, snapshot: SimulationClock) -> PhaseMetrics:
        due = [
            registration
            for registration in sorted(self.phase_handlers.get(phase, ()), key=lambda reg: reg.order)
            if snapshot.current_tick % registration.cadence == 0
        ]
        handler_metrics: List[HandlerMetrics] = []
        for registration in due:
            start = perf_counter()
            registration.handler(snapshot)
            end = perf_counter()
            handler_metrics.append(
                HandlerMetrics(
                    name=registration.name,
                    phase=phase,
                    cadence=registration.cadence,
                    duration_ms=(end - start) * 1000.0,
                )
            )
        return PhaseMetrics(phase=phase, handlers=tuple(handler_metrics))


__all__ = [
    "HandlerMetrics",
    "PhaseMetrics",
    "Phase",
    "SimulationClock",
    "SimulationScheduler",
    "TickHandler",
    "TickMetrics",
]
