"""High level orchestration for the farm simulation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from ..activity_log import ActivityLog, ensure_activity_log
from ..errors import (
    FirmwareInstalledError,
    InsufficientCreditsError,
    PurchaseError,
    TickInProgressError,
    UnknownJobError,
    UpgradeCapError,
)
from ..events import Destroyed, EventBus, JobCancelled, JobExpired, JobPosted, LifecycleEvent, ensure_event_bus
from ..runtime.automation import AutomationScheduler, Suggestion, assign_job, ensure_automation_config
from ..runtime.config import STORAGE_EXPANSION_UNITS
from ..runtime.economy import (
    COOLING_KIT,
    DAEMON_FIRMWARE,
    HARDENING_KIT,
    INSTRUCTION_MICROCODE,
    STORAGE_EXPANSION,
    THERMAL_PASTE,
    EconomyTick,
    accrue,
    check_daemon_unlock,
    credit_completions,
    ensure_economy_config,
    ensure_economy_ledger,
)
from ..runtime.reliability import ReliabilityEngine, ensure_reliability_config
from ..runtime.rng_service import RandomSource, ensure_rng_service
from ..runtime.telemetry import Metrics, ensure_metrics
from ..world.jobs import Job, ensure_job_spawner
from ..world.processors import (
    DaemonMode,
    DaemonPenalty,
    JobWork,
    Processor,
    ProcessorStatus,
    cycle_daemon_mode,
    install_daemon_firmware,
    upgrade_cooling,
    upgrade_hardening,
)
from ..world.state import FarmState
from ..world.templates import (
    ProcessorModel,
    instantiate,
    replace_model,
    replace_unit,
    replaceable_units,
    replacement_cost,
)
from ..world.tunables import ensure_tunables
from .scheduler import Phase, SimulationClock, SimulationScheduler, TickMetrics


@dataclass(frozen=True)
class TickReport:
    tick: int
    events: Tuple[LifecycleEvent, ...]
    credits_delta: float
    data_delta: int
    power_cost: float
    upkeep: float
    passive_income: float
    earned: float = 0.0
    metrics: Optional[TickMetrics] = None

    def of_kind(self, kind: str) -> List[LifecycleEvent]:
        return [event for event in self.events if event.kind == kind]


@dataclass
class SimulationEngine:
    """Container wiring together the scheduler and the farm subsystems."""

    state: FarmState = field(default_factory=FarmState)
    scheduler: SimulationScheduler = field(default_factory=SimulationScheduler)

    def __post_init__(self) -> None:
        tunables = ensure_tunables(self.state)
        tunables.validate()
        self.tunables = tunables
        self.rng: RandomSource = ensure_rng_service(self.state)
        self.metrics: Metrics = ensure_metrics(self.state)
        self.bus: EventBus = ensure_event_bus(self.state)
        self.activity: ActivityLog = ensure_activity_log(self.state)
        self.economy = ensure_economy_ledger(self.state)
        self.economy_cfg = ensure_economy_config(self.state)
        self.spawner = ensure_job_spawner(self.state)
        self.reliability = ReliabilityEngine(
            rng=self.rng, tunables=tunables, config=ensure_reliability_config(self.state)
        )
        self.automation = AutomationScheduler(tunables=tunables, config=ensure_automation_config(self.state))
        self.scheduler.clock.current_tick = self.state.tick

        self.scheduler.register_handler(Phase.SPAWN, self._spawn_phase, name="jobs")
        self.scheduler.register_handler(Phase.RELIABILITY, self._reliability_phase, name="reliability")
        self.scheduler.register_handler(Phase.AUTOMATION, self._automation_phase, name="automation")
        self.scheduler.register_handler(Phase.ECONOMY, self._economy_phase, name="economy")
        self.scheduler.register_handler(Phase.REPORT, self._report_phase, name="report")

        self._in_tick = False
        self._events: List[LifecycleEvent] = []
        self._deferred: List[LifecycleEvent] = []
        self._economy_tick = EconomyTick()

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------
    @property
    def tick(self) -> int:
        return self.state.tick

    @property
    def bonus_levels(self) -> int:
        return 1 if self.state.paste_ticks > 0 else 0

    def step(self, dt: int = 1) -> TickReport:
        """Advance the farm by ``dt`` ticks and report what happened."""

        if self._in_tick:
            raise TickInProgressError("step() called while a tick is being processed")
        self._in_tick = True
        self._events, self._deferred = self._deferred, []
        self._economy_tick = EconomyTick()
        try:
            tick_metrics = self.scheduler.run_tick(dt)
        finally:
            self._in_tick = False
        econ = self._economy_tick
        report = TickReport(
            tick=self.state.tick,
            events=tuple(self._events),
            credits_delta=econ.credits_delta,
            data_delta=econ.data_stored,
            power_cost=econ.power_cost,
            upkeep=econ.upkeep,
            passive_income=econ.passive_income,
            earned=econ.earned,
            metrics=tick_metrics,
        )
        self.bus.drain()
        return report

    def run(self, ticks: int, *, dt: int = 1) -> List[TickReport]:
        if ticks < 0:
            raise ValueError("ticks must be non-negative")
        return [self.step(dt) for _ in range(ticks)]

    def _spawn_phase(self, clock: SimulationClock) -> None:
        tick = clock.current_tick
        self.state.tick = tick
        for job in self.state.jobs.expire(tick):
            self._events.append(JobExpired(tick=tick, job_id=job.job_id))
        posted = self.spawner.advance(
            self.state.jobs,
            self.rng,
            tick=tick,
            dt=clock.last_dt,
            unlocked_tags=self.state.unlocked_tags,
            supported=self.state.roster.supported_tags(),
        )
        for job in posted:
            self._events.append(JobPosted(tick=tick, job_id=job.job_id, tags=tuple(sorted(job.tags))))

    def _reliability_phase(self, clock: SimulationClock) -> None:
        events = self.reliability.run(
            self.state.roster, tick=clock.current_tick, dt=clock.last_dt, bonus_levels=self.bonus_levels
        )
        # destroyed units stop costing upkeep from the tick they fail
        for event in events:
            if isinstance(event, Destroyed) and event.proc_id in self.state.roster:
                self.state.roster.retire(event.proc_id)
                self.automation.forget(event.proc_id)
        self._events.extend(events)

    def _automation_phase(self, clock: SimulationClock) -> None:
        self._events.extend(
            self.automation.run(
                self.state.roster, self.state.jobs, tick=clock.current_tick, bonus_levels=self.bonus_levels
            )
        )

    def _economy_phase(self, clock: SimulationClock) -> None:
        earned, stored, overflow = credit_completions(self._events, self.economy, self.state.storage)
        self._events.extend(overflow)
        accrued = accrue(
            self.state.roster,
            self.state.storage,
            self.economy,
            self.tunables,
            self.economy_cfg,
            dt=clock.last_dt,
        )
        self._economy_tick = replace(accrued, earned=earned, data_stored=stored)
        unlocked = check_daemon_unlock(self.state.roster, self.economy, self.economy_cfg, tick=clock.current_tick)
        if unlocked is not None:
            self.state.template = replace(self.state.template, daemon_unlocked=True)
            self._events.append(unlocked)

    def _report_phase(self, clock: SimulationClock) -> None:
        self.state.paste_ticks = max(0, self.state.paste_ticks - clock.last_dt)
        self.state.roster.check_invariants()

        for event in self._events:
            self.metrics.inc(f"events.{event.kind.lower()}")
            payout = getattr(event, "payout", None)
            if payout is not None:
                self.metrics.topk_add("jobs.top_payouts", event.job_id, payout, {"tick": event.tick})
        self.metrics.set_gauge("economy.credits", round(self.economy.credits, 6))
        self.metrics.set_gauge("storage.stored", self.state.storage.stored)
        self.metrics.set_gauge("jobs.queued", len(self.state.jobs))
        self.metrics.set_gauge("roster.running", len(self.state.roster.running()))
        self.bus.publish_all(self._events)
        self.activity.record_all(self._events)

    # ------------------------------------------------------------------
    # Player commands; only valid between ticks
    # ------------------------------------------------------------------
    def _guard(self) -> None:
        if self._in_tick:
            raise TickInProgressError("state cannot be changed while a tick is being processed")

    def post_job(self, job: Job) -> bool:
        self._guard()
        return self.state.jobs.append(job)

    def cancel_job(self, job_id: str) -> Job:
        """Drop a queued job, or abandon it on the unit that is running it.

        The cancellation is reported with the next tick's events.
        """

        self._guard()
        if job_id in self.state.jobs:
            job = self.state.jobs.remove(job_id)
            self._deferred.append(JobCancelled(tick=self.state.tick, job_id=job_id))
            return job
        for proc in self.state.roster.running():
            if proc.job is not None and proc.job.job_id == job_id:
                job = proc.detach(ProcessorStatus.IDLE)
                self.metrics.inc("jobs.cancelled")
                self._deferred.append(JobCancelled(tick=self.state.tick, job_id=job_id, proc_id=proc.instance_id))
                return job
        raise UnknownJobError(job_id)

    def assign_job(self, proc_id: str, job_id: str) -> JobWork:
        self._guard()
        work = assign_job(self.state.roster, self.state.jobs, proc_id, job_id, tick=self.state.tick)
        self.automation.forget(proc_id)
        return work

    def suggestion_for(self, proc_id: str) -> Optional[Suggestion]:
        return self.automation.suggestions.get(proc_id)

    def accept_suggestion(self, proc_id: str) -> JobWork:
        self._guard()
        return self.automation.accept_suggestion(
            self.state.roster, self.state.jobs, proc_id, tick=self.state.tick
        )

    def cycle_daemon_mode(self, proc_id: str) -> DaemonMode:
        self._guard()
        mode = cycle_daemon_mode(self.state.roster.require(proc_id))
        self.automation.forget(proc_id)
        return mode

    def install_daemon_firmware(self, proc_id: str) -> DaemonPenalty:
        """Unlock the daemon on one unit; the price rises with its priority."""

        self._guard()
        proc = self.state.roster.require(proc_id)
        if proc.daemon_unlocked:
            raise FirmwareInstalledError(proc_id)
        self.economy.purchase(DAEMON_FIRMWARE, steps=max(proc.daemon_priority, 0))
        return install_daemon_firmware(proc)

    def upgrade_cooling(self, proc_id: str) -> int:
        self._guard()
        proc = self.state.roster.require(proc_id)
        if proc.cooling_level >= proc.cooling_cap:
            raise UpgradeCapError(proc_id, "cooling", proc.cooling_level + 1, proc.cooling_cap)
        self.economy.purchase(COOLING_KIT, steps=proc.cooling_level)
        return upgrade_cooling(proc)

    def upgrade_hardening(self, proc_id: str) -> int:
        self._guard()
        proc = self.state.roster.require(proc_id)
        if proc.hardening_level >= proc.hardening_cap:
            raise UpgradeCapError(proc_id, "hardening", proc.hardening_level + 1, proc.hardening_cap)
        self.economy.purchase(HARDENING_KIT, steps=proc.hardening_level)
        return upgrade_hardening(proc)

    def unlock_instruction(self, tag: str) -> int:
        """Buy microcode for ``tag`` once; every current unit learns it."""

        self._guard()
        if tag in self.state.unlocked_tags:
            raise PurchaseError(tag, "instruction microcode already installed")
        self.economy.purchase(INSTRUCTION_MICROCODE)
        self.state.unlocked_tags.append(tag)
        return self.state.roster.unlock_instruction_tag(tag)

    def apply_thermal_paste(self, ticks: int) -> int:
        """Grant +1 effective cooling level to every unit for ``ticks`` ticks."""

        self._guard()
        if ticks <= 0:
            raise ValueError("ticks must be positive")
        self.economy.purchase(THERMAL_PASTE)
        self.state.paste_ticks = max(self.state.paste_ticks, ticks)
        return self.state.paste_ticks

    def expand_storage(self, extra: int = STORAGE_EXPANSION_UNITS) -> int:
        self._guard()
        if extra <= 0:
            raise ValueError("extra capacity must be positive")
        self.economy.purchase(STORAGE_EXPANSION)
        self.state.storage.expand(extra)
        return self.state.storage.capacity

    def purchase_processor(self, model: ProcessorModel) -> Processor:
        self._guard()
        self.economy.charge(model.purchase_cost)
        proc = instantiate(model, self.state.next_instance_id(), self.state.template)
        return self.state.roster.add(proc)

    def replace_processor(self, proc_id: str, model: ProcessorModel, *, keep_upgrades: bool = False) -> Processor:
        """Swap a burnt-out or destroyed unit for a fresh one at the replacement price."""

        self._guard()
        cost = replacement_cost(model)
        if cost > self.economy.credits:
            raise InsufficientCreditsError(cost, self.economy.credits)
        fresh = replace_unit(
            self.state.roster,
            proc_id,
            model,
            new_id=self.state.next_instance_id(),
            keep_upgrades=keep_upgrades,
        )
        self.economy.charge(cost)
        self.automation.forget(proc_id)
        return fresh

    def replace_model_fleet(self, model: ProcessorModel, *, keep_upgrades: bool = False) -> List[Processor]:
        """Replace every burnt-out or destroyed unit of ``model`` for the summed price."""

        self._guard()
        targets = replaceable_units(self.state.roster, model.name)
        cost = replacement_cost(model) * len(targets)
        if targets and cost > self.economy.credits:
            raise InsufficientCreditsError(cost, self.economy.credits)
        fresh = replace_model(
            self.state.roster,
            model,
            keep_upgrades=keep_upgrades,
            new_ids=(self.state.next_instance_id() for _ in targets),
        )
        self.economy.charge(cost)
        for proc_id in targets:
            self.automation.forget(proc_id)
        return fresh


def build_engine(state: FarmState, *, rng: Optional[RandomSource] = None) -> SimulationEngine:
    """Create an engine for ``state``, optionally injecting a random source."""

    if rng is not None:
        state.rng_service = rng
    return SimulationEngine(state=state)


__all__ = ["SimulationEngine", "TickReport", "build_engine"]
