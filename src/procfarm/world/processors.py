from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from hashlib import sha256
from typing import Any, Dict, Iterator, List, Mapping, Optional

from ..errors import (
    AutomationLockedError,
    FirmwareInstalledError,
    IncompatibleInstructionError,
    ProcessorBusyError,
    ProcessorInoperativeError,
    RosterInvariantError,
    UnknownProcessorError,
    UpgradeCapError,
)
from ..runtime.config import (
    DAEMON_QUALITY_PENALTY,
    DAEMON_TIME_MULTIPLIER,
    DEFAULT_COOLING_CAP,
    DEFAULT_HARDENING_CAP,
    DEFAULT_HEAT_OUTPUT,
    DEFAULT_POWER_DRAW,
    DEFAULT_RELIABILITY,
    DEFAULT_UPKEEP,
    FIRMWARE_QUALITY_FLOOR,
    FIRMWARE_TIME_FLOOR,
    FIRMWARE_TIME_STEP,
    GENERAL_TAG,
)
from .jobs import Job


def instance_sort_key(proc_id: str) -> tuple[int, str]:
    """Order ids numerically by suffix width first, so cpu-99 precedes cpu-100."""

    return (len(proc_id), proc_id)


class DaemonMode(Enum):
    OFF = "off"
    ASSIST = "assist"
    AUTO = "auto"

    def next(self) -> "DaemonMode":
        order = (DaemonMode.OFF, DaemonMode.ASSIST, DaemonMode.AUTO)
        return order[(order.index(self) + 1) % len(order)]


class ProcessorStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    BURNT_OUT = "burnt_out"
    DESTROYED = "destroyed"


@dataclass(frozen=True, slots=True)
class DaemonPenalty:
    quality: int = DAEMON_QUALITY_PENALTY
    time_multiplier: float = DAEMON_TIME_MULTIPLIER


@dataclass(slots=True)
class JobWork:
    job: Job
    started_tick: int
    penalty: Optional[DaemonPenalty] = None
    progress: float = 0.0
    elapsed: float = 0.0


@dataclass(slots=True)
class Processor:
    instance_id: str
    model: str
    speed: float = 1.0
    quality_bias: int = 0
    instruction_set: frozenset[str] = frozenset({GENERAL_TAG})
    upkeep_cost: float = DEFAULT_UPKEEP
    power_draw_base: float = DEFAULT_POWER_DRAW
    power_draw_mod: Dict[str, float] = field(default_factory=dict)
    heat_output_base: float = DEFAULT_HEAT_OUTPUT
    reliability_base: float = DEFAULT_RELIABILITY
    cooling_level: int = 0
    cooling_cap: int = DEFAULT_COOLING_CAP
    hardening_level: int = 0
    hardening_cap: int = DEFAULT_HARDENING_CAP
    cooling_required: bool = False
    requires_cooling_min: int = 0
    finite_lifespan: bool = False
    mttf_ticks: float = 0.0
    wear: float = 0.0
    fragility: float = 0.0
    daemon_mode: DaemonMode = DaemonMode.OFF
    daemon_affinity: Dict[str, float] = field(default_factory=dict)
    daemon_penalty: DaemonPenalty = field(default_factory=DaemonPenalty)
    daemon_unlocked: bool = False
    daemon_priority: int = 0
    honor_cooling_mins: bool = True
    ignore_heat_budget: bool = False
    status: ProcessorStatus = ProcessorStatus.IDLE
    overheating: bool = False
    work: Optional[JobWork] = None
    last_heat: float = 0.0
    last_reliability: float = DEFAULT_RELIABILITY
    last_power_draw: float = 0.0

    def __post_init__(self) -> None:
        self.instruction_set = frozenset(self.instruction_set)
        if self.cooling_level > self.cooling_cap:
            raise UpgradeCapError(self.instance_id, "cooling", self.cooling_level, self.cooling_cap)
        if self.hardening_level > self.hardening_cap:
            raise UpgradeCapError(self.instance_id, "hardening", self.hardening_level, self.hardening_cap)
        self.wear = min(1.0, max(0.0, self.wear))
        self.last_reliability = self.reliability_base

    @property
    def is_idle(self) -> bool:
        return self.status is ProcessorStatus.IDLE

    @property
    def is_running(self) -> bool:
        return self.status is ProcessorStatus.RUNNING

    @property
    def is_functional(self) -> bool:
        return self.status not in (ProcessorStatus.BURNT_OUT, ProcessorStatus.DESTROYED)

    @property
    def job(self) -> Optional[Job]:
        return self.work.job if self.work is not None else None

    def supports(self, tags: frozenset[str] | str) -> bool:
        if isinstance(tags, str):
            return tags in self.instruction_set
        return tags <= self.instruction_set

    def check_assignable(self, job: Job) -> None:
        """Raise the typed failure describing why ``job`` cannot be bound here."""

        if not self.is_functional:
            raise ProcessorInoperativeError(self.instance_id, self.status.value)
        if not self.is_idle or self.work is not None:
            raise ProcessorBusyError(self.instance_id)
        missing = job.tags - self.instruction_set
        if missing:
            raise IncompatibleInstructionError(self.instance_id, missing)

    def bind(self, job: Job, *, tick: int, penalty: Optional[DaemonPenalty] = None) -> JobWork:
        self.check_assignable(job)
        self.work = JobWork(job=job, started_tick=tick, penalty=penalty)
        self.status = ProcessorStatus.RUNNING
        self.overheating = False
        return self.work

    def detach(self, status: ProcessorStatus) -> Optional[Job]:
        job = self.job
        self.work = None
        self.status = status
        self.overheating = False
        return job


def upgrade_cooling(proc: Processor) -> int:
    return set_cooling_level(proc, proc.cooling_level + 1)


def upgrade_hardening(proc: Processor) -> int:
    return set_hardening_level(proc, proc.hardening_level + 1)


def set_cooling_level(proc: Processor, level: int) -> int:
    if level < 0 or level > proc.cooling_cap:
        raise UpgradeCapError(proc.instance_id, "cooling", level, proc.cooling_cap)
    proc.cooling_level = level
    return level


def set_hardening_level(proc: Processor, level: int) -> int:
    if level < 0 or level > proc.hardening_cap:
        raise UpgradeCapError(proc.instance_id, "hardening", level, proc.hardening_cap)
    proc.hardening_level = level
    return level


def cycle_daemon_mode(proc: Processor) -> DaemonMode:
    if not proc.daemon_unlocked:
        raise AutomationLockedError(proc.instance_id)
    if not proc.is_functional:
        raise ProcessorInoperativeError(proc.instance_id, proc.status.value)
    proc.daemon_mode = proc.daemon_mode.next()
    return proc.daemon_mode


def install_daemon_firmware(proc: Processor) -> DaemonPenalty:
    """Unlock the daemon on one unit and ease its automation penalty."""

    if proc.daemon_unlocked:
        raise FirmwareInstalledError(proc.instance_id)
    proc.daemon_unlocked = True
    penalty = proc.daemon_penalty
    proc.daemon_penalty = replace(
        penalty,
        quality=max(penalty.quality, FIRMWARE_QUALITY_FLOOR),
        time_multiplier=max(penalty.time_multiplier - FIRMWARE_TIME_STEP, FIRMWARE_TIME_FLOOR),
    )
    return proc.daemon_penalty


def toggle_honor_cooling(proc: Processor) -> bool:
    proc.honor_cooling_mins = not proc.honor_cooling_mins
    return proc.honor_cooling_mins


class ProcessorRoster:
    """Active processors keyed by instance id; iteration is in ascending id order."""

    def __init__(self, processors: Mapping[str, Processor] | None = None) -> None:
        self._units: Dict[str, Processor] = {}
        self.retired: Dict[str, Processor] = {}
        for proc in (processors or {}).values():
            self.add(proc)

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[Processor]:
        return iter([self._units[key] for key in self.ids()])

    def __contains__(self, proc_id: object) -> bool:
        return proc_id in self._units

    def ids(self) -> List[str]:
        return sorted(self._units, key=instance_sort_key)

    def add(self, proc: Processor) -> Processor:
        if proc.instance_id in self._units or proc.instance_id in self.retired:
            raise ValueError(f"processor id {proc.instance_id} already in use")
        self._units[proc.instance_id] = proc
        return proc

    def get(self, proc_id: str) -> Optional[Processor]:
        return self._units.get(proc_id)

    def require(self, proc_id: str) -> Processor:
        proc = self._units.get(proc_id)
        if proc is None:
            raise UnknownProcessorError(proc_id)
        return proc

    def remove(self, proc_id: str) -> Processor:
        proc = self.require(proc_id)
        del self._units[proc_id]
        return proc

    def retire(self, proc_id: str) -> Processor:
        """Move a destroyed unit out of the active roster."""

        proc = self.require(proc_id)
        if proc.status is not ProcessorStatus.DESTROYED:
            raise ProcessorInoperativeError(proc_id, f"cannot retire a {proc.status.value} unit")
        del self._units[proc_id]
        self.retired[proc_id] = proc
        return proc

    def running(self) -> List[Processor]:
        return [proc for proc in self if proc.is_running]

    def assignments(self) -> Dict[str, str]:
        return {proc.instance_id: proc.work.job.job_id for proc in self if proc.work is not None}

    def supported_tags(self) -> frozenset[str]:
        tags: set[str] = set()
        for proc in self:
            if proc.is_functional:
                tags |= proc.instruction_set
        return frozenset(tags)

    def unlock_instruction_tag(self, tag: str) -> int:
        added = 0
        for proc in self:
            if tag not in proc.instruction_set:
                proc.instruction_set = proc.instruction_set | {tag}
                added += 1
        return added

    def check_invariants(self) -> None:
        seen: Dict[str, str] = {}
        for proc in list(self) + list(self.retired.values()):
            if proc.status is ProcessorStatus.DESTROYED and proc.work is not None:
                raise RosterInvariantError(f"destroyed unit {proc.instance_id} still holds a job")
            if proc.status is ProcessorStatus.RUNNING and proc.work is None:
                raise RosterInvariantError(f"running unit {proc.instance_id} has no job")
            if proc.status is not ProcessorStatus.RUNNING and proc.work is not None:
                raise RosterInvariantError(f"{proc.status.value} unit {proc.instance_id} holds a job")
            if proc.work is not None:
                job_id = proc.work.job.job_id
                if job_id in seen:
                    raise RosterInvariantError(
                        f"job {job_id} held by both {seen[job_id]} and {proc.instance_id}"
                    )
                seen[job_id] = proc.instance_id
            if not 0.0 <= proc.wear <= 1.0:
                raise RosterInvariantError(f"{proc.instance_id} wear {proc.wear} outside [0, 1]")
            if proc.cooling_level > proc.cooling_cap or proc.hardening_level > proc.hardening_cap:
                raise RosterInvariantError(f"{proc.instance_id} upgrade level exceeds its cap")

    def signature(self) -> str:
        parts = []
        for proc in self:
            job_id = proc.work.job.job_id if proc.work is not None else "-"
            progress = f"{proc.work.progress:.6f}" if proc.work is not None else "-"
            parts.append(
                f"{proc.instance_id}:{proc.status.name}:{job_id}:{progress}:{proc.wear:.6f}:"
                f"{proc.cooling_level}:{proc.hardening_level}:{proc.daemon_mode.name}"
            )
        return sha256("|".join(parts).encode("utf-8")).hexdigest()


def ensure_roster(world: Any) -> ProcessorRoster:
    roster = getattr(world, "roster", None)
    if not isinstance(roster, ProcessorRoster):
        roster = ProcessorRoster()
        setattr(world, "roster", roster)
    return roster


__all__ = [
    "DaemonMode",
    "DaemonPenalty",
    "JobWork",
    "Processor",
    "ProcessorRoster",
    "ProcessorStatus",
    "cycle_daemon_mode",
    "ensure_roster",
    "install_daemon_firmware",
    "instance_sort_key",
    "set_cooling_level",
    "set_hardening_level",
    "toggle_honor_cooling",
    "upgrade_cooling",
    "upgrade_hardening",
]
