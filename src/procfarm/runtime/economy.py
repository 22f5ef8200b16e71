"""Credit ledger and per-tick economy accrual."""

from __future__ import annotations

from dataclasses import dataclass, field
from hashlib import sha256
from typing import Any, Dict, Iterable, List, Optional

from ..errors import InsufficientCreditsError
from ..events import DaemonUnlocked, JobCompleted, LifecycleEvent, StorageOverflow
from ..world.processors import ProcessorRoster
from ..world.storage import DataStorage
from ..world.tunables import Tunables
from .config import DAEMON_UNLOCK_CREDITS, STARTING_CREDITS, TICKS_PER_DAY
from .resolution import DEFAULT_TUNABLES, effective_power, idle_power


@dataclass(slots=True)
class EconomyConfig:
    starting_credits: float = STARTING_CREDITS
    daemon_unlock_credits: float = DAEMON_UNLOCK_CREDITS
    ticks_per_day: int = TICKS_PER_DAY
    charge_upkeep: bool = True
    charge_power: bool = True


@dataclass(frozen=True, slots=True)
class StoreItem:
    """A purchasable upgrade whose price climbs by ``cost_step`` per step."""

    key: str
    base_cost: float
    cost_step: float = 0.0

    def price(self, steps: int = 0) -> float:
        return self.base_cost + self.cost_step * max(0, steps)


COOLING_KIT = StoreItem("cooling_kit", 90.0, 35.0)
HARDENING_KIT = StoreItem("hardening_kit", 140.0, 55.0)
THERMAL_PASTE = StoreItem("thermal_paste", 60.0, 20.0)
STORAGE_EXPANSION = StoreItem("storage_expansion", 100.0, 55.0)
INSTRUCTION_MICROCODE = StoreItem("instruction_microcode", 260.0)
DAEMON_FIRMWARE = StoreItem("daemon_firmware", 180.0, 80.0)


@dataclass(slots=True)
class EconomyLedger:
    credits: float = STARTING_CREDITS
    earned_total: float = 0.0
    upkeep_total: float = 0.0
    power_total: float = 0.0
    passive_total: float = 0.0
    data_stored_total: int = 0
    data_lost_total: int = 0
    jobs_completed: int = 0
    daemon_unlocked: bool = False
    spent_total: float = 0.0
    purchases: Dict[str, int] = field(default_factory=dict)

    def charge(self, cost: float) -> float:
        if cost < 0:
            raise ValueError("cost must be non-negative")
        if cost > self.credits:
            raise InsufficientCreditsError(cost, self.credits)
        self.credits -= cost
        self.spent_total += cost
        return self.credits

    def quote(self, item: StoreItem, *, steps: Optional[int] = None) -> float:
        """Current price of ``item``; steps default to how often it was bought."""

        return item.price(self.purchases.get(item.key, 0) if steps is None else steps)

    def purchase(self, item: StoreItem, *, steps: Optional[int] = None) -> float:
        cost = self.quote(item, steps=steps)
        self.charge(cost)
        self.purchases[item.key] = self.purchases.get(item.key, 0) + 1
        return cost

    def signature(self) -> str:
        bought = ",".join(f"{key}={count}" for key, count in sorted(self.purchases.items()))
        canonical = (
            f"{self.credits:.6f}|{self.earned_total:.6f}|{self.upkeep_total:.6f}|{self.power_total:.6f}|"
            f"{self.passive_total:.6f}|{self.data_stored_total}|{self.data_lost_total}|"
            f"{self.jobs_completed}|{int(self.daemon_unlocked)}|{self.spent_total:.6f}|{bought}"
        )
        return sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class EconomyTick:
    upkeep: float = 0.0
    power_cost: float = 0.0
    passive_income: float = 0.0
    earned: float = 0.0
    data_stored: int = 0

    @property
    def credits_delta(self) -> float:
        return self.earned + self.passive_income - self.upkeep - self.power_cost


def ensure_economy_config(world: Any) -> EconomyConfig:
    cfg = getattr(world, "economy_cfg", None)
    if not isinstance(cfg, EconomyConfig):
        cfg = EconomyConfig()
        setattr(world, "economy_cfg", cfg)
    return cfg


def ensure_economy_ledger(world: Any) -> EconomyLedger:
    ledger = getattr(world, "economy", None)
    if not isinstance(ledger, EconomyLedger):
        cfg = ensure_economy_config(world)
        ledger = EconomyLedger(credits=cfg.starting_credits)
        setattr(world, "economy", ledger)
    return ledger


def roster_upkeep(roster: ProcessorRoster) -> float:
    """Daily upkeep of every unit still on the active roster."""

    return sum(proc.upkeep_cost for proc in roster)


def roster_power(roster: ProcessorRoster, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    """Instantaneous draw: running units at full load, idle ones at the idle fraction."""

    total = 0.0
    for proc in roster:
        if proc.is_running and proc.job is not None:
            total += effective_power(proc, proc.job)
        elif proc.is_idle:
            total += idle_power(proc, tunables)
    return total


def credit_completions(
    events: Iterable[LifecycleEvent],
    ledger: EconomyLedger,
    storage: DataStorage,
) -> tuple[float, int, List[StorageOverflow]]:
    """Pay out completed jobs and store their data; overflow is lost."""

    earned = 0.0
    stored = 0
    overflow: List[StorageOverflow] = []
    for event in events:
        if not isinstance(event, JobCompleted):
            continue
        earned += event.payout
        kept = storage.store(event.data_units)
        stored += kept
        ledger.jobs_completed += 1
        lost = event.data_units - kept
        if lost > 0:
            ledger.data_lost_total += lost
            overflow.append(StorageOverflow(tick=event.tick, job_id=event.job_id, lost=lost))
    ledger.credits += earned
    ledger.earned_total += earned
    ledger.data_stored_total += stored
    return earned, stored, overflow


def accrue(
    roster: ProcessorRoster,
    storage: DataStorage,
    ledger: EconomyLedger,
    tunables: Tunables = DEFAULT_TUNABLES,
    config: Optional[EconomyConfig] = None,
    *,
    dt: float = 1.0,
) -> EconomyTick:
    """Charge upkeep and power, and pay passive income on stored data, for ``dt`` ticks.

    Upkeep and passive income are daily rates spread evenly over the day;
    power is billed per tick of draw.
    """

    cfg = config or EconomyConfig()
    day_fraction = dt / max(1, cfg.ticks_per_day)
    upkeep = roster_upkeep(roster) * day_fraction if cfg.charge_upkeep else 0.0
    power_cost = tunables.kwh_cost * roster_power(roster, tunables) * dt if cfg.charge_power else 0.0
    passive = tunables.passive_income_rate * storage.stored * day_fraction
    ledger.credits += passive - upkeep - power_cost
    ledger.upkeep_total += upkeep
    ledger.power_total += power_cost
    ledger.passive_total += passive
    return EconomyTick(upkeep=upkeep, power_cost=power_cost, passive_income=passive)


def check_daemon_unlock(
    roster: ProcessorRoster, ledger: EconomyLedger, config: EconomyConfig, *, tick: int
) -> Optional[DaemonUnlocked]:
    """Install daemon firmware on every unit the first time credits reach the milestone."""

    if ledger.daemon_unlocked or ledger.credits < config.daemon_unlock_credits:
        return None
    ledger.daemon_unlocked = True
    units = 0
    for proc in roster:
        if not proc.daemon_unlocked:
            proc.daemon_unlocked = True
            units += 1
    return DaemonUnlocked(tick=tick, units=units)


__all__ = [
    "COOLING_KIT",
    "DAEMON_FIRMWARE",
    "HARDENING_KIT",
    "INSTRUCTION_MICROCODE",
    "STORAGE_EXPANSION",
    "THERMAL_PASTE",
    "EconomyConfig",
    "EconomyLedger",
    "EconomyTick",
    "StoreItem",
    "accrue",
    "check_daemon_unlock",
    "credit_completions",
    "ensure_economy_config",
    "ensure_economy_ledger",
    "roster_power",
    "roster_upkeep",
]
