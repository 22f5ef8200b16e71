"""Processor content templates and unit creation.

A :class:`ProcessorModel` is parsed content (brand/model stats) and never
changes.  A :class:`FacilityTemplate` carries the facility-wide automation
defaults; it is read once when a unit is created and never touches existing
units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

from ..errors import ReplacementError
from ..runtime.config import (
    DEFAULT_COOLING_CAP,
    DEFAULT_HARDENING_CAP,
    DEFAULT_HEAT_OUTPUT,
    DEFAULT_POWER_DRAW,
    DEFAULT_PURCHASE_COST,
    DEFAULT_RELIABILITY,
    DEFAULT_REPLACE_RATIO,
    DEFAULT_UPKEEP,
    GENERAL_TAG,
)
from .processors import DaemonMode, DaemonPenalty, Processor, ProcessorRoster, instance_sort_key


@dataclass(frozen=True)
class ProcessorModel:
    name: str
    speed: float = 1.0
    quality_bias: int = 0
    instruction_set: frozenset[str] = frozenset({GENERAL_TAG})
    upkeep_cost: float = DEFAULT_UPKEEP
    power_draw_base: float = DEFAULT_POWER_DRAW
    power_draw_mod: Mapping[str, float] = field(default_factory=dict)
    heat_output_base: float = DEFAULT_HEAT_OUTPUT
    reliability_base: float = DEFAULT_RELIABILITY
    cooling_cap: int = DEFAULT_COOLING_CAP
    hardening_cap: int = DEFAULT_HARDENING_CAP
    cooling_required: bool = False
    requires_cooling_min: int = 0
    finite_lifespan: bool = False
    mttf_ticks: float = 0.0
    fragility: float = 0.0
    purchase_cost: int = DEFAULT_PURCHASE_COST
    replace_cost_ratio: float = DEFAULT_REPLACE_RATIO
    daemon_penalty: Optional[DaemonPenalty] = None


@dataclass(frozen=True)
class FacilityTemplate:
    daemon_mode: DaemonMode = DaemonMode.OFF
    daemon_priority: int = 0
    daemon_affinity: Mapping[str, float] = field(default_factory=dict)
    daemon_unlocked: bool = False
    honor_cooling_mins: bool = True
    ignore_heat_budget: bool = False


def starter_model() -> ProcessorModel:
    return ProcessorModel(name="Model F12-Scalar", upkeep_cost=8.0)


def instantiate(
    model: ProcessorModel, instance_id: str, template: Optional[FacilityTemplate] = None
) -> Processor:
    template = template or FacilityTemplate()
    return Processor(
        instance_id=instance_id,
        model=model.name,
        speed=model.speed,
        quality_bias=model.quality_bias,
        instruction_set=frozenset(model.instruction_set),
        upkeep_cost=model.upkeep_cost,
        power_draw_base=model.power_draw_base,
        power_draw_mod=dict(model.power_draw_mod),
        heat_output_base=model.heat_output_base,
        reliability_base=model.reliability_base,
        cooling_cap=model.cooling_cap,
        hardening_cap=model.hardening_cap,
        cooling_required=model.cooling_required,
        requires_cooling_min=model.requires_cooling_min,
        finite_lifespan=model.finite_lifespan,
        mttf_ticks=model.mttf_ticks,
        fragility=model.fragility,
        daemon_mode=template.daemon_mode,
        daemon_affinity=dict(template.daemon_affinity),
        daemon_penalty=model.daemon_penalty or DaemonPenalty(),
        daemon_unlocked=template.daemon_unlocked,
        daemon_priority=template.daemon_priority,
        honor_cooling_mins=template.honor_cooling_mins,
        ignore_heat_budget=template.ignore_heat_budget,
    )


def replacement_cost(model: ProcessorModel) -> int:
    return max(1, round(model.purchase_cost * model.replace_cost_ratio))


def replace_unit(
    roster: ProcessorRoster,
    proc_id: str,
    model: ProcessorModel,
    *,
    new_id: str,
    keep_upgrades: bool,
) -> Processor:
    """Swap a burnt-out or destroyed unit for a fresh instance of ``model``.

    Automation settings carry over; cooling/hardening levels carry over only
    when ``keep_upgrades`` is set.  Pricing is the caller's concern.
    """

    old = roster.get(proc_id) or roster.retired.get(proc_id)
    if old is None:
        raise ReplacementError(proc_id, "unknown unit")
    if old.is_functional:
        raise ReplacementError(proc_id, "unit is still operational")
    if old.model != model.name:
        raise ReplacementError(proc_id, f"unit is a {old.model}, not a {model.name}")

    fresh = instantiate(
        model,
        new_id,
        FacilityTemplate(
            daemon_mode=old.daemon_mode,
            daemon_priority=old.daemon_priority,
            daemon_affinity=dict(old.daemon_affinity),
            daemon_unlocked=old.daemon_unlocked,
            honor_cooling_mins=old.honor_cooling_mins,
            ignore_heat_budget=old.ignore_heat_budget,
        ),
    )
    # firmware tuning applied to the old chassis survives the swap
    fresh.daemon_penalty = old.daemon_penalty
    fresh.instruction_set = fresh.instruction_set | old.instruction_set
    if keep_upgrades:
        fresh.cooling_level = min(old.cooling_level, fresh.cooling_cap)
        fresh.hardening_level = min(old.hardening_level, fresh.hardening_cap)

    if proc_id in roster:
        roster.remove(proc_id)
    else:
        roster.retired.pop(proc_id, None)
    roster.add(fresh)
    return fresh


def replaceable_units(roster: ProcessorRoster, model_name: str) -> List[str]:
    """Ids of burnt-out or destroyed units of ``model_name``, active or retired."""

    ids = [proc.instance_id for proc in roster if proc.model == model_name and not proc.is_functional]
    ids.extend(proc_id for proc_id, proc in roster.retired.items() if proc.model == model_name)
    return sorted(ids, key=instance_sort_key)


def replace_model(
    roster: ProcessorRoster,
    model: ProcessorModel,
    *,
    keep_upgrades: bool,
    new_ids: Iterable[str],
) -> List[Processor]:
    """Replace every failed unit of ``model``, drawing fresh ids from ``new_ids``."""

    targets = replaceable_units(roster, model.name)
    if not targets:
        raise ReplacementError(model.name, "no burnt-out or destroyed units of this model")
    ids = iter(new_ids)
    return [
        replace_unit(roster, proc_id, model, new_id=next(ids), keep_upgrades=keep_upgrades)
        for proc_id in targets
    ]


__all__ = [
    "FacilityTemplate",
    "ProcessorModel",
    "instantiate",
    "replace_model",
    "replace_unit",
    "replaceable_units",
    "replacement_cost",
    "starter_model",
]
