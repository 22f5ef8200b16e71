"""Pure resolution math: time, quality, payout, power, heat, reliability, wear.

Nothing here mutates state or draws randomness.  Stochastic inputs (quality
noise, burnout rolls) are passed in by the caller, so every function can be
exercised with fixed values.  All functions are total over their documented
domains; out-of-range numeric results are clamped rather than raised.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..world.jobs import Job
from ..world.processors import DaemonPenalty, Processor
from ..world.tunables import Tunables
from .config import MIN_SPEED

DEFAULT_TUNABLES = Tunables()


def _clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def _scaled(coefficient: float, value: float) -> float:
    # 0 * inf is nan; a zero coefficient means the term is switched off.
    if coefficient == 0 or value == 0:
        return 0.0
    return coefficient * value


def _level_value(levels: Sequence[float], level: int, step: float, ceiling: float) -> float:
    if level <= 0:
        return levels[0]
    if level < len(levels):
        return levels[level]
    extra = level - (len(levels) - 1)
    return min(ceiling, levels[-1] + step * extra)


# ---------------------------------------------------------------------------
# Level curves
# ---------------------------------------------------------------------------
def effective_cooling_level(proc: Processor, bonus_levels: int = 0) -> int:
    """Installed cooling plus temporary bonus levels (thermal paste)."""

    return max(0, proc.cooling_level) + max(0, bonus_levels)


def cooling_mitigation(level: int, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    """Fraction of heat removed at ``level`` (0.25, 0.45, 0.60, ...)."""

    return _level_value(
        tunables.cooling_mitigation_levels,
        level,
        tunables.cooling_mitigation_step,
        tunables.cooling_mitigation_max,
    )


def cooling_bonus(level: int, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    return _level_value(tunables.cooling_bonus_levels, level, tunables.cooling_bonus_step, 1.0)


def hardening_fraction(level: int, tag: str, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    if level <= 0:
        return 0.0
    if tag in tunables.shielded_tags:
        return min(tunables.hardening_shielded_max, tunables.hardening_shielded_step * level)
    return min(tunables.hardening_general_max, tunables.hardening_general_step * level)


def hardening_bonus(level: int, tags: Iterable[str], tunables: Tunables = DEFAULT_TUNABLES) -> float:
    """Share of the tags' hazard cancelled by hardening at ``level``."""

    return sum(tunables.hazard(tag) * hardening_fraction(level, tag, tunables) for tag in tags)


def tag_hazard(tags: Iterable[str], tunables: Tunables = DEFAULT_TUNABLES) -> float:
    return sum(tunables.hazard(tag) for tag in tags)


# ---------------------------------------------------------------------------
# Power and heat
# ---------------------------------------------------------------------------
def power_modifier(proc: Processor, tags: Iterable[str]) -> float:
    return sum(float(proc.power_draw_mod.get(tag, 0.0)) for tag in tags)


def effective_power(proc: Processor, job: Job) -> float:
    return max(0.0, proc.power_draw_base * (1.0 + power_modifier(proc, job.tags)))


def idle_power(proc: Processor, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    return max(0.0, proc.power_draw_base * tunables.idle_power_fraction)


def overload_factor(
    tags: Iterable[str], speed: float, proc: Processor, tunables: Tunables = DEFAULT_TUNABLES
) -> float:
    load = max(0.0, 1.0 + power_modifier(proc, tags))
    overclock = 1.0 + tunables.overclock_heat_coeff * max(0.0, speed - 1.0)
    return load * overclock


def cooling_deficit(proc: Processor, effective_level: int) -> int:
    return max(0, proc.requires_cooling_min - effective_level)


def effective_heat(
    proc: Processor, job: Job, tunables: Tunables = DEFAULT_TUNABLES, *, bonus_levels: int = 0
) -> float:
    level = effective_cooling_level(proc, bonus_levels)
    heat = proc.heat_output_base * overload_factor(job.tags, proc.speed, proc, tunables)
    heat *= 1.0 - cooling_mitigation(level, tunables)
    if proc.cooling_required and level == 0:
        heat += tunables.cooling_required_heat
    heat += tunables.cooling_deficit_heat * cooling_deficit(proc, level)
    return max(0.0, heat)


def is_overheating(
    proc: Processor, heat: float, effective_level: int, tunables: Tunables = DEFAULT_TUNABLES
) -> bool:
    return heat > tunables.overheat_threshold or cooling_deficit(proc, effective_level) > 0


# ---------------------------------------------------------------------------
# Reliability
# ---------------------------------------------------------------------------
def reliability_tick(
    proc: Processor,
    job: Job,
    tunables: Tunables = DEFAULT_TUNABLES,
    *,
    heat: Optional[float] = None,
    bonus_levels: int = 0,
) -> float:
    """Per-tick probability that the unit survives running ``job``, in [0, 1]."""

    level = effective_cooling_level(proc, bonus_levels)
    if heat is None:
        heat = effective_heat(proc, job, tunables, bonus_levels=bonus_levels)
    heat = max(0.0, heat)
    value = proc.reliability_base
    value -= _scaled(tunables.k_heat, heat)
    value -= _scaled(tunables.k_hazard, tag_hazard(job.tags, tunables))
    value += _scaled(tunables.k_cooling, cooling_bonus(level, tunables))
    value += _scaled(tunables.k_hardening, hardening_bonus(proc.hardening_level, job.tags, tunables))
    if proc.cooling_required and level == 0:
        value -= tunables.cooling_required_reliability
    value -= tunables.cooling_deficit_reliability * cooling_deficit(proc, level)
    value -= _scaled(proc.fragility, heat)
    return _clamp(value, 0.0, 1.0)


# ---------------------------------------------------------------------------
# Time, quality, payout
# ---------------------------------------------------------------------------
def completion_time(job: Job, proc: Processor, penalty: Optional[DaemonPenalty] = None) -> float:
    duration = job.base_time / max(proc.speed, MIN_SPEED)
    if penalty is not None:
        duration *= penalty.time_multiplier
    return duration


def quality_noise(draw: float, tunables: Tunables = DEFAULT_TUNABLES) -> int:
    """Map a uniform draw in [0, 1) to a zero-mean integer in [-n, n]."""

    spread = max(0, int(tunables.quality_noise))
    if spread == 0:
        return 0
    draw = _clamp(draw, 0.0, 1.0)
    return min(spread, int(draw * (2 * spread + 1)) - spread)


def quality(
    job: Job,
    proc: Processor,
    noise: int | float = 0,
    penalty: Optional[DaemonPenalty] = None,
    *,
    overheat_penalty: int = 0,
) -> int:
    value = job.quality_target + proc.quality_bias + noise
    if penalty is not None:
        value += penalty.quality
    value -= max(0, overheat_penalty)
    return int(round(_clamp(value, 0.0, 100.0)))


def reward_multiplier(quality_value: float, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    q = _clamp(quality_value, 0.0, 100.0)
    points = tunables.reward_curve
    if q <= points[0][0]:
        return points[0][1]
    for (q0, m0), (q1, m1) in zip(points, points[1:]):
        if q <= q1:
            return m0 + (m1 - m0) * (q - q0) / (q1 - q0)
    return points[-1][1]


def payout(job: Job, quality_value: float, tunables: Tunables = DEFAULT_TUNABLES) -> float:
    return job.base_reward * reward_multiplier(quality_value, tunables)


# ---------------------------------------------------------------------------
# Wear
# ---------------------------------------------------------------------------
def base_wear_rate(proc: Processor) -> float:
    if proc.mttf_ticks <= 0:
        return 0.0
    return 1.0 / proc.mttf_ticks


def wear_delta(
    proc: Processor, heat: float, tags: Iterable[str], dt: float, tunables: Tunables = DEFAULT_TUNABLES
) -> float:
    if not proc.finite_lifespan or dt <= 0:
        return 0.0
    hazard_wear = sum(float(tunables.hazard_wear.get(tag, 0.0)) for tag in tags)
    rate = base_wear_rate(proc) + _scaled(tunables.heat_wear_coeff, max(0.0, heat)) + hazard_wear
    return max(0.0, rate * dt)


# ---------------------------------------------------------------------------
# Bundled evaluation
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class JobEvaluation:
    heat: float
    reliability: float
    power: float
    effective_cooling: int
    hazard: float
    overheating: bool


def evaluate(
    proc: Processor, job: Job, tunables: Tunables = DEFAULT_TUNABLES, *, bonus_levels: int = 0
) -> JobEvaluation:
    level = effective_cooling_level(proc, bonus_levels)
    heat = effective_heat(proc, job, tunables, bonus_levels=bonus_levels)
    return JobEvaluation(
        heat=heat,
        reliability=reliability_tick(proc, job, tunables, heat=heat, bonus_levels=bonus_levels),
        power=effective_power(proc, job),
        effective_cooling=level,
        hazard=tag_hazard(job.tags, tunables),
        overheating=is_overheating(proc, heat, level, tunables),
    )


__all__ = [
    "DEFAULT_TUNABLES",
    "JobEvaluation",
    "base_wear_rate",
    "completion_time",
    "cooling_bonus",
    "cooling_deficit",
    "cooling_mitigation",
    "effective_cooling_level",
    "effective_heat",
    "effective_power",
    "evaluate",
    "hardening_bonus",
    "hardening_fraction",
    "idle_power",
    "is_overheating",
    "overload_factor",
    "payout",
    "power_modifier",
    "quality",
    "quality_noise",
    "reliability_tick",
    "reward_multiplier",
    "tag_hazard",
    "wear_delta",
]
