"""Global tunable coefficients consumed read-only by the tick pass."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Tuple

from ..errors import ConfigurationError
from ..runtime.config import (
    ANGEL_TAG,
    RADIATION_TAG,
    REWARD_CEILING,
    REWARD_FLOOR,
    SIMD_TAG,
    SURVEILLANCE_TAG,
)


def _default_hazards() -> dict[str, float]:
    return {RADIATION_TAG: 0.02, ANGEL_TAG: 0.03, SURVEILLANCE_TAG: 0.01, SIMD_TAG: 0.015}


def _default_hazard_wear() -> dict[str, float]:
    return {RADIATION_TAG: 0.001, ANGEL_TAG: 0.0015, SURVEILLANCE_TAG: 0.0005, SIMD_TAG: 0.00075}


@dataclass(frozen=True)
class Tunables:
    # hazard scoring
    hazard_weights: Mapping[str, float] = field(default_factory=_default_hazards)
    shielded_tags: frozenset[str] = frozenset({RADIATION_TAG, ANGEL_TAG, SURVEILLANCE_TAG})

    # reliability_tick coefficients
    k_heat: float = 0.002
    k_hazard: float = 1.0
    k_cooling: float = 1.0
    k_hardening: float = 1.0

    # cooling: per-level heat reduction fraction and reliability bonus
    cooling_mitigation_levels: Tuple[float, ...] = (0.0, 0.25, 0.45, 0.60)
    cooling_mitigation_step: float = 0.05
    cooling_mitigation_max: float = 0.95
    cooling_bonus_levels: Tuple[float, ...] = (0.0, 0.01, 0.02, 0.03)
    cooling_bonus_step: float = 0.005

    # hardening: fraction of a tag's hazard cancelled per level
    hardening_shielded_step: float = 0.2
    hardening_shielded_max: float = 0.8
    hardening_general_step: float = 0.05
    hardening_general_max: float = 0.5

    # thermal model
    overclock_heat_coeff: float = 0.5
    cooling_required_heat: float = 1.2
    cooling_required_reliability: float = 0.25
    cooling_deficit_heat: float = 0.8
    cooling_deficit_reliability: float = 0.15
    overheat_threshold: float = 1.0
    overheat_speed_factor: float = 0.85
    overheat_quality_penalty: int = 3
    overheat_reliability_penalty: float = 0.02

    # wear
    heat_wear_coeff: float = 0.0005
    hazard_wear: Mapping[str, float] = field(default_factory=_default_hazard_wear)

    # quality / payout
    quality_noise: int = 4
    reward_curve: Tuple[Tuple[float, float], ...] = ((0.0, REWARD_FLOOR), (100.0, REWARD_CEILING))

    # automation safety
    heat_budget: float = 1.8
    min_reliability: float = 0.35

    # economy: kwh_cost per tick of draw, passive income per day
    kwh_cost: float = 0.02
    passive_income_rate: float = 0.05
    idle_power_fraction: float = 0.25

    def hazard(self, tag: str) -> float:
        return float(self.hazard_weights.get(tag, 0.0))

    def validate(self) -> "Tunables":
        """Raise :class:`ConfigurationError` if any coefficient is out of range."""

        for name in ("k_heat", "k_hazard", "k_cooling", "k_hardening", "heat_wear_coeff", "kwh_cost"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")
        if self.heat_budget <= 0:
            raise ConfigurationError("heat_budget must be positive")
        if not 0.0 <= self.min_reliability <= 1.0:
            raise ConfigurationError("min_reliability must lie in [0, 1]")
        if not 0.0 < self.overheat_speed_factor <= 1.0:
            raise ConfigurationError("overheat_speed_factor must lie in (0, 1]")
        if self.quality_noise < 0:
            raise ConfigurationError("quality_noise must be non-negative")
        _check_levels("cooling_mitigation_levels", self.cooling_mitigation_levels, upper=self.cooling_mitigation_max)
        _check_levels("cooling_bonus_levels", self.cooling_bonus_levels, upper=1.0)
        if self.cooling_mitigation_max >= 1.0:
            raise ConfigurationError("cooling_mitigation_max must stay below 1.0")
        for name in ("cooling_mitigation_step", "cooling_bonus_step", "hardening_shielded_step", "hardening_general_step"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")
        for name in ("hardening_shielded_max", "hardening_general_max"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1]")
        for tag, weight in list(self.hazard_weights.items()) + list(self.hazard_wear.items()):
            if weight < 0:
                raise ConfigurationError(f"hazard coefficient for {tag} must be non-negative")
        _check_reward_curve(self.reward_curve)
        return self


def _check_levels(name: str, levels: Tuple[float, ...], *, upper: float) -> None:
    if not levels or levels[0] != 0.0:
        raise ConfigurationError(f"{name} must start at level 0 with value 0.0")
    previous = 0.0
    for value in levels:
        if value < previous or value > upper:
            raise ConfigurationError(f"{name} must be non-decreasing and at most {upper}")
        previous = value


def _check_reward_curve(curve: Tuple[Tuple[float, float], ...]) -> None:
    if len(curve) < 2:
        raise ConfigurationError("reward_curve needs at least two control points")
    if curve[0][0] != 0.0 or curve[-1][0] != 100.0:
        raise ConfigurationError("reward_curve must span quality 0..100")
    last_q, last_m = -1.0, REWARD_FLOOR
    for quality, multiplier in curve:
        if quality <= last_q:
            raise ConfigurationError("reward_curve control points must have increasing quality")
        if multiplier < last_m or not REWARD_FLOOR <= multiplier <= REWARD_CEILING:
            raise ConfigurationError(
                f"reward_curve multipliers must be non-decreasing within [{REWARD_FLOOR}, {REWARD_CEILING}]"
            )
        last_q, last_m = quality, multiplier


_TUPLE_FIELDS = {"cooling_mitigation_levels", "cooling_bonus_levels"}


def tunables_from_mapping(payload: Mapping[str, Any] | None) -> Tunables:
    """Build validated :class:`Tunables` from an already-parsed content table."""

    if payload is None:
        raise ConfigurationError("tunables table is missing")
    known = {f.name for f in fields(Tunables)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigurationError(f"unknown tunables: {', '.join(unknown)}")
    kwargs: dict[str, Any] = {}
    try:
        for key, value in payload.items():
            if key in _TUPLE_FIELDS:
                kwargs[key] = tuple(float(v) for v in value)
            elif key == "reward_curve":
                kwargs[key] = tuple((float(q), float(m)) for q, m in value)
            elif key == "shielded_tags":
                kwargs[key] = frozenset(str(tag) for tag in value)
            elif key in {"hazard_weights", "hazard_wear"}:
                kwargs[key] = {str(tag): float(weight) for tag, weight in dict(value).items()}
            elif key in {"quality_noise", "overheat_quality_penalty"}:
                kwargs[key] = int(value)
            else:
                kwargs[key] = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"malformed tunables table: {exc}") from exc
    return Tunables(**kwargs).validate()


def ensure_tunables(world: Any) -> Tunables:
    tunables = getattr(world, "tunables", None)
    if tunables is None:
        tunables = Tunables()
        setattr(world, "tunables", tunables)
    if not isinstance(tunables, Tunables):
        raise ConfigurationError(f"tunables must be a Tunables instance, got {type(tunables).__name__}")
    return tunables


__all__ = ["Tunables", "ensure_tunables", "tunables_from_mapping"]
