"""Per-tick resolution of running processors.

Each running unit goes through the same fixed sequence every tick: deadline
check, thermal and reliability evaluation, a burnout roll, wear, then work
progress.  The first terminal transition ends the unit's tick, so a unit that
is destroyed by wear never completes its job on the same tick.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List

from ..events import Burnout, Destroyed, JobCompleted, JobExpired, LifecycleEvent
from ..world.processors import Processor, ProcessorRoster, ProcessorStatus
from ..world.tunables import Tunables
from .resolution import (
    DEFAULT_TUNABLES,
    completion_time,
    evaluate,
    payout,
    quality,
    quality_noise,
    wear_delta,
)
from .rng_service import RandomSource


@dataclass(slots=True)
class ReliabilityConfig:
    burnout_stream: str = "reliability.burnout"
    noise_stream: str = "reliability.quality"
    enforce_deadlines: bool = True


def ensure_reliability_config(world: Any) -> ReliabilityConfig:
    cfg = getattr(world, "reliability_cfg", None)
    if not isinstance(cfg, ReliabilityConfig):
        cfg = ReliabilityConfig()
        setattr(world, "reliability_cfg", cfg)
    return cfg


@dataclass
class ReliabilityEngine:
    rng: RandomSource
    tunables: Tunables = DEFAULT_TUNABLES
    config: ReliabilityConfig = field(default_factory=ReliabilityConfig)

    def run(
        self, roster: ProcessorRoster, *, tick: int, dt: float = 1.0, bonus_levels: int = 0
    ) -> List[LifecycleEvent]:
        """Resolve every running unit in ascending instance id order."""

        events: List[LifecycleEvent] = []
        for proc in roster.running():
            events.extend(self.tick_processor(proc, tick=tick, dt=dt, bonus_levels=bonus_levels))
        return events

    def tick_processor(
        self, proc: Processor, *, tick: int, dt: float = 1.0, bonus_levels: int = 0
    ) -> List[LifecycleEvent]:
        if not proc.is_running or proc.work is None:
            return []
        if dt <= 0:
            raise ValueError("dt must be positive")
        work = proc.work
        job = work.job
        t = self.tunables

        if self.config.enforce_deadlines and job.deadline is not None and work.elapsed + dt > job.deadline:
            proc.detach(ProcessorStatus.IDLE)
            proc.last_power_draw = 0.0
            return [JobExpired(tick=tick, job_id=job.job_id, proc_id=proc.instance_id)]

        evaluation = evaluate(proc, job, t, bonus_levels=bonus_levels)
        proc.overheating = evaluation.overheating
        reliability = evaluation.reliability
        if proc.overheating:
            reliability = max(0.0, reliability - t.overheat_reliability_penalty)
        proc.last_heat = evaluation.heat
        proc.last_reliability = reliability
        proc.last_power_draw = evaluation.power

        # survival over dt ticks compounds the per-tick probability
        survival = reliability if dt == 1 else reliability**dt
        draw = self.rng.rand(self.config.burnout_stream, scope={"proc": proc.instance_id, "tick": tick})
        if draw > survival:
            proc.detach(ProcessorStatus.BURNT_OUT)
            return [Burnout(tick=tick, proc_id=proc.instance_id, job_id=job.job_id)]

        if proc.finite_lifespan:
            proc.wear = min(1.0, proc.wear + wear_delta(proc, evaluation.heat, job.tags, dt, t))
            if proc.wear >= 1.0:
                proc.detach(ProcessorStatus.DESTROYED)
                return [Destroyed(tick=tick, proc_id=proc.instance_id, job_id=job.job_id)]

        speed_factor = t.overheat_speed_factor if proc.overheating else 1.0
        work.elapsed += dt
        work.progress = min(1.0, work.progress + dt / completion_time(job, proc, work.penalty) * speed_factor)
        if work.progress < 1.0:
            return []

        noise = quality_noise(
            self.rng.rand(self.config.noise_stream, scope={"proc": proc.instance_id, "tick": tick}), t
        )
        overheat_penalty = t.overheat_quality_penalty if proc.overheating else 0
        final_quality = quality(job, proc, noise, work.penalty, overheat_penalty=overheat_penalty)
        proc.detach(ProcessorStatus.IDLE)
        return [
            JobCompleted(
                tick=tick,
                job_id=job.job_id,
                proc_id=proc.instance_id,
                payout=payout(job, final_quality, t),
                data_units=job.data_units,
                quality=final_quality,
            )
        ]


__all__ = ["ReliabilityConfig", "ReliabilityEngine", "ensure_reliability_config"]
