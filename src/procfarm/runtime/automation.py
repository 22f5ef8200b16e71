"""Daemon automation: candidate filtering, scoring and binding.

Idle units with unlocked daemon firmware look at the job board every tick.
``AUTO`` units bind their best candidate immediately (paying the daemon
penalty); ``ASSIST`` units only publish a :class:`Suggestion` that the player
may accept.  When several ``AUTO`` units want the same job in one round the
contest is settled by priority, then projected ETA, then instance id, and the
losers pick again from what is left.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import NoSuggestionError
from ..events import AssistSuggested, AutoAssigned, LifecycleEvent
from ..world.jobs import Job, JobQueue
from ..world.processors import DaemonMode, DaemonPenalty, JobWork, Processor, ProcessorRoster, instance_sort_key
from ..world.tunables import Tunables
from .config import GENERAL_TAG
from .resolution import DEFAULT_TUNABLES, completion_time, effective_cooling_level, evaluate, payout, quality

_GENERAL_ONLY = frozenset({GENERAL_TAG})


@dataclass(slots=True)
class AutomationConfig:
    w_rate: float = 1.0
    w_quality: float = 0.5
    w_heat: float = 0.25
    w_reliability: float = 0.5
    w_power: float = 1.0
    reliability_pivot: float = 0.7
    cooling_filter_for_assist: bool = True


def ensure_automation_config(world: Any) -> AutomationConfig:
    cfg = getattr(world, "automation_cfg", None)
    if not isinstance(cfg, AutomationConfig):
        cfg = AutomationConfig()
        setattr(world, "automation_cfg", cfg)
    return cfg


@dataclass(frozen=True, slots=True)
class Suggestion:
    proc_id: str
    job_id: str
    eta: float
    score: float
    reliability: float
    heat: float
    quality: int = 0
    payout: float = 0.0
    position: int = 0

    def sort_key(self) -> Tuple[float, float, int]:
        return (-self.score, self.eta, self.position)


def assign_job(
    roster: ProcessorRoster,
    queue: JobQueue,
    proc_id: str,
    job_id: str,
    *,
    tick: int,
    penalty: Optional[DaemonPenalty] = None,
) -> JobWork:
    """Bind a queued job to a unit and take it off the board."""

    proc = roster.require(proc_id)
    job = queue.get(job_id)
    work = proc.bind(job, tick=tick, penalty=penalty)
    queue.remove(job_id)
    return work


def is_eligible(proc: Processor) -> bool:
    return (
        proc.is_idle
        and proc.daemon_unlocked
        and proc.daemon_mode in (DaemonMode.ASSIST, DaemonMode.AUTO)
    )


def candidate_jobs(
    proc: Processor, jobs: List[Job], *, bonus_levels: int = 0, apply_cooling_filter: bool = True
) -> List[Job]:
    candidates = [job for job in jobs if proc.supports(job.tags)]
    if (
        apply_cooling_filter
        and proc.honor_cooling_mins
        and effective_cooling_level(proc, bonus_levels) < proc.requires_cooling_min
    ):
        candidates = [job for job in candidates if job.tags == _GENERAL_ONLY]
    return candidates


@dataclass
class AutomationScheduler:
    tunables: Tunables = DEFAULT_TUNABLES
    config: AutomationConfig = field(default_factory=AutomationConfig)
    suggestions: Dict[str, Suggestion] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------
    def project(
        self,
        proc: Processor,
        job: Job,
        *,
        position: int,
        penalty: Optional[DaemonPenalty],
        bonus_levels: int = 0,
    ) -> Optional[Suggestion]:
        """Score ``job`` on ``proc``; ``None`` when it fails the safety pre-filter."""

        t = self.tunables
        cfg = self.config
        evaluation = evaluate(proc, job, t, bonus_levels=bonus_levels)
        if not proc.ignore_heat_budget and (
            evaluation.heat > t.heat_budget or evaluation.reliability < t.min_reliability
        ):
            return None
        eta = completion_time(job, proc, penalty)
        projected_quality = quality(job, proc, 0, penalty)
        projected_payout = payout(job, projected_quality, t)
        score = (
            cfg.w_rate * projected_payout / eta
            + cfg.w_quality * projected_quality / 100.0
            - cfg.w_heat * evaluation.heat / t.heat_budget
            - cfg.w_power * t.kwh_cost * evaluation.power
            + cfg.w_reliability * (evaluation.reliability - cfg.reliability_pivot)
            + sum(float(proc.daemon_affinity.get(tag, 0.0)) for tag in job.tags)
        )
        return Suggestion(
            proc_id=proc.instance_id,
            job_id=job.job_id,
            eta=eta,
            score=score,
            reliability=evaluation.reliability,
            heat=evaluation.heat,
            quality=projected_quality,
            payout=projected_payout,
            position=position,
        )

    def rank(self, proc: Processor, queue: JobQueue, *, bonus_levels: int = 0) -> List[Suggestion]:
        """Safe candidates for ``proc``, best first."""

        auto = proc.daemon_mode is DaemonMode.AUTO
        penalty = proc.daemon_penalty if auto else None
        apply_filter = auto or self.config.cooling_filter_for_assist
        ranked: List[Suggestion] = []
        for job in candidate_jobs(proc, list(queue), bonus_levels=bonus_levels, apply_cooling_filter=apply_filter):
            projected = self.project(
                proc, job, position=queue.position(job.job_id), penalty=penalty, bonus_levels=bonus_levels
            )
            if projected is not None:
                ranked.append(projected)
        ranked.sort(key=Suggestion.sort_key)
        return ranked

    def best(self, proc: Processor, queue: JobQueue, *, bonus_levels: int = 0) -> Optional[Suggestion]:
        ranked = self.rank(proc, queue, bonus_levels=bonus_levels)
        return ranked[0] if ranked else None

    # ------------------------------------------------------------------
    # Tick pass
    # ------------------------------------------------------------------
    def run(
        self, roster: ProcessorRoster, queue: JobQueue, *, tick: int, bonus_levels: int = 0
    ) -> List[LifecycleEvent]:
        events: List[LifecycleEvent] = []
        events.extend(self._run_auto(roster, queue, tick=tick, bonus_levels=bonus_levels))
        events.extend(self._run_assist(roster, queue, tick=tick, bonus_levels=bonus_levels))
        return events

    def _run_auto(
        self, roster: ProcessorRoster, queue: JobQueue, *, tick: int, bonus_levels: int
    ) -> List[LifecycleEvent]:
        events: List[LifecycleEvent] = []
        pending = [proc for proc in roster if is_eligible(proc) and proc.daemon_mode is DaemonMode.AUTO]
        while pending and len(queue):
            picks: Dict[str, List[Tuple[Processor, Suggestion]]] = {}
            for proc in pending:
                choice = self.best(proc, queue, bonus_levels=bonus_levels)
                if choice is not None:
                    picks.setdefault(choice.job_id, []).append((proc, choice))
            if not picks:
                break
            losers: List[Processor] = []
            for job_id in sorted(picks, key=queue.position):
                contenders = picks[job_id]
                winner, choice = min(
                    contenders,
                    key=lambda pair: (-pair[0].daemon_priority, pair[1].eta, instance_sort_key(pair[0].instance_id)),
                )
                assign_job(roster, queue, winner.instance_id, job_id, tick=tick, penalty=winner.daemon_penalty)
                self.suggestions.pop(winner.instance_id, None)
                events.append(AutoAssigned(tick=tick, proc_id=winner.instance_id, job_id=job_id, eta=choice.eta))
                losers.extend(proc for proc, _ in contenders if proc is not winner)
            pending = sorted(losers, key=lambda proc: instance_sort_key(proc.instance_id))
        return events

    def _run_assist(
        self, roster: ProcessorRoster, queue: JobQueue, *, tick: int, bonus_levels: int
    ) -> List[LifecycleEvent]:
        events: List[LifecycleEvent] = []
        for proc_id in list(self.suggestions):
            proc = roster.get(proc_id)
            if proc is None or not is_eligible(proc) or proc.daemon_mode is not DaemonMode.ASSIST:
                del self.suggestions[proc_id]
        for proc in roster:
            if not is_eligible(proc) or proc.daemon_mode is not DaemonMode.ASSIST:
                continue
            choice = self.best(proc, queue, bonus_levels=bonus_levels)
            previous = self.suggestions.get(proc.instance_id)
            if choice is None:
                self.suggestions.pop(proc.instance_id, None)
                continue
            self.suggestions[proc.instance_id] = choice
            if previous is None or previous.job_id != choice.job_id:
                events.append(
                    AssistSuggested(
                        tick=tick,
                        proc_id=proc.instance_id,
                        job_id=choice.job_id,
                        eta=choice.eta,
                        reliability=choice.reliability,
                        heat=choice.heat,
                    )
                )
        return events

    # ------------------------------------------------------------------
    # Player confirmation
    # ------------------------------------------------------------------
    def accept_suggestion(
        self, roster: ProcessorRoster, queue: JobQueue, proc_id: str, *, tick: int
    ) -> JobWork:
        """Bind the pending suggestion for ``proc_id`` without a daemon penalty."""

        roster.require(proc_id)
        choice = self.suggestions.get(proc_id)
        if choice is None or choice.job_id not in queue:
            self.suggestions.pop(proc_id, None)
            raise NoSuggestionError(proc_id)
        work = assign_job(roster, queue, proc_id, choice.job_id, tick=tick)
        del self.suggestions[proc_id]
        return work

    def forget(self, proc_id: str) -> None:
        self.suggestions.pop(proc_id, None)


__all__ = [
    "AutomationConfig",
    "AutomationScheduler",
    "Suggestion",
    "assign_job",
    "candidate_jobs",
    "ensure_automation_config",
    "is_eligible",
]
