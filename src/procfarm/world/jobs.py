from __future__ import annotations

from dataclasses import dataclass, field
from hashlib import sha256
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..errors import InvalidJobError, UnknownJobError
from ..runtime.config import GENERAL_TAG, JOB_SPAWN_INTERVAL_TICKS, MAX_QUEUED_JOBS, SIMD_TAG
from ..runtime.rng_service import RandomSource


@dataclass(frozen=True, slots=True)
class Job:
    job_id: str
    name: str
    tags: frozenset[str]
    base_time: float
    base_reward: float
    quality_target: int
    data_units: int
    deadline: Optional[float] = None
    posted_tick: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags))
        if not self.tags:
            raise InvalidJobError(f"job {self.job_id} must carry at least one tag")
        if self.base_time <= 0:
            raise InvalidJobError(f"job {self.job_id} base_time must be positive")
        if not 0 <= self.quality_target <= 100:
            raise InvalidJobError(f"job {self.job_id} quality_target must lie in [0, 100]")
        if self.base_reward < 0 or self.data_units < 0:
            raise InvalidJobError(f"job {self.job_id} reward and data yield must be non-negative")
        if self.deadline is not None and self.deadline <= 0:
            raise InvalidJobError(f"job {self.job_id} deadline must be positive when set")

    @property
    def tag_label(self) -> str:
        return "+".join(sorted(self.tags))

    def expires_at(self) -> Optional[float]:
        """Tick after which a job still waiting in the queue is dropped."""

        if self.deadline is None:
            return None
        return self.posted_tick + self.deadline


class JobQueue:
    """Ordered job board: spawns append at the tail, assignment pops anywhere."""

    def __init__(self, jobs: Iterable[Job] = (), *, capacity: int = MAX_QUEUED_JOBS) -> None:
        self.capacity = max(1, int(capacity))
        self._jobs: List[Job] = []
        for job in jobs:
            self.append(job)

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs))

    def __contains__(self, job_id: object) -> bool:
        return any(job.job_id == job_id for job in self._jobs)

    @property
    def is_full(self) -> bool:
        return len(self._jobs) >= self.capacity

    def append(self, job: Job) -> bool:
        """Add ``job`` at the tail; returns ``False`` (job dropped) when the board is full."""

        if job.job_id in self:
            raise InvalidJobError(f"job {job.job_id} is already queued")
        if self.is_full:
            return False
        self._jobs.append(job)
        return True

    def get(self, job_id: str) -> Job:
        for job in self._jobs:
            if job.job_id == job_id:
                return job
        raise UnknownJobError(job_id)

    def position(self, job_id: str) -> int:
        for index, job in enumerate(self._jobs):
            if job.job_id == job_id:
                return index
        raise UnknownJobError(job_id)

    def remove(self, job_id: str) -> Job:
        job = self.get(job_id)
        self._jobs.remove(job)
        return job

    def expire(self, tick: int) -> List[Job]:
        expired = [job for job in self._jobs if job.expires_at() is not None and tick > job.expires_at()]
        for job in expired:
            self._jobs.remove(job)
        return expired

    def signature(self) -> str:
        blob = "|".join(f"{job.job_id}:{job.tag_label}:{job.posted_tick}" for job in self._jobs)
        return sha256(blob.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class JobTemplate:
    """Content template describing the rolled ranges for a job stream."""

    tags: frozenset[str]
    name: str
    base_time: Tuple[int, int]
    base_reward: Tuple[int, int]
    quality_target: Tuple[int, int]
    data_units: Tuple[int, int]
    deadline: Optional[float] = None
    weight: int = 2


def default_job_templates() -> Dict[str, JobTemplate]:
    return {
        GENERAL_TAG: JobTemplate(
            tags=frozenset({GENERAL_TAG}),
            name="General Task",
            base_time=(40, 90),
            base_reward=(70, 140),
            quality_target=(55, 85),
            data_units=(12, 32),
            weight=4,
        ),
        SIMD_TAG: JobTemplate(
            tags=frozenset({SIMD_TAG}),
            name="SIMD Workload",
            base_time=(60, 130),
            base_reward=(160, 260),
            quality_target=(65, 95),
            data_units=(36, 72),
            weight=2,
        ),
    }


def _roll_int(rng: RandomSource, stream: str, bounds: Tuple[int, int], scope: Mapping[str, object]) -> int:
    low, high = bounds
    if high <= low:
        return int(low)
    draw = rng.rand(stream, scope=scope)
    return int(low + min(high - low - 1, int(draw * (high - low))))


@dataclass(slots=True)
class SpawnConfig:
    enabled: bool = True
    interval_ticks: int = JOB_SPAWN_INTERVAL_TICKS


@dataclass
class JobSpawner:
    """Post new jobs to the board on a fixed cadence."""

    templates: Mapping[str, JobTemplate] = field(default_factory=default_job_templates)
    config: SpawnConfig = field(default_factory=SpawnConfig)
    counter: int = 0
    timer: float = 0.0

    def choose_template(
        self, rng: RandomSource, unlocked_tags: Sequence[str], supported: Iterable[str]
    ) -> JobTemplate:
        supported_tags = set(supported)
        pool: List[JobTemplate] = []
        for tag in unlocked_tags:
            template = self.templates.get(tag)
            if template is None or not template.tags <= supported_tags:
                continue
            pool.extend([template] * max(0, template.weight))
        if not pool:
            return self.templates[GENERAL_TAG]
        draw = rng.rand("jobs.tag", scope={"n": self.counter})
        return pool[min(len(pool) - 1, int(draw * len(pool)))]

    def roll_job(self, template: JobTemplate, rng: RandomSource, *, tick: int) -> Job:
        self.counter += 1
        scope = {"n": self.counter}
        return Job(
            job_id=f"job-{self.counter}",
            name=f"{template.name} #{self.counter}",
            tags=template.tags,
            base_time=float(_roll_int(rng, "jobs.time", template.base_time, scope)),
            base_reward=float(_roll_int(rng, "jobs.reward", template.base_reward, scope)),
            quality_target=_roll_int(rng, "jobs.quality", template.quality_target, scope),
            data_units=_roll_int(rng, "jobs.data", template.data_units, scope),
            deadline=template.deadline,
            posted_tick=tick,
        )

    def advance(
        self,
        queue: JobQueue,
        rng: RandomSource,
        *,
        tick: int,
        dt: float,
        unlocked_tags: Sequence[str],
        supported: Iterable[str],
    ) -> List[Job]:
        if not self.config.enabled:
            return []
        posted: List[Job] = []
        supported_tags = frozenset(supported)
        self.timer += dt
        interval = max(1, int(self.config.interval_ticks))
        while self.timer >= interval:
            self.timer -= interval
            if queue.is_full:
                continue
            template = self.choose_template(rng, unlocked_tags, supported_tags)
            job = self.roll_job(template, rng, tick=tick)
            queue.append(job)
            posted.append(job)
        return posted


def ensure_job_spawner(world: Any) -> JobSpawner:
    cfg = getattr(world, "spawn_cfg", None)
    if not isinstance(cfg, SpawnConfig):
        cfg = SpawnConfig()
        setattr(world, "spawn_cfg", cfg)
    spawner = getattr(world, "spawner", None)
    if not isinstance(spawner, JobSpawner):
        spawner = JobSpawner(config=cfg)
        setattr(world, "spawner", spawner)
    return spawner


__all__ = [
    "Job",
    "JobQueue",
    "JobSpawner",
    "JobTemplate",
    "SpawnConfig",
    "default_job_templates",
    "ensure_job_spawner",
]
