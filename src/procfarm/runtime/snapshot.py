"""Plain-dict snapshots of the mutable farm state.

Only mutable fields are captured; processor model stats are content and are
looked up again by model name on restore.  The payload is JSON-safe so callers
can persist it however they like.
"""

from __future__ import annotations

import json
from dataclasses import fields, replace
from hashlib import sha256
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from ..errors import ConfigurationError
from ..world.jobs import Job, JobQueue
from ..world.processors import (
    DaemonMode,
    DaemonPenalty,
    JobWork,
    Processor,
    ProcessorRoster,
    ProcessorStatus,
    instance_sort_key,
)
from ..world.storage import DataStorage
from ..world.templates import ProcessorModel, instantiate, starter_model
from .economy import EconomyLedger
from .rng_service import RNGService

if TYPE_CHECKING:
    from ..simulation.engine import SimulationEngine

SNAPSHOT_SCHEMA_VERSION = "procfarm_state_v1"


def _job_to_dict(job: Job) -> Dict[str, Any]:
    return {
        "job_id": job.job_id,
        "name": job.name,
        "tags": sorted(job.tags),
        "base_time": job.base_time,
        "base_reward": job.base_reward,
        "quality_target": job.quality_target,
        "data_units": job.data_units,
        "deadline": job.deadline,
        "posted_tick": job.posted_tick,
    }


def _job_from_dict(data: Mapping[str, Any]) -> Job:
    return Job(
        job_id=str(data["job_id"]),
        name=str(data["name"]),
        tags=frozenset(data["tags"]),
        base_time=float(data["base_time"]),
        base_reward=float(data["base_reward"]),
        quality_target=int(data["quality_target"]),
        data_units=int(data["data_units"]),
        deadline=None if data.get("deadline") is None else float(data["deadline"]),
        posted_tick=int(data.get("posted_tick", 0)),
    )


def _processor_to_dict(proc: Processor) -> Dict[str, Any]:
    work = None
    if proc.work is not None:
        penalty = proc.work.penalty
        work = {
            "job": _job_to_dict(proc.work.job),
            "started_tick": proc.work.started_tick,
            "progress": proc.work.progress,
            "elapsed": proc.work.elapsed,
            "penalty": None
            if penalty is None
            else {"quality": penalty.quality, "time_multiplier": penalty.time_multiplier},
        }
    return {
        "instance_id": proc.instance_id,
        "model": proc.model,
        "instruction_set": sorted(proc.instruction_set),
        "cooling_level": proc.cooling_level,
        "hardening_level": proc.hardening_level,
        "wear": proc.wear,
        "status": proc.status.value,
        "daemon_mode": proc.daemon_mode.value,
        "daemon_affinity": {tag: float(v) for tag, v in sorted(proc.daemon_affinity.items())},
        "daemon_priority": proc.daemon_priority,
        "daemon_unlocked": proc.daemon_unlocked,
        "daemon_penalty": {
            "quality": proc.daemon_penalty.quality,
            "time_multiplier": proc.daemon_penalty.time_multiplier,
        },
        "honor_cooling_mins": proc.honor_cooling_mins,
        "ignore_heat_budget": proc.ignore_heat_budget,
        "work": work,
    }


def _processor_from_dict(data: Mapping[str, Any], models: Mapping[str, ProcessorModel]) -> Processor:
    model = models.get(str(data["model"]))
    if model is None:
        raise ConfigurationError(f"snapshot references unknown processor model {data['model']!r}")
    proc = instantiate(model, str(data["instance_id"]))
    proc.instruction_set = frozenset(data.get("instruction_set", proc.instruction_set))
    proc.cooling_level = int(data.get("cooling_level", 0))
    proc.hardening_level = int(data.get("hardening_level", 0))
    proc.wear = min(1.0, max(0.0, float(data.get("wear", 0.0))))
    proc.status = ProcessorStatus(data.get("status", ProcessorStatus.IDLE.value))
    proc.daemon_mode = DaemonMode(data.get("daemon_mode", DaemonMode.OFF.value))
    proc.daemon_affinity = {str(tag): float(v) for tag, v in dict(data.get("daemon_affinity", {})).items()}
    proc.daemon_priority = int(data.get("daemon_priority", 0))
    proc.daemon_unlocked = bool(data.get("daemon_unlocked", False))
    tuned = data.get("daemon_penalty")
    if tuned is not None:
        proc.daemon_penalty = DaemonPenalty(
            quality=int(tuned["quality"]), time_multiplier=float(tuned["time_multiplier"])
        )
    proc.honor_cooling_mins = bool(data.get("honor_cooling_mins", True))
    proc.ignore_heat_budget = bool(data.get("ignore_heat_budget", False))
    work = data.get("work")
    if work is not None:
        penalty = work.get("penalty")
        proc.work = JobWork(
            job=_job_from_dict(work["job"]),
            started_tick=int(work.get("started_tick", 0)),
            penalty=None
            if penalty is None
            else DaemonPenalty(quality=int(penalty["quality"]), time_multiplier=float(penalty["time_multiplier"])),
            progress=float(work.get("progress", 0.0)),
            elapsed=float(work.get("elapsed", 0.0)),
        )
    return proc


def _economy_from_dict(data: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(EconomyLedger)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"snapshot economy has unknown fields: {', '.join(unknown)}")
    values = dict(data)
    if "purchases" in values:
        values["purchases"] = {str(key): int(count) for key, count in dict(values["purchases"]).items()}
    return values


def snapshot_state(engine: "SimulationEngine") -> Dict[str, Any]:
    state = engine.state
    ledger = engine.economy
    rng = engine.rng
    economy = {f.name: getattr(ledger, f.name) for f in fields(EconomyLedger)}
    economy["purchases"] = dict(sorted(ledger.purchases.items()))
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "seed": state.seed,
        "tick": state.tick,
        "processors": [_processor_to_dict(proc) for proc in state.roster],
        "retired": [
            _processor_to_dict(state.roster.retired[proc_id])
            for proc_id in sorted(state.roster.retired, key=instance_sort_key)
        ],
        "jobs": [_job_to_dict(job) for job in state.jobs],
        "queue_capacity": state.jobs.capacity,
        "storage": {"capacity": state.storage.capacity, "stored": state.storage.stored},
        "economy": economy,
        "unlocked_tags": list(state.unlocked_tags),
        "paste_ticks": state.paste_ticks,
        "next_unit": state.next_unit,
        "spawner": {"counter": engine.spawner.counter, "timer": engine.spawner.timer},
        "rng_counters": dict(sorted(rng.counters.items())) if isinstance(rng, RNGService) else None,
    }


def restore_state(
    engine: "SimulationEngine",
    payload: Mapping[str, Any],
    *,
    models: Optional[Mapping[str, ProcessorModel]] = None,
) -> None:
    """Load ``payload`` into ``engine`` in place.

    ``models`` maps model names to content templates; the starter chassis is
    always known.  Every value is parsed before anything is assigned, so a
    malformed payload leaves the engine untouched.
    """

    if payload.get("schema_version") != SNAPSHOT_SCHEMA_VERSION:
        raise ConfigurationError(f"unsupported snapshot schema {payload.get('schema_version')!r}")
    catalogue: Dict[str, ProcessorModel] = {starter_model().name: starter_model()}
    catalogue.update(models or {})
    state = engine.state

    roster = ProcessorRoster()
    for data in payload.get("processors", []):
        roster.add(_processor_from_dict(data, catalogue))
    for data in payload.get("retired", []):
        proc = _processor_from_dict(data, catalogue)
        roster.retired[proc.instance_id] = proc
    roster.check_invariants()
    jobs = JobQueue(
        (_job_from_dict(data) for data in payload.get("jobs", [])),
        capacity=int(payload.get("queue_capacity", state.jobs.capacity)),
    )
    stored = payload.get("storage", {})
    storage = DataStorage(capacity=int(stored.get("capacity", 0)), stored=int(stored.get("stored", 0)))
    economy = _economy_from_dict(dict(payload.get("economy", {})))
    seed = int(payload.get("seed", state.seed))
    tick = int(payload.get("tick", 0))
    unlocked_tags = [str(tag) for tag in payload.get("unlocked_tags", state.unlocked_tags)]
    paste_ticks = int(payload.get("paste_ticks", 0))
    next_unit = int(payload.get("next_unit", state.next_unit))
    spawner = payload.get("spawner", {})
    spawn_counter = int(spawner.get("counter", 0))
    spawn_timer = float(spawner.get("timer", 0.0))
    counters = payload.get("rng_counters")
    rng_counters = None if counters is None else {str(k): int(v) for k, v in counters.items()}

    state.roster = roster
    state.jobs = jobs
    state.storage = storage
    for name, value in economy.items():
        setattr(engine.economy, name, value)
    if engine.economy.daemon_unlocked:
        state.template = replace(state.template, daemon_unlocked=True)
    state.seed = seed
    state.tick = tick
    state.unlocked_tags = unlocked_tags
    state.paste_ticks = paste_ticks
    state.next_unit = next_unit
    engine.spawner.counter = spawn_counter
    engine.spawner.timer = spawn_timer
    if isinstance(engine.rng, RNGService):
        engine.rng.seed = seed
        if rng_counters is not None:
            engine.rng.counters = rng_counters
    engine.scheduler.clock.current_tick = tick
    engine.automation.suggestions.clear()


def state_signature(engine: "SimulationEngine") -> str:
    blob = json.dumps(snapshot_state(engine), sort_keys=True, separators=(",", ":"))
    return sha256(blob.encode("utf-8")).hexdigest()


__all__ = ["SNAPSHOT_SCHEMA_VERSION", "restore_state", "snapshot_state", "state_signature"]
