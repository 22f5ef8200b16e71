"""Injectable uniform random sources.

Every stochastic roll in the core (burnout, quality noise, job spawning) goes
through an object satisfying :class:`RandomSource`.  :class:`RNGService`
derives an independent hashed stream per ``(stream_key, scope)`` so a unit's
failure rolls do not depend on how many other units rolled before it.
:class:`ScriptedRandom` replays fixed draws for tests.
"""

from __future__ import annotations

import json
import random
from collections import deque
from dataclasses import dataclass, field
from hashlib import sha256
from typing import Any, Deque, Dict, Iterable, Mapping, Protocol, Tuple, runtime_checkable

from ..errors import ConfigurationError


@runtime_checkable
class RandomSource(Protocol):
    """Anything that can produce the next uniform draw in ``[0, 1)`` for a stream."""

    def rand(self, stream_key: str, *, scope: Mapping[str, object] | None = None) -> float:
        ...


def _to_jsonable(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    raise TypeError(f"Unsupported scope value type: {type(value)!r}")


def _canonical_scope(scope: Mapping[str, object] | None) -> str:
    if not scope:
        return "{}"
    jsonable = _to_jsonable(dict(scope))
    return json.dumps(jsonable, sort_keys=True, separators=(",", ":"))


@dataclass(slots=True)
class RNGConfig:
    salt: str = "procfarm-rng-v1"
    audit_enabled: bool = True
    max_audit_streams: int = 256


@dataclass
class RNGService:
    seed: int
    config: RNGConfig = field(default_factory=RNGConfig)
    counters: dict[str, int] = field(default_factory=dict)
    audit: dict[str, Dict[str, object]] = field(default_factory=dict)

    def _stream_id(self, stream_key: str, scope_json: str) -> str:
        digest = sha256(f"{self.config.salt}|{self.seed}|{stream_key}|{scope_json}".encode()).hexdigest()
        return digest[:16]

    def _derived_seed(self, stream_key: str, scope_json: str, draw_index: int) -> int:
        blob = f"{self.config.salt}|{self.seed}|{stream_key}|{scope_json}|{draw_index}"
        digest = sha256(blob.encode()).digest()
        return int.from_bytes(digest[:8], "big", signed=False)

    def _next_index(self, stream_id: str) -> int:
        current = self.counters.get(stream_id, 0)
        self.counters[stream_id] = current + 1
        return current

    def _record_audit(self, stream_id: str, stream_key: str, scope_json: str) -> None:
        if not self.config.audit_enabled:
            return
        entry = self.audit.get(stream_id, {"stream_key": stream_key, "count": 0, "last_scope": scope_json})
        entry["stream_key"] = stream_key
        entry["count"] = self.counters.get(stream_id, entry.get("count", 0))
        entry["last_scope"] = scope_json
        self.audit[stream_id] = entry
        if len(self.audit) > self.config.max_audit_streams:
            # Drop the smallest counts to keep memory bounded.
            sorted_streams = sorted(self.audit.items(), key=lambda item: (item[1].get("count", 0), item[0]))
            for stream_to_drop, _ in sorted_streams[: -self.config.max_audit_streams]:
                self.audit.pop(stream_to_drop, None)

    def _derive_random(self, stream_key: str, scope: Mapping[str, object] | None) -> Tuple[random.Random, str]:
        scope_json = _canonical_scope(scope)
        stream_id = self._stream_id(stream_key, scope_json)
        draw_index = self._next_index(stream_id)
        seed = self._derived_seed(stream_key, scope_json, draw_index)
        rng = random.Random(seed)
        self._record_audit(stream_id, stream_key, scope_json)
        return rng, stream_id

    def rand(self, stream_key: str, *, scope: Mapping[str, object] | None = None) -> float:
        rng, _ = self._derive_random(stream_key, scope)
        return rng.random()

    def signature(self) -> str:
        payload = json.dumps(sorted(self.counters.items()), separators=(",", ":"))
        return sha256(payload.encode()).hexdigest()[:16]

    def audit_summary(self) -> list[tuple[str, int]]:
        if not self.config.audit_enabled:
            return []
        pairs = [
            (str(entry.get("stream_key") or stream_id), int(entry.get("count", 0)))  # type: ignore[arg-type]
            for stream_id, entry in self.audit.items()
        ]
        return sorted(pairs, key=lambda pair: (-pair[1], pair[0]))


class SequentialRandom:
    """Single sequential generator; draws depend on call order across all streams."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def rand(self, stream_key: str, *, scope: Mapping[str, object] | None = None) -> float:
        return self._rng.random()


class ScriptedRandom:
    """Replay fixed draws.

    ``draws`` is consumed in order by every stream.  ``per_stream`` maps a
    stream key (optionally suffixed with ``@<proc_id>`` when the scope carries a
    ``proc`` entry) to its own queue, which takes precedence.  Once a queue is
    exhausted ``default`` is returned.
    """

    def __init__(
        self,
        draws: Iterable[float] = (),
        *,
        per_stream: Mapping[str, Iterable[float]] | None = None,
        default: float = 0.0,
    ) -> None:
        self._draws: Deque[float] = deque(float(d) for d in draws)
        self._per_stream: Dict[str, Deque[float]] = {
            key: deque(float(d) for d in values) for key, values in (per_stream or {}).items()
        }
        self.default = float(default)
        self.calls: list[tuple[str, str]] = []

    def rand(self, stream_key: str, *, scope: Mapping[str, object] | None = None) -> float:
        proc = (scope or {}).get("proc")
        self.calls.append((stream_key, str(proc) if proc is not None else ""))
        for key in (f"{stream_key}@{proc}", stream_key):
            queue = self._per_stream.get(key)
            if queue:
                return queue.popleft()
        if self._draws:
            return self._draws.popleft()
        return self.default


def validate_random_source(source: Any) -> RandomSource:
    if source is None:
        raise ConfigurationError("a RandomSource is required before the first tick")
    if not callable(getattr(source, "rand", None)):
        raise ConfigurationError(f"{type(source).__name__} does not provide rand(stream_key, scope=...)")
    return source


def ensure_rng_service(world: Any) -> RandomSource:
    cfg = getattr(world, "rng_service_cfg", None)
    if not isinstance(cfg, RNGConfig):
        cfg = RNGConfig()
        setattr(world, "rng_service_cfg", cfg)

    service = getattr(world, "rng_service", None)
    if service is None:
        service = RNGService(seed=getattr(world, "seed", 0), config=cfg)
        setattr(world, "rng_service", service)
    return validate_random_source(service)


__all__ = [
    "RNGConfig",
    "RNGService",
    "RandomSource",
    "ScriptedRandom",
    "SequentialRandom",
    "ensure_rng_service",
    "validate_random_source",
]
