from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..runtime.config import GENERAL_TAG
from .jobs import JobQueue
from .processors import ProcessorRoster
from .storage import DataStorage
from .templates import FacilityTemplate, ProcessorModel, instantiate, starter_model
from .tunables import Tunables


@dataclass
class FarmState:
    """Everything the tick pass reads or writes.

    Subsystem configs, ledgers and telemetry are attached lazily by the
    ``ensure_*`` helpers, so only the core collections are declared here.
    """

    seed: int = 0
    tick: int = 0
    roster: ProcessorRoster = field(default_factory=ProcessorRoster)
    jobs: JobQueue = field(default_factory=JobQueue)
    storage: DataStorage = field(default_factory=DataStorage)
    tunables: Tunables = field(default_factory=Tunables)
    template: FacilityTemplate = field(default_factory=FacilityTemplate)
    unlocked_tags: List[str] = field(default_factory=lambda: [GENERAL_TAG])
    paste_ticks: int = 0
    next_unit: int = 1
    rng_service: Any = None

    def next_instance_id(self) -> str:
        while True:
            candidate = f"cpu-{self.next_unit:02d}"
            self.next_unit += 1
            if candidate not in self.roster and candidate not in self.roster.retired:
                return candidate


def new_farm(
    seed: int = 0,
    *,
    units: int = 1,
    model: Optional[ProcessorModel] = None,
    template: Optional[FacilityTemplate] = None,
) -> FarmState:
    """Build a fresh farm with ``units`` copies of ``model`` (the starter chassis by default)."""

    state = FarmState(seed=seed, template=template or FacilityTemplate())
    model = model or starter_model()
    for _ in range(units):
        state.roster.add(instantiate(model, state.next_instance_id(), state.template))
    return state


__all__ = ["FarmState", "new_farm"]
