"""procfarm simulation package public façade."""

from .activity_log import ActivityLog
from .errors import ConfigurationError, ProcfarmError
from .events import EventBus, EventKind
from .runtime.rng_service import RandomSource, RNGService, ScriptedRandom
from .simulation.engine import SimulationEngine, TickReport, build_engine
from .world.jobs import Job, JobQueue
from .world.processors import DaemonMode, Processor, ProcessorRoster, ProcessorStatus
from .world.state import FarmState, new_farm
from .world.templates import FacilityTemplate, ProcessorModel, instantiate, starter_model
from .world.tunables import Tunables

__all__ = [
    "ActivityLog",
    "ConfigurationError",
    "DaemonMode",
    "EventBus",
    "EventKind",
    "FacilityTemplate",
    "FarmState",
    "Job",
    "JobQueue",
    "Processor",
    "ProcessorModel",
    "ProcessorRoster",
    "ProcessorStatus",
    "ProcfarmError",
    "RNGService",
    "RandomSource",
    "ScriptedRandom",
    "SimulationEngine",
    "TickReport",
    "Tunables",
    "build_engine",
    "instantiate",
    "new_farm",
    "starter_model",
]
