"""Tick scheduling and the engine that wires the subsystems together."""

from .engine import SimulationEngine, TickReport, build_engine
from .scheduler import Phase, SimulationClock, SimulationScheduler

__all__ = ["Phase", "SimulationClock", "SimulationEngine", "SimulationScheduler", "TickReport", "build_engine"]
