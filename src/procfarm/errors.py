"""Typed failures raised at the call boundary of the simulation core.

Resolution math never raises: burnouts, destruction and expiry are lifecycle
transitions reported as events.  The exceptions below are reserved for
structural misuse (assigning to a busy unit, upgrading past a cap, running the
engine without a random source) so callers can tell *which* precondition was
violated.
"""

from __future__ import annotations

from typing import Iterable


class ProcfarmError(Exception):
    """Base class for every error raised by :mod:`procfarm`."""


class ConfigurationError(ProcfarmError):
    """Raised when tunables or the random source are missing or malformed."""


class InvalidJobError(ProcfarmError, ValueError):
    """Raised when a job record violates its own invariants."""


class UnknownProcessorError(ProcfarmError, KeyError):
    def __init__(self, proc_id: str) -> None:
        super().__init__(proc_id)
        self.proc_id = proc_id

    def __str__(self) -> str:
        return f"unknown processor {self.proc_id!r}"


class UnknownJobError(ProcfarmError, KeyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"job {self.job_id!r} is not queued"


class AssignmentError(ProcfarmError):
    """A job could not be bound to a processor."""

    def __init__(self, proc_id: str, message: str) -> None:
        super().__init__(f"{proc_id}: {message}")
        self.proc_id = proc_id


class ProcessorBusyError(AssignmentError):
    def __init__(self, proc_id: str) -> None:
        super().__init__(proc_id, "processor is busy")


class ProcessorInoperativeError(AssignmentError):
    def __init__(self, proc_id: str, status: str) -> None:
        super().__init__(proc_id, f"processor is not operational ({status})")
        self.status = status


class IncompatibleInstructionError(AssignmentError):
    def __init__(self, proc_id: str, missing: Iterable[str]) -> None:
        self.missing = tuple(sorted(missing))
        super().__init__(proc_id, f"processor lacks instruction(s) {', '.join(self.missing)}")


class UpgradeCapError(ProcfarmError, ValueError):
    def __init__(self, proc_id: str, upgrade: str, level: int, cap: int) -> None:
        super().__init__(f"{proc_id}: {upgrade} level {level} exceeds cap {cap}")
        self.proc_id = proc_id
        self.upgrade = upgrade
        self.level = level
        self.cap = cap


class AutomationLockedError(ProcfarmError):
    def __init__(self, proc_id: str, reason: str = "daemon firmware not installed") -> None:
        super().__init__(f"{proc_id}: {reason}")
        self.proc_id = proc_id


class NoSuggestionError(ProcfarmError):
    def __init__(self, proc_id: str) -> None:
        super().__init__(f"{proc_id}: no assist suggestion is ready")
        self.proc_id = proc_id


class InsufficientCreditsError(ProcfarmError):
    def __init__(self, cost: float, credits: float) -> None:
        super().__init__(f"need {cost:.0f} cr, have {credits:.0f} cr")
        self.cost = cost
        self.credits = credits


class ReplacementError(ProcfarmError):
    def __init__(self, proc_id: str, message: str) -> None:
        super().__init__(f"{proc_id}: {message}")
        self.proc_id = proc_id


class PurchaseError(ProcfarmError):
    """Raised when a store item cannot be bought in the current state."""

    def __init__(self, item: str, message: str) -> None:
        super().__init__(f"{item}: {message}")
        self.item = item


class FirmwareInstalledError(PurchaseError):
    def __init__(self, proc_id: str) -> None:
        super().__init__(proc_id, "daemon firmware already installed")
        self.proc_id = proc_id


class RosterInvariantError(ProcfarmError, AssertionError):
    """Raised by :meth:`ProcessorRoster.check_invariants` when state is corrupt."""


class TickInProgressError(ProcfarmError, RuntimeError):
    """Raised when state is mutated from outside while a tick is being processed."""


__all__ = [
    "AssignmentError",
    "AutomationLockedError",
    "ConfigurationError",
    "FirmwareInstalledError",
    "IncompatibleInstructionError",
    "InsufficientCreditsError",
    "InvalidJobError",
    "NoSuggestionError",
    "ProcessorBusyError",
    "ProcessorInoperativeError",
    "ProcfarmError",
    "PurchaseError",
    "ReplacementError",
    "RosterInvariantError",
    "TickInProgressError",
    "UnknownJobError",
    "UnknownProcessorError",
    "UpgradeCapError",
]
