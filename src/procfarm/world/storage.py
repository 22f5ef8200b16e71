from __future__ import annotations

from dataclasses import dataclass

from ..runtime.config import STARTING_STORAGE


@dataclass(slots=True)
class DataStorage:
    capacity: int = STARTING_STORAGE
    stored: int = 0

    @property
    def free_capacity(self) -> int:
        return max(0, self.capacity - self.stored)

    def store(self, amount: int) -> int:
        """Store up to ``amount`` units and return how many actually fit."""

        to_store = max(0, min(int(amount), self.free_capacity))
        self.stored += to_store
        return to_store

    def expand(self, extra: int) -> None:
        if extra < 0:
            raise ValueError("extra capacity must be non-negative")
        self.capacity += extra


__all__ = ["DataStorage"]
