"""Wall-clock budget and cooperative cancellation for a single run."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

Clock = Callable[[], float]


@dataclass(frozen=True)
class TimeBudget:
    """Immutable start timestamp plus ceiling; only ever read."""

    started_at: float
    max_duration_ms: int
    clock: Clock = field(default=time.monotonic, repr=False, compare=False)

    @classmethod
    def start(cls, max_duration_ms: int, *, clock: Clock = time.monotonic) -> TimeBudget:
        if max_duration_ms < 0:
            raise ValueError("max_duration_ms must be >= 0")
        return cls(started_at=clock(), max_duration_ms=max_duration_ms, clock=clock)

    def elapsed_ms(self) -> int:
        return int((self.clock() - self.started_at) * 1000)

    def remaining_ms(self) -> int:
        return max(0, self.max_duration_ms - self.elapsed_ms())

    def is_expired(self) -> bool:
        return self.elapsed_ms() >= self.max_duration_ms


class CancellationToken:
    """Polled between units of work; once cancelled it stays cancelled."""

    def __init__(self, predicate: Callable[[], bool] | None = None) -> None:
        self._predicate = predicate
        self._cancelled = False

    @classmethod
    def never(cls) -> CancellationToken:
        return cls()

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        if not self._cancelled and self._predicate is not None and self._predicate():
            self._cancelled = True
        return self._cancelled
