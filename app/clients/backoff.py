"""Exponential backoff schedule used when retrying upstream search calls."""

from __future__ import annotations

from collections.abc import Iterator
from random import Random, SystemRandom


def exponential_backoff(
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    factor: float = 2.0,
    max_delay: float = 8.0,
    jitter: float = 0.25,
    rng: Random | None = None,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds) pairs; the delay applies after a failed attempt."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if max_delay < base_delay:
        raise ValueError("max_delay must be >= base_delay")
    if jitter < 0:
        raise ValueError("jitter must be >= 0")

    source = rng or SystemRandom()
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        jitter_offset = source.uniform(0, delay * jitter) if jitter > 0 and delay > 0 else 0.0
        yield attempt, min(delay + jitter_offset, max_delay)
        delay = min(delay * factor, max_delay)
