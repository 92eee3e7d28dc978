"""Millisecond timestamps for created/updated fields."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


def next_timestamp(clock: Clock, previous: int | None = None) -> int:
    """Current time, bumped past ``previous`` so updates are strictly later."""
    now = clock()
    if previous is not None and now <= previous:
        return previous + 1
    return now
