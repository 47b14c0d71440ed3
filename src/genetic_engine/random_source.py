"""Random source ownership and per-work-item substreams.

The engine owns one ``numpy.random.Generator`` per run. Every unit of work
(creation, crossover, mutation) gets its own child generator, spawned on the
loop thread in a fixed order before the work is scheduled, so results do not
depend on which worker runs which item.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

import numpy as np

T = TypeVar("T")

_BOUND = threading.local()


def make_rng(source: np.random.Generator | int | None = None) -> np.random.Generator:
    if isinstance(source, np.random.Generator):
        return source
    if source is None or isinstance(source, (int, np.integer)):
        return np.random.default_rng(source)
    raise TypeError(f"unsupported random source: {type(source).__name__}")


def spawn_streams(rng: np.random.Generator, count: int) -> list[np.random.Generator]:
    if count <= 0:
        return []
    return rng.spawn(count)


@contextmanager
def bound_rng(rng: np.random.Generator) -> Iterator[np.random.Generator]:
    previous = getattr(_BOUND, "rng", None)
    _BOUND.rng = rng
    try:
        yield rng
    finally:
        _BOUND.rng = previous


def current_rng() -> np.random.Generator:
    """Generator assigned to the work item running on this thread.

    Creation, crossover and mutation operators should draw from it instead of a
    shared generator to keep parallel runs reproducible.
    """
    rng = getattr(_BOUND, "rng", None)
    if rng is None:
        raise RuntimeError("current_rng() called outside of a genetic algorithm work item")
    return rng


def call_with_stream(stream: np.random.Generator, fn: Callable[..., T], *args: Any) -> T:
    with bound_rng(stream):
        return fn(*args)
