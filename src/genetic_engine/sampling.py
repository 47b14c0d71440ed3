"""Weighted random selection used to pick crossover parents."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

import numpy as np

T = TypeVar("T")


def weighted_choose(
    values: Sequence[T],
    weight: Callable[[T], float],
    rng: np.random.Generator,
) -> Callable[[], T]:
    """Return a closure drawing one element with probability proportional to its weight.

    Weights are read once, when the closure is built. Each draw consumes exactly
    one uniform value from ``rng`` and walks the cumulative weights in the order
    of ``values``; the last element absorbs floating-point drift at the top of
    the range.
    """
    if values is None:
        raise TypeError("values cannot be None")
    if weight is None:
        raise TypeError("weight cannot be None")
    if rng is None:
        raise TypeError("rng cannot be None")
    if len(values) == 0:
        raise ValueError("cannot sample from an empty sequence")

    items = list(values)
    weights = np.empty(len(items), dtype=float)
    for i, item in enumerate(items):
        w = float(weight(item))
        if np.isnan(w):
            raise ValueError(f"NaN weights are not allowed: {item!r} has weight {w}")
        if w < 0.0:
            raise ValueError(f"negative weights are not allowed: {item!r} has weight {w}")
        weights[i] = w
    cumulative = np.cumsum(weights)
    total = float(cumulative[-1])
    last = len(items) - 1

    def draw() -> T:
        chosen = rng.uniform(0.0, total)
        idx = int(np.searchsorted(cumulative, chosen, side="left"))
        return items[min(idx, last)]

    return draw
