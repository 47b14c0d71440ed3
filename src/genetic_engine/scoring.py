from __future__ import annotations

import math
from collections.abc import Callable, Hashable, Iterable

from .executors import PhaseExecutor
from .types import ScoreOrder


def _evaluate(fitness_function: Callable[[Hashable], float], candidate: Hashable) -> float:
    score = float(fitness_function(candidate))
    if math.isnan(score):
        raise ValueError(f"fitness function returned NaN for {candidate!r}")
    return score


class ScoreCache:
    """Fitness memo: each distinct candidate is evaluated at most once per run."""

    def __init__(self, fitness_function: Callable[[Hashable], float], order: ScoreOrder):
        self._fitness_function = fitness_function
        self.order = order
        self._scores: dict[Hashable, float] = {}

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, candidate: Hashable) -> bool:
        return candidate in self._scores

    def __getitem__(self, candidate: Hashable) -> float:
        return self._scores[candidate]

    @property
    def scores(self) -> dict[Hashable, float]:
        return self._scores

    def missing(self, population: Iterable[Hashable]) -> list[Hashable]:
        """Distinct unscored candidates, in first-seen order."""
        return [x for x in dict.fromkeys(population) if x not in self._scores]

    def compute_scores(self, population: Iterable[Hashable], executor: PhaseExecutor) -> int:
        pending = self.missing(population)
        results = executor.run_phase(
            _evaluate, [(self._fitness_function, candidate) for candidate in pending]
        )
        for candidate, score in zip(pending, results):
            self._scores[candidate] = score
        return len(pending)

    def sort_key(self, candidate: Hashable) -> float:
        return self.order.sort_key(self._scores[candidate])

    def ranked(self, candidates: Iterable[Hashable]) -> list[Hashable]:
        """Sort best first; equal scores keep their input order."""
        return sorted(candidates, key=self.sort_key)

    def clear(self) -> None:
        self._scores.clear()
