from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ScoreOrder(Enum):
    """Direction in which scores are ranked when picking elites."""

    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"

    def sort_key(self, score: float) -> float:
        return score if self is ScoreOrder.MINIMIZE else -score

    def is_better(self, score: float, other: float) -> bool:
        if self is ScoreOrder.MINIMIZE:
            return score < other
        return score > other


@dataclass(frozen=True, slots=True)
class GenerationStats:
    """Operator counts of the last completed generation."""

    mutations: int = 0
    crossovers: int = 0
    random_creations: int = 0


@dataclass(frozen=True, slots=True)
class GeneticAlgorithmState:
    """Read-only snapshot of a genetic algorithm run.

    ``population`` is the population of the latest generation and ``scores``
    holds every candidate evaluated so far, including candidates that are no
    longer part of the population.
    """

    generation: int
    population: tuple[Any, ...]
    scores: Mapping[Hashable, float]
    surviving_population: int
    order: ScoreOrder
    stats: GenerationStats = GenerationStats()

    @property
    def mutations(self) -> int:
        return self.stats.mutations

    @property
    def crossovers(self) -> int:
        return self.stats.crossovers

    @property
    def random_creations(self) -> int:
        return self.stats.random_creations

    def best(self) -> Any:
        """Best-scoring candidate ever evaluated; ties keep evaluation order."""
        if not self.scores:
            raise LookupError("no candidate has been scored yet")
        return min(self.scores, key=lambda x: self.order.sort_key(self.scores[x]))

    def best_score(self) -> float:
        return self.scores[self.best()]
