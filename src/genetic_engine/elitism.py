"""Best-of-all-time archive feeding elitism.

The archive keeps the best ``capacity`` candidates seen across all generations.
Each call grows it with the best members of the current population, copies its
best ``capacity`` entries into the next generation and trims everything ranked
below them.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field

import numpy as np

from .errors import InternalConsistencyError
from .scoring import ScoreCache

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EliteArchive:
    """Insertion-ordered set of elite candidates."""

    capacity: int
    members: dict[Hashable, None] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.members)

    def __contains__(self, candidate: Hashable) -> bool:
        return candidate in self.members

    def add(self, candidate: Hashable) -> None:
        self.members[candidate] = None

    def discard(self, candidate: Hashable) -> None:
        self.members.pop(candidate, None)

    def clear(self) -> None:
        self.members.clear()


def _check_size(archive: EliteArchive) -> None:
    if len(archive) < archive.capacity:
        raise InternalConsistencyError(
            f"elite archive holds {len(archive):,} candidates but should hold "
            f"at least {archive.capacity:,}"
        )


def select_elites(
    archive: EliteArchive,
    population: Sequence[Hashable],
    cache: ScoreCache,
) -> list[Hashable]:
    """Update ``archive`` and return the elites for the next generation, best first."""
    n = archive.capacity
    if not archive.members:
        # first call: seed from every scored candidate, not just this population
        elites = cache.ranked(cache.scores)[:n]
        for x in elites:
            archive.add(x)
        _check_size(archive)
        return elites

    for x in cache.ranked(dict.fromkeys(population))[:n]:
        archive.add(x)
    _check_size(archive)

    ranked = cache.ranked(archive.members)
    elites = ranked[:n]
    for x in ranked[n:]:
        archive.discard(x)
    _check_size(archive)
    logger.debug("archive refreshed: kept %d, trimmed %d", len(elites), len(ranked) - n)
    return elites


def archive_stats(archive: EliteArchive, cache: ScoreCache) -> dict[str, int | float]:
    """Return summary statistics: size, capacity, best/worst/mean score."""
    if not archive.members:
        return {"size": 0, "capacity": archive.capacity}
    ranked = cache.ranked(archive.members)
    scores = np.asarray([cache[x] for x in ranked], dtype=float)
    return {
        "size": len(ranked),
        "capacity": archive.capacity,
        "best_score": float(scores[0]),
        "worst_score": float(scores[-1]),
        "mean_score": float(scores.mean()),
    }
