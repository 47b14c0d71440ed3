"""Generational loop of the genetic algorithm.

One engine drives both execution modes. Every random decision (Bernoulli
trials, parent selection, substream spawning) is taken on the calling thread
before a phase is handed to the executor, so a serial run and a worker-pool run
seeded identically evaluate exactly the same candidates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable, Sequence
from types import MappingProxyType
from typing import Any

import numpy as np

from .config import GeneticAlgorithmConfig
from .elitism import EliteArchive, archive_stats, select_elites
from .errors import InternalConsistencyError
from .executors import PhaseExecutor, SerialExecutor, WorkerPoolExecutor
from .logging_io import append_jsonl, log_generation_report
from .random_source import call_with_stream, make_rng, spawn_streams
from .sampling import weighted_choose
from .scoring import ScoreCache
from .types import GenerationStats, GeneticAlgorithmState

LOGGER = logging.getLogger(__name__)


class GeneticAlgorithm:
    """Elitist genetic algorithm over caller-defined hashable candidates.

    Usage::

        with GeneticAlgorithm.parallel(max_workers=4, rng=42) as ga:
            ga.set_state(config)
            ga.run()
            best = ga.get_state().best()
    """

    def __init__(
        self,
        rng: np.random.Generator | int | None = None,
        executor: PhaseExecutor | None = None,
    ):
        self._rng = make_rng(rng)
        if executor is None:
            executor = SerialExecutor()
        elif not callable(getattr(executor, "run_phase", None)):
            raise TypeError(f"executor must provide run_phase(), got {type(executor).__name__}")
        self._executor = executor
        self._config: GeneticAlgorithmConfig | None = None
        self._started = False
        self._population: list[Any] = []
        self._next_generation: list[Any] = []
        self._cache: ScoreCache | None = None
        self._archive = EliteArchive(capacity=0)
        self._surviving_population = 0
        self._generation = 0
        self._start_time = 0.0
        self._stats = GenerationStats()

    @classmethod
    def parallel(
        cls,
        max_workers: int | None = None,
        rng: np.random.Generator | int | None = None,
    ) -> "GeneticAlgorithm":
        return cls(rng=rng, executor=WorkerPoolExecutor(max_workers=max_workers))

    def __enter__(self) -> "GeneticAlgorithm":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        self.close()
        return False

    def close(self) -> None:
        self._executor.close()

    @property
    def executor(self) -> PhaseExecutor:
        return self._executor

    def set_state(self, config: GeneticAlgorithmConfig) -> None:
        if not isinstance(config, GeneticAlgorithmConfig):
            raise TypeError(f"expected GeneticAlgorithmConfig, got {type(config).__name__}")
        size = config.population_size
        self._config = config
        self._started = False
        self._population = [None] * size
        self._next_generation = [None] * size
        self._cache = ScoreCache(config.fitness_function, config.order)
        self._surviving_population = config.surviving_population
        self._archive = EliteArchive(capacity=self._surviving_population)
        self._generation = 0
        self._start_time = time.monotonic()
        self._stats = GenerationStats()

    initialize = set_state

    def get_state(self) -> GeneticAlgorithmState:
        if self._config is None or self._cache is None:
            raise RuntimeError("set_state() must be called before get_state()")
        return GeneticAlgorithmState(
            generation=self._generation,
            population=tuple(x for x in self._population if x is not None),
            scores=MappingProxyType(dict(self._cache.scores)),
            surviving_population=self._surviving_population,
            order=self._config.order,
            stats=self._stats,
        )

    def run(self) -> GeneticAlgorithmState:
        if self._config is None:
            raise RuntimeError("set_state() must be called before run()")
        # a previous run, finished or aborted, leaves stale state behind
        if self._started:
            self.set_state(self._config)
        self._started = True
        cfg = self._config
        self._start_time = time.monotonic()
        self._emit("run_started", {"executor": self._executor.name, **cfg.hyperparameters()})

        self._initial_creation()
        while True:
            reason = self._termination_reason()
            if reason is not None:
                break
            self._run_generation()

        self._archive.clear()
        LOGGER.debug("run finished after %d generations: %s", self._generation, reason)
        payload: dict[str, Any] = {"generation": self._generation, "stop_reason": reason}
        if len(self._cache):
            state = self.get_state()
            payload["best_score"] = state.best_score()
            payload["best_candidate"] = cfg.serializer(state.best())
        payload["evaluations"] = len(self._cache)
        self._emit("run_finished", payload)
        return self.get_state()

    def _emit(self, event_type: str, payload: dict) -> None:
        if self._config is not None and self._config.event_log_path:
            append_jsonl(event_type, payload, self._config.event_log_path)

    def _termination_reason(self) -> str | None:
        cfg = self._config
        if cfg.max_seconds is not None and time.monotonic() - self._start_time >= cfg.max_seconds:
            return "max_seconds"
        if cfg.max_generations is not None and self._generation >= cfg.max_generations:
            return "max_generations"
        if cfg.stop_criterion is not None and any(
            cfg.stop_criterion(x) for x in self._population
        ):
            return "stop_criterion"
        return None

    def _run_phase(
        self,
        label: str,
        operator: Callable[..., Any],
        arguments: Sequence[tuple[Any, ...]],
    ) -> list[Any]:
        streams = spawn_streams(self._rng, len(arguments))
        results = self._executor.run_phase(
            call_with_stream,
            [(stream, operator, *args) for stream, args in zip(streams, arguments)],
        )
        for result in results:
            if result is None:
                raise TypeError(f"{label} operator returned None")
        return results

    def _initial_creation(self) -> None:
        cfg = self._config
        seeds = cfg.first_generation
        self._population[: len(seeds)] = seeds
        missing = cfg.population_size - len(seeds)
        created = self._run_phase("creation", cfg.creation, [()] * missing)
        self._population[len(seeds) :] = created

    def _run_generation(self) -> None:
        cfg = self._config
        size = cfg.population_size

        scored = self._cache.compute_scores(self._population, self._executor)

        elites = select_elites(self._archive, self._population, self._cache)
        self._next_generation[: len(elites)] = elites
        filled = len(elites)

        crossovers = self._perform_crossovers(filled)
        filled += crossovers

        mutations = self._perform_mutations(filled)

        random_creations = size - self._surviving_population - crossovers
        if filled + random_creations != size:
            raise InternalConsistencyError(
                f"cannot place {random_creations:,} random creations after {filled:,} "
                f"candidates in a population of {size:,}"
            )
        created = self._run_phase("creation", cfg.creation, [()] * random_creations)
        self._next_generation[filled:] = created

        placed = sum(1 for x in self._next_generation if x is not None)
        if len(self._population) != size or len(self._next_generation) != size or placed != size:
            raise InternalConsistencyError(
                "population and next generation do not have the right size: they were "
                f"{len(self._population):,} and {placed:,} but should have been {size:,}"
            )

        self._population, self._next_generation = self._next_generation, self._population
        self._next_generation[:] = [None] * size
        self._generation += 1
        self._stats = GenerationStats(
            mutations=mutations, crossovers=crossovers, random_creations=random_creations
        )
        LOGGER.debug(
            "generation %d: scored=%d crossovers=%d mutations=%d random_creations=%d",
            self._generation,
            scored,
            crossovers,
            mutations,
            random_creations,
        )
        self._report(elites)

    def _parent_sampler(self) -> Callable[[], Hashable]:
        cache = self._cache
        positive = {x for x in self._population if cache[x] > 0.0}
        if len(positive) < 2:
            raise ValueError(
                "crossover needs at least two distinct candidates with a positive score, "
                f"found {len(positive)}"
            )
        return weighted_choose(self._population, cache.__getitem__, self._rng)

    def _perform_crossovers(self, start: int) -> int:
        cfg = self._config
        size = cfg.population_size
        parents: list[tuple[Hashable, Hashable]] = []
        sampler: Callable[[], Hashable] | None = None
        for _ in range(size):
            if start + len(parents) >= size:
                break
            if self._rng.random() < cfg.crossover_rate:
                if sampler is None:
                    sampler = self._parent_sampler()
                first = sampler()
                second = sampler()
                while second == first:
                    second = sampler()
                parents.append((first, second))

        children = self._run_phase("crossover", cfg.crossover, parents)
        self._next_generation[start : start + len(children)] = children
        return len(children)

    def _perform_mutations(self, filled: int) -> int:
        cfg = self._config
        targets = [i for i in range(filled) if self._rng.random() < cfg.mutation_rate]
        mutated = self._run_phase(
            "mutation", cfg.mutation, [(self._next_generation[i],) for i in targets]
        )
        for i, x in zip(targets, mutated):
            self._next_generation[i] = x
        return len(targets)

    def _report(self, elites: Sequence[Hashable]) -> None:
        cfg = self._config
        if cfg.verbose:
            log_generation_report(
                self._generation,
                self._cache.ranked(self._archive.members),
                self._cache.scores,
                cfg.serializer,
                best=cfg.report_best,
                worst=cfg.report_worst,
                median=cfg.report_median,
                average=cfg.report_average,
            )
        if cfg.event_log_path:
            payload: dict[str, Any] = {
                "generation": self._generation,
                "crossovers": self._stats.crossovers,
                "mutations": self._stats.mutations,
                "random_creations": self._stats.random_creations,
                "evaluations": len(self._cache),
                "archive": archive_stats(self._archive, self._cache),
            }
            if elites:
                payload["best_candidate"] = cfg.serializer(elites[0])
            append_jsonl("generation_summary", payload, cfg.event_log_path)
