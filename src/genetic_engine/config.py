from __future__ import annotations

import json
import math
from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import MissingFieldError
from .types import ScoreOrder

HYPERPARAMETER_FIELDS = (
    "population_size",
    "survival_rate",
    "crossover_rate",
    "mutation_rate",
    "max_generations",
    "max_seconds",
    "verbose",
    "report_best",
    "report_worst",
    "report_median",
    "report_average",
    "event_log_path",
)


def _check_integer(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer but was {value!r}")
    return value


def _check_population_size(value: int) -> int:
    value = _check_integer("population_size", value)
    if value < 2:
        raise ValueError(f"population_size must be >= 2 but was {value:,}")
    return value


def _check_rate(name: str, value: float) -> float:
    if not (0.0 < value < 1.0):
        raise ValueError(f"{name} must be > 0.0 and < 1.0 but was {value}")
    return float(value)


def _check_max_generations(value: int | None) -> int | None:
    if value is None:
        return None
    value = _check_integer("max_generations", value)
    if value < 0:
        raise ValueError(f"max_generations must be >= 0 but was {value:,}")
    return value


def _check_max_seconds(value: float | None) -> float | None:
    if value is None:
        return None
    if math.isnan(value) or value < 0.0:
        raise ValueError(f"max_seconds must be >= 0.0 but was {value}")
    return float(value)


def _check_report_count(name: str, value: int) -> int:
    value = _check_integer(name, value)
    if value < 0:
        raise ValueError(f"{name} must be >= 0 but was {value:,}")
    return value


def _require_callable(name: str, fn: Any) -> Any:
    if fn is None:
        raise TypeError(f"{name} cannot be None")
    if not callable(fn):
        raise TypeError(f"{name} must be callable, got {type(fn).__name__}")
    return fn


@dataclass(slots=True)
class GeneticAlgorithmConfig:
    creation: Callable[[], Hashable] | None = None
    crossover: Callable[[Hashable, Hashable], Hashable] | None = None
    mutation: Callable[[Hashable], Hashable] | None = None
    fitness_function: Callable[[Hashable], float] | None = None
    order: ScoreOrder = ScoreOrder.MINIMIZE
    population_size: int = 100
    survival_rate: float = 0.1
    crossover_rate: float = 0.7
    mutation_rate: float = 0.1
    first_generation: tuple[Hashable, ...] = ()
    max_generations: int | None = None
    stop_criterion: Callable[[Hashable], bool] | None = None
    max_seconds: float | None = None
    verbose: bool = False
    report_best: int = 1
    report_worst: int = 0
    report_median: bool = False
    report_average: bool = False
    serializer: Callable[[Hashable], str] = repr
    event_log_path: str | None = None

    def __post_init__(self) -> None:
        for name in ("creation", "crossover", "mutation", "fitness_function"):
            if getattr(self, name) is None:
                raise MissingFieldError(f"{name} is required")
            _require_callable(name, getattr(self, name))
        if not isinstance(self.order, ScoreOrder):
            self.order = ScoreOrder(self.order)
        self.population_size = _check_population_size(self.population_size)
        self.survival_rate = _check_rate("survival_rate", self.survival_rate)
        self.crossover_rate = _check_rate("crossover_rate", self.crossover_rate)
        self.mutation_rate = _check_rate("mutation_rate", self.mutation_rate)
        self.first_generation = tuple(dict.fromkeys(self.first_generation))
        if any(x is None for x in self.first_generation):
            raise ValueError("first_generation cannot contain None")
        if len(self.first_generation) > self.population_size:
            raise ValueError(
                f"first_generation must have <= {self.population_size:,} candidates "
                f"but had {len(self.first_generation):,}"
            )
        self.max_generations = _check_max_generations(self.max_generations)
        self.max_seconds = _check_max_seconds(self.max_seconds)
        if self.stop_criterion is not None:
            _require_callable("stop_criterion", self.stop_criterion)
        if self.max_generations is None and self.stop_criterion is None and self.max_seconds is None:
            raise ValueError(
                "no termination criterion: set max_generations, stop_criterion or max_seconds"
            )
        self.report_best = _check_report_count("report_best", self.report_best)
        self.report_worst = _check_report_count("report_worst", self.report_worst)
        _require_callable("serializer", self.serializer)

    @property
    def surviving_population(self) -> int:
        return int(self.population_size * self.survival_rate)

    @classmethod
    def builder(cls) -> "GeneticAlgorithmConfigBuilder":
        return GeneticAlgorithmConfigBuilder()

    def hyperparameters(self) -> dict[str, Any]:
        values = {name: getattr(self, name) for name in HYPERPARAMETER_FIELDS}
        values["order"] = self.order.value
        values["first_generation_size"] = len(self.first_generation)
        return values


class GeneticAlgorithmConfigBuilder:
    """Fluent, single-use builder for :class:`GeneticAlgorithmConfig`.

    Numeric settings are validated as soon as they are set; operators and the
    termination criteria are checked by :meth:`build`.
    """

    def __init__(self) -> None:
        self._built = False
        self._values: dict[str, Any] = {}
        self._first_generation: dict[Hashable, None] = {}

    def population_size(self, value: int) -> "GeneticAlgorithmConfigBuilder":
        self._values["population_size"] = _check_population_size(value)
        return self

    def survival_rate(self, value: float) -> "GeneticAlgorithmConfigBuilder":
        self._values["survival_rate"] = _check_rate("survival_rate", value)
        return self

    def crossover_rate(self, value: float) -> "GeneticAlgorithmConfigBuilder":
        self._values["crossover_rate"] = _check_rate("crossover_rate", value)
        return self

    def mutation_rate(self, value: float) -> "GeneticAlgorithmConfigBuilder":
        self._values["mutation_rate"] = _check_rate("mutation_rate", value)
        return self

    def max_generations(self, value: int) -> "GeneticAlgorithmConfigBuilder":
        self._values["max_generations"] = _check_max_generations(value)
        return self

    def max_seconds(self, value: float) -> "GeneticAlgorithmConfigBuilder":
        self._values["max_seconds"] = _check_max_seconds(value)
        return self

    def stop_criterion(self, fn: Callable[[Hashable], bool]) -> "GeneticAlgorithmConfigBuilder":
        self._values["stop_criterion"] = _require_callable("stop_criterion", fn)
        return self

    def creation(self, fn: Callable[[], Hashable]) -> "GeneticAlgorithmConfigBuilder":
        self._values["creation"] = _require_callable("creation", fn)
        return self

    def crossover(
        self, fn: Callable[[Hashable, Hashable], Hashable]
    ) -> "GeneticAlgorithmConfigBuilder":
        self._values["crossover"] = _require_callable("crossover", fn)
        return self

    def mutation(self, fn: Callable[[Hashable], Hashable]) -> "GeneticAlgorithmConfigBuilder":
        self._values["mutation"] = _require_callable("mutation", fn)
        return self

    def maximize(self, fn: Callable[[Hashable], float]) -> "GeneticAlgorithmConfigBuilder":
        self._values["fitness_function"] = _require_callable("fitness_function", fn)
        self._values["order"] = ScoreOrder.MAXIMIZE
        return self

    def minimize(self, fn: Callable[[Hashable], float]) -> "GeneticAlgorithmConfigBuilder":
        self._values["fitness_function"] = _require_callable("fitness_function", fn)
        self._values["order"] = ScoreOrder.MINIMIZE
        return self

    def first_generation(self, *candidates: Hashable) -> "GeneticAlgorithmConfigBuilder":
        return self.first_generation_from(candidates)

    def first_generation_from(
        self, candidates: Iterable[Hashable]
    ) -> "GeneticAlgorithmConfigBuilder":
        for x in candidates:
            if x is None:
                raise TypeError("first generation candidates cannot be None")
            self._first_generation[x] = None
        return self

    def serializer(self, fn: Callable[[Hashable], str]) -> "GeneticAlgorithmConfigBuilder":
        self._values["serializer"] = _require_callable("serializer", fn)
        return self

    def verbose(self) -> "GeneticAlgorithmConfigBuilder":
        self._values.update(
            verbose=True, report_best=5, report_worst=5, report_median=True, report_average=True
        )
        return self

    def quiet(self) -> "GeneticAlgorithmConfigBuilder":
        self._values["verbose"] = False
        return self

    def report_best(self, count: int) -> "GeneticAlgorithmConfigBuilder":
        self._values["report_best"] = _check_report_count("report_best", count)
        self._values["verbose"] = True
        return self

    def report_worst(self, count: int) -> "GeneticAlgorithmConfigBuilder":
        self._values["report_worst"] = _check_report_count("report_worst", count)
        self._values["verbose"] = True
        return self

    def report_median(self) -> "GeneticAlgorithmConfigBuilder":
        self._values.update(report_median=True, verbose=True)
        return self

    def report_average(self) -> "GeneticAlgorithmConfigBuilder":
        self._values.update(report_average=True, verbose=True)
        return self

    def event_log(self, path: str | Path) -> "GeneticAlgorithmConfigBuilder":
        self._values["event_log_path"] = str(path)
        return self

    def hyperparameters(self, values: Mapping[str, Any]) -> "GeneticAlgorithmConfigBuilder":
        unknown = sorted(set(values) - set(HYPERPARAMETER_FIELDS))
        if unknown:
            raise ValueError(f"unknown hyperparameters: {', '.join(unknown)}")
        for name, value in values.items():
            if name == "verbose":
                self._values["verbose"] = bool(value)
            elif name in ("report_median", "report_average"):
                self._values[name] = bool(value)
            elif name in ("report_best", "report_worst"):
                self._values[name] = _check_report_count(name, value)
            elif name == "event_log_path":
                self._values[name] = None if value is None else str(value)
            elif value is None and name in ("max_generations", "max_seconds"):
                self._values.pop(name, None)
            else:
                getattr(self, name)(value)
        return self

    @classmethod
    def from_json(cls, path: str | Path) -> "GeneticAlgorithmConfigBuilder":
        with Path(path).open("r", encoding="utf-8") as f:
            return cls().hyperparameters(json.load(f))

    def build(self) -> GeneticAlgorithmConfig:
        if self._built:
            raise RuntimeError("cannot build the same GeneticAlgorithmConfigBuilder twice")
        config = GeneticAlgorithmConfig(
            first_generation=tuple(self._first_generation), **self._values
        )
        self._built = True
        return config
