import threading
import time
from collections import Counter

import numpy as np
import pytest

from genetic_engine import (
    GeneticAlgorithm,
    GeneticAlgorithmConfig,
    InternalConsistencyError,
    SerialExecutor,
    WorkerPoolExecutor,
    current_rng,
)


@pytest.fixture(params=["serial", "parallel"])
def make_ga(request):
    created = []

    def factory(seed=None):
        if request.param == "serial":
            ga = GeneticAlgorithm(rng=seed)
        else:
            ga = GeneticAlgorithm.parallel(max_workers=4, rng=seed)
        created.append(ga)
        return ga

    yield factory
    for ga in created:
        ga.close()


class CountingCreation:
    def __init__(self):
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.count += 1
            return str(self.count)


class CountingMutation:
    def __init__(self):
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self, x):
        with self._lock:
            self.count += 1
        return x


class CountingCrossover:
    def __init__(self):
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self, first, second):
        with self._lock:
            self.count += 1
        return first


def _random_int_string():
    return str(int(current_rng().integers(0, 1_000)))


def _int_builder():
    return (
        GeneticAlgorithmConfig.builder()
        .creation(_random_int_string)
        .crossover(lambda a, b: str(int(a) + int(b)))
        .mutation(lambda x: str(int(x) + 1))
        .maximize(lambda s: float(len(s)))
    )


def _random_digits():
    rng = current_rng()
    length = int(rng.integers(1, 12))
    return "".join(str(d) for d in rng.integers(0, 10, size=length))


def _digit_builder():
    return (
        GeneticAlgorithmConfig.builder()
        .population_size(100)
        .survival_rate(0.1)
        .crossover_rate(0.7)
        .mutation_rate(0.1)
        .creation(_random_digits)
        .crossover(lambda a, b: a[: len(a) // 2] + b[len(b) // 2 :] + b[:1])
        .mutation(lambda x: x + str(int(current_rng().integers(0, 10))))
        .maximize(lambda s: float(len(s)))
    )


@pytest.mark.parametrize("population_size", [10, 20, 50, 90])
def test_zero_generations_means_only_creation(make_ga, population_size):
    creation = CountingCreation()
    fitness_calls = Counter()

    def fitness(s):
        fitness_calls[s] += 1
        return 0.0

    ga = make_ga(seed=1)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(population_size)
        .max_generations(0)
        .crossover(lambda a, b: b)
        .mutation(lambda x: x)
        .maximize(fitness)
        .creation(creation)
        .build()
    )
    state = ga.run()
    assert creation.count == population_size
    assert not fitness_calls
    assert state.generation == 0
    assert len(state.population) == population_size
    assert len(state.scores) == 0


@pytest.mark.parametrize("generations", [0, 1, 2, 5, 9])
def test_negligible_rates_mean_only_random_creations(make_ga, generations):
    population_size = 100
    creation = CountingCreation()
    mutation = CountingMutation()
    crossover = CountingCrossover()
    ga = make_ga(seed=2)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(population_size)
        .max_generations(generations)
        .survival_rate(1e-9)
        .crossover_rate(1e-9)
        .mutation_rate(1e-9)
        .crossover(crossover)
        .mutation(mutation)
        .creation(creation)
        .maximize(lambda s: float(len(s)))
        .build()
    )
    state = ga.run()
    assert crossover.count == 0
    assert mutation.count == 0
    assert creation.count == population_size * (generations + 1)
    assert state.surviving_population == 0


@pytest.mark.parametrize("generations", [0, 1, 2, 5, 10, 20])
def test_max_generations(make_ga, generations):
    ga = make_ga(seed=3)
    ga.set_state(_int_builder().population_size(30).max_generations(generations).build())
    state = ga.run()
    assert state.generation == generations
    assert ga.get_state().generation == generations


@pytest.mark.parametrize("limit", [0, 9, 99, 999, 9_999, 99_999])
def test_stop_criterion(make_ga, limit):
    ga = make_ga(seed=4)
    ga.set_state(_int_builder().population_size(40).stop_criterion(lambda s: int(s) >= limit).build())
    state = ga.run()
    # checked before scoring, so the terminal population is the one that matched
    assert any(int(s) >= limit for s in state.population)


def test_stop_criterion_is_checked_before_the_first_generation(make_ga):
    ga = make_ga(seed=4)
    ga.set_state(_int_builder().population_size(10).stop_criterion(lambda s: True).build())
    state = ga.run()
    assert state.generation == 0
    assert len(state.scores) == 0


def test_max_seconds_zero_stops_immediately(make_ga):
    ga = make_ga(seed=5)
    ga.set_state(_int_builder().population_size(10).max_seconds(0.0).build())
    assert ga.run().generation == 0


def test_max_seconds_bounds_the_run(make_ga):
    ga = make_ga(seed=5)
    ga.set_state(_digit_builder().population_size(20).max_seconds(0.2).build())
    started = time.monotonic()
    state = ga.run()
    assert time.monotonic() - started < 5.0
    assert state.generation >= 1


def test_concrete_digit_string_scenario(make_ga):
    ga = make_ga(seed=6)
    ga.set_state(_digit_builder().max_generations(10).build())
    state = ga.run()
    assert len(state.population) == 100
    assert len(state.scores) >= 100
    assert state.generation == 10
    assert state.surviving_population == 10


@pytest.mark.parametrize(
    ("population_size", "survival", "crossover", "mutation"),
    [(2, 0.5, 0.5, 0.5), (10, 0.3, 0.9, 0.9), (37, 0.1, 0.7, 0.1), (40, 0.6, 0.2, 0.6)],
)
def test_population_size_is_conserved(make_ga, population_size, survival, crossover, mutation):
    ga = make_ga(seed=7)
    ga.set_state(
        _digit_builder()
        .population_size(population_size)
        .survival_rate(survival)
        .crossover_rate(crossover)
        .mutation_rate(mutation)
        .max_generations(8)
        .build()
    )
    state = ga.run()
    assert len(state.population) == population_size
    assert state.generation == 8
    assert (
        state.surviving_population + state.crossovers + state.random_creations == population_size
    )
    assert state.mutations <= state.surviving_population + state.crossovers


def test_fitness_is_evaluated_at_most_once_per_candidate(make_ga):
    calls = Counter()
    lock = threading.Lock()

    def fitness(s):
        with lock:
            calls[s] += 1
        return float(int(s) + 1)

    ga = make_ga(seed=8)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(30)
        .creation(lambda: str(int(current_rng().integers(0, 50))))
        .crossover(lambda a, b: str((int(a) + int(b)) % 50))
        .mutation(lambda x: str((int(x) + 1) % 50))
        .maximize(fitness)
        .max_generations(15)
        .build()
    )
    state = ga.run()
    assert calls
    assert max(calls.values()) == 1
    assert set(calls) == set(state.scores)


def test_serial_and_parallel_runs_are_identical():
    config = _digit_builder().max_generations(10).build()
    serial = GeneticAlgorithm(rng=1234)
    serial.set_state(config)
    expected = serial.run()

    with GeneticAlgorithm(rng=1234, executor=WorkerPoolExecutor(max_workers=8)) as parallel:
        parallel.set_state(config)
        actual = parallel.run()

    assert actual.population == expected.population
    assert dict(actual.scores) == dict(expected.scores)
    assert actual.best() == expected.best()


def test_same_seed_gives_same_best_candidate(make_ga):
    results = []
    for _ in range(2):
        ga = make_ga(seed=99)
        ga.set_state(_int_builder().population_size(50).max_generations(10).build())
        results.append(ga.run().best())
    assert results[0] == results[1]


def test_injected_generator_drives_the_run():
    first = GeneticAlgorithm(rng=np.random.default_rng(17))
    second = GeneticAlgorithm(rng=np.random.default_rng(17))
    for ga in (first, second):
        ga.set_state(_int_builder().population_size(20).max_generations(4).build())
        ga.run()
    assert first.get_state().population == second.get_state().population


def test_first_generation_is_copied_into_the_population(make_ga):
    creation = CountingCreation()
    ga = make_ga(seed=9)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(5)
        .first_generation("seed-a", "seed-b")
        .creation(creation)
        .crossover(lambda a, b: a + b)
        .mutation(lambda x: x)
        .maximize(lambda s: float(len(s)))
        .max_generations(0)
        .build()
    )
    state = ga.run()
    assert state.population[:2] == ("seed-a", "seed-b")
    assert creation.count == 3


def test_best_score_never_gets_worse_across_generations():
    best = []
    for generations in range(1, 8):
        ga = GeneticAlgorithm(rng=10)
        ga.set_state(_digit_builder().population_size(30).max_generations(generations).build())
        best.append(ga.run().best_score())
    assert best == sorted(best)


def test_minimize_keeps_lowest_scores_as_elites():
    ga = GeneticAlgorithm(rng=11)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(20)
        .survival_rate(0.25)
        .creation(lambda: int(current_rng().integers(1, 1_000)))
        .crossover(lambda a, b: (a + b) // 2 + 1)
        .mutation(lambda x: x + 1)
        .minimize(float)
        .max_generations(5)
        .build()
    )
    state = ga.run()
    assert state.best() == min(state.scores)
    assert state.best_score() == float(min(state.scores))


@pytest.mark.parametrize("operator", ["creation", "fitness", "crossover", "mutation"])
def test_caller_errors_propagate_unchanged(make_ga, operator):
    class OperatorError(Exception):
        pass

    def broken(*args):
        raise OperatorError(operator)

    builder = (
        GeneticAlgorithmConfig.builder()
        .population_size(20)
        .crossover_rate(0.99)
        .mutation_rate(0.99)
        .creation(_random_int_string)
        .crossover(lambda a, b: str(int(a) + int(b)))
        .mutation(lambda x: str(int(x) + 1))
        .maximize(lambda s: float(len(s)))
        .max_generations(3)
    )
    if operator == "fitness":
        builder.maximize(broken)
    else:
        getattr(builder, operator)(broken)

    ga = make_ga(seed=12)
    ga.set_state(builder.build())
    with pytest.raises(OperatorError, match=operator):
        ga.run()


def test_stop_criterion_errors_propagate(make_ga):
    def broken(_x):
        raise KeyError("stop")

    ga = make_ga(seed=13)
    ga.set_state(_int_builder().population_size(10).stop_criterion(broken).build())
    with pytest.raises(KeyError):
        ga.run()


def test_operator_returning_none_is_rejected(make_ga):
    ga = make_ga(seed=14)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(4)
        .creation(lambda: None)
        .crossover(lambda a, b: a)
        .mutation(lambda x: x)
        .maximize(lambda s: 1.0)
        .max_generations(1)
        .build()
    )
    with pytest.raises(TypeError, match="creation"):
        ga.run()


def test_too_few_distinct_candidates_is_an_internal_fault(make_ga):
    ga = make_ga(seed=15)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(4)
        .survival_rate(0.5)
        .creation(lambda: "same")
        .crossover(lambda a, b: a)
        .mutation(lambda x: x)
        .maximize(lambda s: 1.0)
        .max_generations(1)
        .build()
    )
    with pytest.raises(InternalConsistencyError):
        ga.run()


def test_crossover_needs_two_positive_distinct_parents(make_ga):
    ga = make_ga(seed=16)
    ga.set_state(
        _int_builder()
        .population_size(20)
        .crossover_rate(0.99)
        .maximize(lambda s: 0.0)
        .max_generations(2)
        .build()
    )
    with pytest.raises(ValueError, match="positive score"):
        ga.run()


def test_run_requires_state():
    with pytest.raises(RuntimeError, match="set_state"):
        GeneticAlgorithm(rng=0).run()
    with pytest.raises(RuntimeError, match="set_state"):
        GeneticAlgorithm(rng=0).get_state()


def test_set_state_rejects_other_objects():
    with pytest.raises(TypeError, match="GeneticAlgorithmConfig"):
        GeneticAlgorithm(rng=0).set_state({"population_size": 10})


def test_executor_must_provide_run_phase():
    with pytest.raises(TypeError, match="run_phase"):
        GeneticAlgorithm(rng=0, executor=object())


def test_invalid_thread_count():
    with pytest.raises(ValueError, match="max_workers"):
        GeneticAlgorithm.parallel(max_workers=0)


def test_state_snapshot_is_read_only(make_ga):
    ga = make_ga(seed=18)
    ga.set_state(_int_builder().population_size(10).max_generations(2).build())
    state = ga.run()
    with pytest.raises(TypeError):
        state.scores["new"] = 1.0
    assert isinstance(state.population, tuple)


def test_run_twice_starts_from_scratch(make_ga):
    creation = CountingCreation()
    ga = make_ga(seed=19)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(10)
        .creation(creation)
        .crossover(lambda a, b: a + b)
        .mutation(lambda x: x + "m")
        .maximize(lambda s: float(len(s)))
        .max_generations(2)
        .build()
    )
    ga.run()
    assert len(ga._archive) == 0
    ga.run()
    assert ga.get_state().generation == 2
    assert len(ga.get_state().population) == 10
    assert len(ga._archive) == 0


def test_run_after_aborted_run_starts_from_scratch(make_ga):
    class MutationError(Exception):
        pass

    tag = ["a"]
    counter = CountingCreation()

    def mutation(x):
        if tag[0] == "a":
            raise MutationError(x)
        return x + "m"

    ga = make_ga(seed=20)
    ga.set_state(
        GeneticAlgorithmConfig.builder()
        .population_size(10)
        .survival_rate(0.2)
        .mutation_rate(0.9)
        .creation(lambda: tag[0] + counter())
        .crossover(lambda a, b: a + b)
        .mutation(mutation)
        .maximize(lambda s: float(len(s)))
        .max_generations(5)
        .build()
    )
    with pytest.raises(MutationError):
        ga.run()
    assert any(key.startswith("a") for key in ga.get_state().scores)

    tag[0] = "b"
    state = ga.run()
    assert state.generation == 5
    assert all(key.startswith("b") for key in state.scores)
    assert all(x.startswith("b") for x in state.population)
    assert len(ga._archive) == 0


def test_context_manager_closes_executor():
    closed = []

    class RecordingExecutor(SerialExecutor):
        def close(self):
            closed.append(True)

    with GeneticAlgorithm(rng=0, executor=RecordingExecutor()) as ga:
        ga.set_state(_int_builder().population_size(4).max_generations(1).build())
        ga.run()
    assert closed == [True]


def test_initialize_is_an_alias_of_set_state():
    ga = GeneticAlgorithm(rng=0)
    ga.initialize(_int_builder().population_size(6).max_generations(1).build())
    assert ga.run().generation == 1
