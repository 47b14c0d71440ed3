"""genetic_engine: pluggable elitist genetic algorithm with serial and thread-pool execution."""

from .config import GeneticAlgorithmConfig, GeneticAlgorithmConfigBuilder
from .engine import GeneticAlgorithm
from .errors import InternalConsistencyError, MissingFieldError
from .executors import SerialExecutor, WorkerPoolExecutor
from .random_source import current_rng
from .sampling import weighted_choose
from .types import GenerationStats, GeneticAlgorithmState, ScoreOrder

__all__ = [
    "GeneticAlgorithm",
    "GeneticAlgorithmConfig",
    "GeneticAlgorithmConfigBuilder",
    "GeneticAlgorithmState",
    "GenerationStats",
    "InternalConsistencyError",
    "MissingFieldError",
    "ScoreOrder",
    "SerialExecutor",
    "WorkerPoolExecutor",
    "current_rng",
    "weighted_choose",
]
