"""Tournament-selection genetic algorithm for the 0/1 knapsack problem."""

from knapsack_ga.config import RunConfig
from knapsack_ga.evo import Evolution, RunResult, build_engine
from knapsack_ga.exceptions import (
    ConfigurationError,
    GenomeLengthError,
    InstanceFormatError,
    KnapsackGAError,
)
from knapsack_ga.inspection import BestTracker, GenerationRecord, ProgressReporter, RunState
from knapsack_ga.instance import Item, KnapsackInstance
from knapsack_ga.population import Individual, Population, best_individual
from knapsack_ga.score import CliffScore
from knapsack_ga.scorer import cliff_score

__all__ = [
    "RunConfig",
    "Evolution",
    "RunResult",
    "build_engine",
    "ConfigurationError",
    "GenomeLengthError",
    "InstanceFormatError",
    "KnapsackGAError",
    "BestTracker",
    "GenerationRecord",
    "ProgressReporter",
    "RunState",
    "Item",
    "KnapsackInstance",
    "Individual",
    "Population",
    "best_individual",
    "CliffScore",
    "cliff_score",
]
