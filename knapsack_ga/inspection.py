from __future__ import annotations

import sys
from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, TextIO, Tuple

import numpy as np

from knapsack_ga.population import Individual, Population, best_individual, score_entropy
from knapsack_ga.score import CliffScore


@dataclass(frozen=True)
class GenerationRecord:
    """Summary of one evaluated generation"""
    generation: int
    best_score: CliffScore
    feasible_fraction: float
    mean_feasible_value: Optional[float]
    entropy: float

    def lines(self) -> List[str]:
        return [
            f"Best score in generation {self.generation} was {self.best_score}",
            f"\tEntropy of the population was {self.entropy}",
        ]

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "best_score": self.best_score.to_dict(),
            "feasible_fraction": self.feasible_fraction,
            "mean_feasible_value": self.mean_feasible_value,
            "entropy": self.entropy,
        }


@dataclass(frozen=True)
class RunState:
    """
    What the inspector knows about a run after a generation.

    The engine hands the current state to the inspector together with the
    evaluated population and keeps whatever state the inspector returns;
    states are never modified in place.
    """
    generation: int = -1
    best_ever: Optional[Individual] = None
    best_of_generation: Optional[Individual] = None
    records: Tuple[GenerationRecord, ...] = ()


class Inspector(Protocol):
    def inspect(self, state: RunState, population: Population) -> RunState:
        ...


def summarize(generation: int, population: Population) -> GenerationRecord:
    scores = population.scores
    feasible_values = [s.value for s in scores if s.is_feasible]
    best = scores[population.best_index()]
    return GenerationRecord(
        generation=generation,
        best_score=best,
        feasible_fraction=len(feasible_values) / len(scores),
        mean_feasible_value=float(np.mean(feasible_values)) if feasible_values else None,
        entropy=score_entropy(scores),
    )


class BestTracker:
    """
    Keeps the best individual of the whole run. A later individual replaces the
    best so far only when it scores strictly higher.
    """

    def inspect(self, state: RunState, population: Population) -> RunState:
        generation = state.generation + 1
        best = best_individual(population)
        best_ever = state.best_ever
        if best_ever is None or best.score > best_ever.score:
            best_ever = best
        return replace(
            state,
            generation=generation,
            best_ever=best_ever,
            best_of_generation=best,
            records=state.records + (summarize(generation, population),),
        )


class ProgressReporter:
    """
    Wraps another inspector and writes each new generation record to `stream`.

    Lines are buffered and written every `flush_every` generations (and on
    `flush`), so the evolution loop does not wait on output.
    """

    def __init__(self, inner: Inspector = None, stream: TextIO = None, flush_every: int = 10):
        self.inner = inner if inner is not None else BestTracker()
        self.stream = stream
        self.flush_every = flush_every
        self._pending: List[str] = []

    def inspect(self, state: RunState, population: Population) -> RunState:
        state = self.inner.inspect(state, population)
        if state.records:
            self._pending.extend(state.records[-1].lines())
        if (state.generation + 1) % self.flush_every == 0:
            self.flush()
        return state

    def flush(self):
        if not self._pending:
            return
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write("\n".join(self._pending) + "\n")
        stream.flush()
        self._pending = []
