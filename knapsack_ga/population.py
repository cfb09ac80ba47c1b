from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from knapsack_ga.score import CliffScore


def random_genomes(count: int, length: int, rng: np.random.Generator) -> np.ndarray:
    """Returns a (count, length) boolean matrix of uniformly random genomes"""
    return rng.random((count, length)) < 0.5


@dataclass(frozen=True)
class Individual:
    """A genome paired with its score. The genome array is read-only."""
    genome: np.ndarray
    score: CliffScore

    def __post_init__(self):
        genome = np.array(self.genome, dtype=bool)
        genome.setflags(write=False)
        object.__setattr__(self, "genome", genome)

    def __repr__(self) -> str:
        return f"Individual(score={self.score}, items={np.flatnonzero(self.genome).tolist()})"

    def to_dict(self) -> dict:
        return {
            "score": self.score.to_dict(),
            "genome": "".join("1" if bit else "0" for bit in self.genome),
        }


class Population:
    """
    The genomes of one generation and, once evaluated, their scores.

    Genomes are held as the rows of one boolean matrix so that blocks of rows can
    be scored at once; row i and scores[i] form the i-th individual.
    """

    def __init__(self, genomes: np.ndarray, scores: Sequence[CliffScore] = None):
        genomes = np.array(genomes, dtype=bool)
        if genomes.ndim != 2 or genomes.shape[0] == 0:
            raise ValueError(f"a population needs a non-empty (size, length) genome matrix, got shape {genomes.shape}")
        genomes.setflags(write=False)
        self.genomes = genomes
        self.scores = None if scores is None else list(scores)
        if self.scores is not None and len(self.scores) != len(genomes):
            raise ValueError(f"{len(self.scores)} scores for {len(genomes)} genomes")

    def __len__(self) -> int:
        return self.genomes.shape[0]

    def __getitem__(self, index: int) -> Individual:
        self._require_scores()
        return Individual(self.genomes[index], self.scores[index])

    def best_index(self) -> int:
        """Index of the first individual holding the maximum score"""
        self._require_scores()
        best = 0
        for i in range(1, len(self.scores)):
            if self.scores[i] > self.scores[best]:
                best = i
        return best

    def _require_scores(self):
        if self.scores is None:
            raise RuntimeError("the population has not been evaluated yet")


def best_individual(population: Population) -> Individual:
    """Returns the best individual of an evaluated population, ties going to the first seen"""
    return population[population.best_index()]


def score_entropy(scores: List[CliffScore]) -> float:
    """
    Shannon entropy (in bits) of the distribution of distinct scores;
    0 when every individual has the same score
    """
    counts = np.array(list(Counter(scores).values()), dtype=float)
    p = counts / counts.sum()
    return abs(float((p * np.log2(p)).sum()))
