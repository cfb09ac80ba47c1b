import numpy as np

from knapsack_ga.exceptions import GenomeLengthError
from knapsack_ga.population import Population
from knapsack_ga.selection import tournament_selection


def one_over_length_mutation(genome: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Flips every bit independently with probability 1/N, N being the genome length,
    so on average one item is added to or removed from the choice.
    The input genome is left untouched.
    """
    flips = rng.random(len(genome)) < 1.0 / len(genome)
    return np.logical_xor(genome, flips)


def uniform_crossover(parent_a: np.ndarray, parent_b: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Builds a child taking each bit from either parent with probability 1/2

    Raises
    ------
    GenomeLengthError
      if the parents differ in length
    """
    if len(parent_a) != len(parent_b):
        raise GenomeLengthError(f"cannot cross genomes of length {len(parent_a)} and {len(parent_b)}")
    from_a = rng.random(len(parent_a)) < 0.5
    return np.where(from_a, parent_a, parent_b)


def generate_offspring(population: Population, tournament_size: int, rng: np.random.Generator) -> np.ndarray:
    """Two independent tournaments, uniform crossover of the winners, then mutation of the child"""
    parent_a = tournament_selection(population, tournament_size, rng)
    parent_b = tournament_selection(population, tournament_size, rng)
    child = uniform_crossover(parent_a, parent_b, rng)
    return one_over_length_mutation(child, rng)
