import numpy as np

from knapsack_ga.population import Population


def tournament_indices(population: Population, tournament_size: int, rng: np.random.Generator) -> np.ndarray:
    """Draws `tournament_size` contestant indices uniformly, with replacement"""
    if tournament_size < 1:
        raise ValueError(f"tournament size must be at least 1, got {tournament_size}")
    return rng.integers(0, len(population), size=tournament_size)


def tournament_selection(population: Population, tournament_size: int, rng: np.random.Generator) -> np.ndarray:
    """
    Selects one parent by tournament.

    Parameters
    ----------
    population : Population
      an evaluated population; it is not modified

    tournament_size : int
      number of contestants, drawn with replacement; 1 gives uniform random selection

    rng : numpy.random.Generator
      the random source owned by the caller

    Returns
    -------
    numpy.ndarray
      a writable copy of the winner's genome; ties go to the first contestant drawn
    """
    contestants = tournament_indices(population, tournament_size, rng)
    scores = population.scores
    winner = contestants[0]
    for index in contestants[1:]:
        if scores[index] > scores[winner]:
            winner = index
    return population.genomes[winner].copy()
