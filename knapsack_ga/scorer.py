from typing import List

import numpy as np

from knapsack_ga.instance import KnapsackInstance
from knapsack_ga.score import CliffScore


def cliff_score(genome: np.ndarray, instance: KnapsackInstance) -> CliffScore:
    """
    Scores a single choice vector against `instance`

    Returns
    -------
    CliffScore
      Overloaded if the chosen items weigh more than the capacity, else Feasible(total value)
    """
    if instance.weight(genome) > instance.capacity:
        return CliffScore.overloaded()
    return CliffScore.feasible(instance.value(genome))


def score_block(genomes: np.ndarray, weights: np.ndarray, values: np.ndarray, capacity: int) -> List[CliffScore]:
    """
    Scores the rows of a (rows, N) boolean matrix.

    This is the unit of work handed to evaluation workers, so it takes plain
    arrays rather than the instance. Object-dtype (arbitrary precision) weights
    and values are summed row by row.
    """
    if weights.dtype == object:
        total_weights = [sum(weights[row]) for row in genomes]
        total_values = [sum(values[row]) for row in genomes]
    else:
        total_weights = (genomes @ weights).tolist()
        total_values = (genomes @ values).tolist()
    return [
        CliffScore.overloaded() if w > capacity else CliffScore.feasible(v)
        for w, v in zip(total_weights, total_values)
    ]
