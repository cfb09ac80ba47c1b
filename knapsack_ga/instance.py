from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Union

import numpy as np

from knapsack_ga.exceptions import GenomeLengthError, InstanceFormatError

_INT64_MAX = np.iinfo(np.int64).max


@dataclass(frozen=True)
class Item:
    """An item that can be packed: its id in the instance file, its value and its weight."""
    id: int
    value: int
    weight: int

    def __post_init__(self):
        for name in ("id", "value", "weight"):
            object.__setattr__(self, name, int(getattr(self, name)))
        if self.value < 0 or self.weight < 0:
            raise ValueError(f"item {self.id} has a negative value or weight")

    @classmethod
    def from_line(cls, line: str) -> Item:
        """
        Parses an item line of the form `id value weight`

        Raises
        ------
        InstanceFormatError
          if the line does not hold exactly three non-negative integers
        """
        fields = line.split()
        if len(fields) != 3:
            raise InstanceFormatError(
                f"the item line '{line.strip()}' should have 3 whitespace separated fields")
        try:
            item_id, value, weight = (int(f) for f in fields)
            return cls(item_id, value, weight)
        except ValueError as e:
            raise InstanceFormatError(f"failed to parse '{line.strip()}' into an item: {e}") from e


def accumulator_dtype(numbers: Sequence[int]):
    """
    Returns the narrowest dtype able to hold any partial sum of `numbers`:
    int64 when the grand total fits, otherwise Python ints (object dtype)
    """
    return np.int64 if sum(numbers) <= _INT64_MAX else object


@dataclass(frozen=True)
class KnapsackInstance:
    """
    A 0/1 knapsack problem: a collection of items and the capacity of the knapsack.

    Instances are immutable. The `weights` and `values` arrays are derived at
    construction with a dtype wide enough that no weighted sum over a choice
    vector can overflow, so capacities and totals in the tens of billions are safe.

    Parameters
    ----------
    items : sequence of Item
      the items to choose from; a choice vector has one bit per item, in this order

    capacity : int
      the maximum total weight the knapsack can hold
    """
    items: tuple
    capacity: int
    weights: np.ndarray = field(init=False, repr=False, compare=False)
    values: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        items = tuple(self.items)
        if self.capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {self.capacity}")
        weights = [item.weight for item in items]
        values = [item.value for item in items]
        object.__setattr__(self, "items", items)
        object.__setattr__(self, "capacity", int(self.capacity))
        object.__setattr__(self, "weights", _frozen_array(weights))
        object.__setattr__(self, "values", _frozen_array(values))

    @classmethod
    def from_pairs(cls, pairs, capacity: int) -> KnapsackInstance:
        """Builds an instance from (weight, value) pairs, numbering the items from 1"""
        return cls(tuple(Item(i + 1, value, weight) for i, (weight, value) in enumerate(pairs)), capacity)

    @classmethod
    def from_file(cls, file_path: Union[str, Path]) -> KnapsackInstance:
        """
        Reads an instance from a text file in this format:

          3
          1 3 8
          2 2 8
          3 9 1
          10

        The first line is the number of items N, the next N lines are the items
        as `id value weight`, and the last line is the capacity.

        Raises
        ------
        InstanceFormatError
          if the file is empty or its contents have the wrong format
        """
        file_path = Path(file_path)
        lines = [line for line in file_path.read_text().splitlines() if line.strip()]
        if not lines:
            raise InstanceFormatError(f"the input file {file_path} was empty")
        try:
            num_items = int(lines[0])
        except ValueError as e:
            raise InstanceFormatError(f"the first line of {file_path} is not an item count") from e
        if num_items < 0:
            raise InstanceFormatError(f"negative item count {num_items} in {file_path}")

        item_lines = lines[1:1 + num_items]
        if len(item_lines) < num_items:
            raise InstanceFormatError(
                f"expected {num_items} items in {file_path} but only got {len(item_lines)}; "
                "is the number of items on the first line correct?")
        items = [Item.from_line(line) for line in item_lines]

        if len(lines) < num_items + 2:
            raise InstanceFormatError(
                f"there was no capacity line in {file_path}; "
                "this might be because the number of items was set incorrectly")
        try:
            capacity = int(lines[num_items + 1])
        except ValueError as e:
            raise InstanceFormatError(f"the capacity line of {file_path} is not an integer") from e
        if capacity < 0:
            raise InstanceFormatError(f"negative capacity {capacity} in {file_path}")
        return cls(tuple(items), capacity)

    @property
    def num_items(self) -> int:
        return len(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def check_genome(self, genome: np.ndarray):
        if len(genome) != self.num_items:
            raise GenomeLengthError(
                f"a genome of length {len(genome)} cannot choose among {self.num_items} items")

    def weight(self, genome: np.ndarray) -> int:
        """Total weight of the items chosen by `genome`"""
        self.check_genome(genome)
        return int(self.weights[np.asarray(genome, dtype=bool)].sum())

    def value(self, genome: np.ndarray) -> int:
        """Total value of the items chosen by `genome`"""
        self.check_genome(genome)
        return int(self.values[np.asarray(genome, dtype=bool)].sum())


def _frozen_array(numbers: List[int]) -> np.ndarray:
    dtype = accumulator_dtype(numbers)
    if dtype is object:
        array = np.empty(len(numbers), dtype=object)
        array[:] = [int(n) for n in numbers]
    else:
        array = np.array(numbers, dtype=dtype)
    array.setflags(write=False)
    return array
