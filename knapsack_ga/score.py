from __future__ import annotations

from dataclasses import dataclass
from functools import total_ordering


@total_ordering
@dataclass(frozen=True, eq=False)
class CliffScore:
    """
    Fitness of a knapsack choice under cliff scoring.

    A choice either fits, and is worth the total value of its items, or is
    overloaded. Every overloaded score is worse than every feasible one and all
    overloaded scores are equal, no matter how far over capacity they are.

    Use the `feasible` and `overloaded` constructors rather than building
    instances directly.
    """
    is_feasible: bool
    value: int = 0

    @classmethod
    def feasible(cls, value: int) -> CliffScore:
        if value < 0:
            raise ValueError(f"feasible value must be non-negative, got {value}")
        return cls(True, int(value))

    @classmethod
    def overloaded(cls) -> CliffScore:
        return _OVERLOADED

    def __eq__(self, other):
        if not isinstance(other, CliffScore):
            return NotImplemented
        if not self.is_feasible and not other.is_feasible:
            return True
        return self.is_feasible == other.is_feasible and self.value == other.value

    def __lt__(self, other):
        if not isinstance(other, CliffScore):
            return NotImplemented
        if self.is_feasible != other.is_feasible:
            return not self.is_feasible
        if not self.is_feasible:
            return False
        return self.value < other.value

    def __hash__(self):
        return hash((self.is_feasible, self.value if self.is_feasible else 0))

    def __repr__(self) -> str:
        return f"Feasible({self.value})" if self.is_feasible else "Overloaded"

    __str__ = __repr__

    def to_dict(self) -> dict:
        if self.is_feasible:
            return {"kind": "feasible", "value": self.value}
        return {"kind": "overloaded"}

    @classmethod
    def from_dict(cls, data: dict) -> CliffScore:
        if data["kind"] == "overloaded":
            return cls.overloaded()
        if data["kind"] == "feasible":
            return cls.feasible(data["value"])
        raise ValueError(f"unknown score kind {data['kind']!r}")


_OVERLOADED = CliffScore(False, 0)
