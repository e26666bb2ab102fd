"""Constraints on candidate policies, applied to objective values."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from ..errors import ValidationError

__all__ = ["Constraint", "FeasibilityConstraint", "PenaltyConstraint", "apply_constraints"]


class Constraint:
    name: str


@dataclass(frozen=True)
class FeasibilityConstraint(Constraint):
    """Hard constraint; ``func(policy)`` returns True when the policy is feasible."""

    name: str
    func: Callable


@dataclass(frozen=True)
class PenaltyConstraint(Constraint):
    """Soft constraint; ``func(policy)`` returns 0 when satisfied, a positive violation otherwise."""

    name: str
    func: Callable
    weight: float = 1.0

    def __post_init__(self) -> None:
        if self.weight < 0:
            raise ValidationError(f"Penalty weight must be non-negative, got {self.weight}")
        object.__setattr__(self, "weight", float(self.weight))


def apply_constraints(objective_values, policy, constraints: Sequence[Constraint]) -> np.ndarray:
    """Return objective values (minimisation space) adjusted for ``constraints``.

    An infeasible policy gets ``+inf`` on every objective; each violated
    penalty adds ``weight * penalty`` to every objective.
    """
    values = np.asarray(objective_values, dtype=float)
    for c in constraints:
        if isinstance(c, FeasibilityConstraint):
            if not c.func(policy):
                return np.full(values.shape, np.inf)
        elif isinstance(c, PenaltyConstraint):
            penalty = float(c.func(policy))
            if penalty > 0:
                values = values + c.weight * penalty
        else:
            raise ValidationError(f"Unknown constraint type {type(c).__name__}")
    return values
