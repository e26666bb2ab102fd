"""Pareto-front bookkeeping for multi-objective optimisation.

Objective vectors are stored in their natural scale and direction. Every
dominance test first maps them to minimisation space, negating the
components of maximised objectives.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd

from ..errors import ValidationError
from ..types import Objective, Policy
from ..validation import validate_objectives
from .problem import evaluate_policy, natural_objectives

__all__ = [
    "OptimizationResult",
    "dominates",
    "to_min_space",
    "merge_candidate",
    "merge_policy",
    "pareto_filter",
    "hypervolume_2d",
]

logger = logging.getLogger(__name__)


def dominates(a, b) -> bool:
    """True if ``a`` is no worse than ``b`` everywhere and strictly better somewhere.

    Both vectors are in minimisation space.
    """
    strictly_better = False
    for ai, bi in zip(a, b):
        if ai > bi:
            return False
        if ai < bi:
            strictly_better = True
    return strictly_better


def to_min_space(values, objectives: Sequence[Objective]) -> np.ndarray:
    """Negate maximised components of ``values``."""
    values = np.asarray(values, dtype=float)
    if values.shape != (len(objectives),):
        raise ValidationError(
            f"Objective vector has {values.size} entries, expected {len(objectives)}"
        )
    return values * np.asarray([obj.sign for obj in objectives], dtype=float)


@dataclass
class OptimizationResult:
    """Non-dominated (parameters, objectives) pairs plus backend metadata.

    ``pareto_objectives`` hold natural-scale values; use
    :func:`to_min_space` before comparing them.
    """

    objectives: List[Objective]
    pareto_params: List[np.ndarray] = field(default_factory=list)
    pareto_objectives: List[np.ndarray] = field(default_factory=list)
    convergence_info: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.objectives = list(self.objectives)
        validate_objectives(self.objectives)
        if len(self.pareto_params) != len(self.pareto_objectives):
            raise ValidationError("pareto_params and pareto_objectives must have the same length")
        self.pareto_params = [np.asarray(p, dtype=float) for p in self.pareto_params]
        self.pareto_objectives = [np.asarray(o, dtype=float) for o in self.pareto_objectives]

    def __len__(self) -> int:
        return len(self.pareto_params)

    def pareto_front(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Iterate over ``(params, objectives)`` pairs."""
        return zip(self.pareto_params, self.pareto_objectives)

    def best(self, name: str | None = None) -> Tuple[np.ndarray, np.ndarray]:
        """Front member that is best on objective ``name`` (default: the first)."""
        if not self.pareto_params:
            raise ValidationError("Pareto front is empty")
        names = [o.name for o in self.objectives]
        k = 0 if name is None else names.index(name)
        scores = [to_min_space(o, self.objectives)[k] for o in self.pareto_objectives]
        i = int(np.argmin(scores))
        return self.pareto_params[i], self.pareto_objectives[i]

    def to_dataframe(self) -> pd.DataFrame:
        """One row per front member: ``x1..xn`` then one column per objective."""
        names = [o.name for o in self.objectives]
        if not self.pareto_params:
            return pd.DataFrame(columns=names)
        n = len(self.pareto_params[0])
        data = np.column_stack([np.vstack(self.pareto_params), np.vstack(self.pareto_objectives)])
        return pd.DataFrame(data, columns=[f"x{i}" for i in range(1, n + 1)] + names)


# ------------------------------------------------------------------
# Merging
# ------------------------------------------------------------------

def merge_candidate(result: OptimizationResult, params, objective_values) -> OptimizationResult:
    """Fold one natural-scale ``(params, objective_values)`` pair into ``result``.

    The candidate is dropped if a member dominates it or is an exact copy of
    it; otherwise every member it dominates is removed and it is appended.
    ``result`` is updated in place and returned.
    """
    params = np.asarray(params, dtype=float)
    values = np.asarray(objective_values, dtype=float)
    new_min = to_min_space(values, result.objectives)

    for p, o in result.pareto_front():
        existing = to_min_space(o, result.objectives)
        if dominates(existing, new_min):
            return result
        if np.array_equal(existing, new_min) and np.array_equal(p, params):
            return result

    keep = [
        i for i, o in enumerate(result.pareto_objectives)
        if not dominates(new_min, to_min_space(o, result.objectives))
    ]
    result.pareto_params[:] = [result.pareto_params[i] for i in keep] + [params]
    result.pareto_objectives[:] = [result.pareto_objectives[i] for i in keep] + [values]
    return result


def merge_policy(result: OptimizationResult, problem, policy: Policy, seed: int = 42) -> OptimizationResult:
    """Evaluate ``policy`` on ``problem`` and merge it, e.g. to add a baseline."""
    metrics = evaluate_policy(problem, policy, seed=seed)
    values = natural_objectives(metrics, result.objectives)
    before = len(result)
    merge_candidate(result, policy.params(), values)
    logger.info("merged %s into Pareto front (%d -> %d members)", type(policy).__name__, before, len(result))
    return result


def pareto_filter(params: Sequence, objective_values: Sequence, objectives: Sequence[Objective]) -> OptimizationResult:
    """Build a front from raw natural-scale pairs by successive merges."""
    if len(params) != len(objective_values):
        raise ValidationError("params and objective_values must have the same length")
    result = OptimizationResult(list(objectives))
    for p, o in zip(params, objective_values):
        merge_candidate(result, p, o)
    return result


def hypervolume_2d(result: OptimizationResult, reference) -> float:
    """Area dominated by a two-objective front, bounded by ``reference``.

    ``reference`` is given in natural scale, like the stored objectives.
    Points that do not improve on the reference in both objectives add
    nothing.
    """
    if len(result.objectives) != 2:
        raise ValidationError(f"hypervolume_2d needs exactly 2 objectives, got {len(result.objectives)}")
    ref = to_min_space(reference, result.objectives)
    points = sorted(tuple(to_min_space(o, result.objectives)) for o in result.pareto_objectives)

    hv = 0.0
    current = ref[1]
    for f1, f2 in points:
        if f1 < ref[0] and f2 < current:
            hv += (ref[0] - f1) * (current - f2)
            current = f2
    return float(hv)
