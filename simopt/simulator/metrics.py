"""Declarative metrics that reduce a list of outcomes to named numbers."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence

import numpy as np

from ..errors import ValidationError
from ..parameters import value as _unwrap

__all__ = [
    "Metric",
    "ExpectedValue",
    "Probability",
    "Variance",
    "MeanAndVariance",
    "Quantile",
    "CustomMetric",
    "compute_metrics",
    "metric_names",
    "outcome_field",
]


def outcome_field(outcome, name: str):
    """Read ``name`` from a mapping or attribute outcome, unwrapping parameters."""
    raw = outcome[name] if isinstance(outcome, Mapping) else getattr(outcome, name)
    return _unwrap(raw)


def _values(outcomes: Sequence, name: str) -> np.ndarray:
    return np.asarray([outcome_field(o, name) for o in outcomes], dtype=float)


class Metric:
    """A named reduction over outcomes."""

    def compute(self, outcomes: Sequence) -> Dict[str, float]:
        raise NotImplementedError

    def names(self) -> List[str]:
        return [self.name]


@dataclass(frozen=True)
class ExpectedValue(Metric):
    """Mean of ``field`` across outcomes."""

    name: str
    field: str

    def compute(self, outcomes):
        return {self.name: float(np.mean(_values(outcomes, self.field)))}


@dataclass(frozen=True)
class Probability(Metric):
    """Fraction of outcomes for which ``predicate(outcome)`` is true."""

    name: str
    predicate: Callable

    def compute(self, outcomes):
        return {self.name: float(np.mean([bool(self.predicate(o)) for o in outcomes]))}


@dataclass(frozen=True)
class Variance(Metric):
    """Sample variance (``ddof=1``) of ``field``."""

    name: str
    field: str

    def compute(self, outcomes):
        return {self.name: float(np.var(_values(outcomes, self.field), ddof=1))}


@dataclass(frozen=True)
class MeanAndVariance(Metric):
    mean_name: str
    var_name: str
    field: str

    def compute(self, outcomes):
        vals = _values(outcomes, self.field)
        return {self.mean_name: float(np.mean(vals)), self.var_name: float(np.var(vals, ddof=1))}

    def names(self):
        return [self.mean_name, self.var_name]


@dataclass(frozen=True)
class Quantile(Metric):
    """The ``q``-th quantile of ``field``, ``0 < q < 1``."""

    name: str
    field: str
    q: float

    def __post_init__(self):
        if not 0.0 < self.q < 1.0:
            raise ValidationError(f"Quantile q must be in (0, 1), got {self.q}")

    def compute(self, outcomes):
        return {self.name: float(np.quantile(_values(outcomes, self.field), self.q))}


@dataclass(frozen=True)
class CustomMetric(Metric):
    """Arbitrary ``func(outcomes) -> float``."""

    name: str
    func: Callable

    def compute(self, outcomes):
        return {self.name: float(self.func(outcomes))}


def compute_metrics(metrics: Sequence[Metric], outcomes: Sequence) -> Dict[str, float]:
    """Evaluate every metric and merge the results into one mapping."""
    result: Dict[str, float] = {}
    for m in metrics:
        result.update(m.compute(outcomes))
    return result


def metric_names(metrics: Sequence[Metric]) -> List[str]:
    names: List[str] = []
    for m in metrics:
        names.extend(m.names())
    return names
