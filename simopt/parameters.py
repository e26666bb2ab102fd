"""Typed parameter wrappers used for exploratory modeling.

Scenario, Policy and Outcome classes whose fields are parameters can be
flattened into result tables by :func:`simopt.exploration.explore`.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, Tuple, TypeVar

import numpy as np

from .errors import TimeSeriesParameterBoundsError, ValidationError
from .types import TimeStep

__all__ = [
    "Parameter",
    "ContinuousParameter",
    "DiscreteParameter",
    "CategoricalParameter",
    "GenericParameter",
    "TimeSeriesParameter",
    "value",
    "is_parameter",
]

T = TypeVar("T")


class Parameter(Generic[T]):
    """Base class for scalar parameters exposing ``.value``."""

    value: T

    def __call__(self) -> T:
        return self.value


@dataclass(frozen=True)
class ContinuousParameter(Parameter[float]):
    """Real-valued parameter with optional bounds."""

    value: float
    bounds: Tuple[float, float] = (-math.inf, math.inf)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        lo, hi = self.bounds
        if lo > hi:
            raise ValidationError(f"ContinuousParameter bounds have lower > upper: {lo} > {hi}")


@dataclass(frozen=True)
class DiscreteParameter(Parameter[int]):
    """Integer parameter, optionally restricted to ``valid_values``."""

    value: int
    valid_values: Optional[Tuple[int, ...]] = None

    def __post_init__(self) -> None:
        if self.valid_values is not None:
            object.__setattr__(self, "valid_values", tuple(self.valid_values))
            if self.value not in self.valid_values:
                raise ValidationError(
                    f"Value {self.value!r} not in valid values {list(self.valid_values)}"
                )


@dataclass(frozen=True)
class CategoricalParameter(Parameter[Any]):
    """Categorical parameter; ``value`` must be one of ``levels``."""

    value: Any
    levels: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", tuple(self.levels))
        if self.value not in self.levels:
            raise ValidationError(f"Value {self.value!r} not in levels {list(self.levels)}")


@dataclass(frozen=True)
class GenericParameter(Parameter[Any]):
    """Opaque value carried along but skipped when flattening."""

    value: Any


class TimeSeriesParameter:
    """Time-indexed values.

    Index with a :class:`~simopt.types.TimeStep` (looked up by its time value)
    or with an integer position (1-based, like ``TimeStep.t``).
    """

    __slots__ = ("time_axis", "values")

    def __init__(self, time_axis: Sequence[Any] | None = None, values: Sequence[float] | None = None):
        if values is None:
            # single positional argument form: TimeSeriesParameter([1.0, 2.0])
            values, time_axis = time_axis, None
        vals = np.asarray(list(values), dtype=float)
        if vals.size == 0:
            raise ValidationError("TimeSeriesParameter cannot be empty")
        axis = tuple(range(1, vals.size + 1)) if time_axis is None else tuple(time_axis)
        if len(axis) != vals.size:
            raise ValidationError(
                f"time_axis length ({len(axis)}) must match values length ({vals.size})"
            )
        object.__setattr__(self, "time_axis", axis)
        object.__setattr__(self, "values", vals)

    def __getitem__(self, key):
        if isinstance(key, TimeStep):
            try:
                idx = self.time_axis.index(key.val)
            except ValueError:
                raise TimeSeriesParameterBoundsError(key.val, self.time_axis) from None
            return float(self.values[idx])
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            if key < 1 or key > self.values.size:
                raise IndexError(
                    f"index {key} out of range for TimeSeriesParameter of length {self.values.size}"
                )
            return float(self.values[key - 1])
        raise TypeError(f"TimeSeriesParameter indices must be TimeStep or int, not {type(key).__name__}")

    def __len__(self) -> int:
        return int(self.values.size)

    def __iter__(self):
        return iter(self.values.tolist())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeSeriesParameter):
            return NotImplemented
        return self.time_axis == other.time_axis and np.array_equal(self.values, other.values)

    __hash__ = None

    def __setattr__(self, name, value):
        raise AttributeError("TimeSeriesParameter is immutable")

    def __repr__(self) -> str:
        return f"TimeSeriesParameter(time_axis={list(self.time_axis)!r}, values={self.values.tolist()!r})"

    def __getstate__(self):
        return {"time_axis": self.time_axis, "values": self.values}

    def __setstate__(self, state):
        object.__setattr__(self, "time_axis", state["time_axis"])
        object.__setattr__(self, "values", state["values"])

    @property
    def value(self) -> np.ndarray:
        return self.values


def value(p):
    """Unwrap a parameter (or time series) to its raw value."""
    if isinstance(p, (Parameter, TimeSeriesParameter)):
        return p.value
    return p


def is_parameter(obj) -> bool:
    """True if ``obj`` is a parameter type accepted by exploration."""
    return isinstance(obj, (Parameter, TimeSeriesParameter))

