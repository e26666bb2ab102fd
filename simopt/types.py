"""Capability interfaces and small value types used across the engine.

Users subclass :class:`Config` and :class:`Policy` and override the callbacks
the simulation engine needs; :class:`Scenario`, :class:`State` and
:class:`Action` are marker bases that document intent.

Usage Example:
--------------

from dataclasses import dataclass
from simopt.types import Config, Policy, Scenario, State

@dataclass(frozen=True)
class Counter(State):
    value: float

@dataclass(frozen=True)
class Horizon(Config):
    n_steps: int

    def time_axis(self, scenario):
        return range(1, self.n_steps + 1)

    def initialize(self, scenario, rng):
        return Counter(0.0)

    def run_timestep(self, state, action, time_step, scenario, rng):
        new_state = Counter(state.value + action)
        return new_state, {"value": new_state.value}

    def compute_outcome(self, step_records, scenario):
        return {"final_value": step_records[-1]["value"]}
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Sequence, Tuple, TypeVar

import numpy as np

from .errors import ValidationError, interface_not_implemented

__all__ = [
    "Config",
    "Scenario",
    "Policy",
    "State",
    "Action",
    "TimeStep",
    "Direction",
    "Objective",
    "minimize",
    "maximize",
    "BatchSize",
    "FullBatch",
    "FixedBatch",
    "FractionBatch",
    "SharedParameters",
]

V = TypeVar("V")


# ------------------------------------------------------------------
# Capability interfaces
# ------------------------------------------------------------------

class State:
    """Simulation state. Replaced, never mutated, by each timestep."""


class Action:
    """Decision returned by :meth:`Policy.get_action`."""


class Scenario:
    """One realisation of exogenous uncertainty (a "state of the world")."""


class Config:
    """Scenario-independent parameters and the model's transition callbacks."""

    def time_axis(self, scenario):
        """Return a sized, homogeneously-typed sequence of time values."""
        interface_not_implemented("time_axis", self, "scenario")

    def initialize(self, scenario, rng):
        """Create the initial state."""
        interface_not_implemented("initialize", self, "scenario, rng")

    def run_timestep(self, state, action, time_step, scenario, rng):
        """Execute one transition, returning ``(new_state, step_record)``."""
        interface_not_implemented(
            "run_timestep", self, "state, action, time_step, scenario, rng"
        )

    def compute_outcome(self, step_records, scenario):
        """Aggregate the step records of one run into an outcome."""
        interface_not_implemented("compute_outcome", self, "step_records, scenario")

    def validate(self) -> bool:
        """Domain-specific validation hook; return False to reject the config."""
        return True


class Policy:
    """Decision rule with a finite real-valued parameter vector."""

    def get_action(self, state, time_step, scenario):
        interface_not_implemented("get_action", self, "state, time_step, scenario")

    @classmethod
    def from_vector(cls, x: Sequence[float]) -> "Policy":
        """Construct a policy from a flat parameter vector."""
        interface_not_implemented("from_vector", cls, "x  (classmethod)")

    def params(self) -> np.ndarray:
        """Return the parameters as a flat vector."""
        interface_not_implemented("params", self)

    @classmethod
    def param_bounds(cls) -> List[Tuple[float, float]]:
        """Return ``(lower, upper)`` for every parameter."""
        interface_not_implemented("param_bounds", cls, "(classmethod)")

    def validate(self, config: Config) -> bool:
        return True


# ------------------------------------------------------------------
# Time
# ------------------------------------------------------------------

@dataclass(frozen=True)
class TimeStep(Generic[V]):
    """Position ``t`` (1-based) and value ``val`` of one simulated step."""

    t: int
    val: V


# ------------------------------------------------------------------
# Objectives
# ------------------------------------------------------------------

class Direction(enum.Enum):
    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"


@dataclass(frozen=True)
class Objective:
    """Metric name plus optimisation direction."""

    name: str
    direction: Direction = Direction.MINIMIZE

    @property
    def sign(self) -> float:
        """Multiplier mapping the natural value into minimisation space."""
        return -1.0 if self.direction is Direction.MAXIMIZE else 1.0


def minimize(name: str) -> Objective:
    return Objective(name, Direction.MINIMIZE)


def maximize(name: str) -> Objective:
    return Objective(name, Direction.MAXIMIZE)


# ------------------------------------------------------------------
# Batch sizes
# ------------------------------------------------------------------

class BatchSize:
    """How many scenarios participate in one evaluation."""

    def count(self, n_scenarios: int) -> int:
        raise NotImplementedError


@dataclass(frozen=True)
class FullBatch(BatchSize):
    """Every scenario, every evaluation."""

    def count(self, n_scenarios: int) -> int:
        return n_scenarios


@dataclass(frozen=True)
class FixedBatch(BatchSize):
    """A fixed number of scenarios drawn without replacement."""

    n: int

    def __post_init__(self) -> None:
        if int(self.n) != self.n or self.n <= 0:
            raise ValidationError(f"Batch size must be a positive integer, got {self.n}")

    def count(self, n_scenarios: int) -> int:
        return int(self.n)


@dataclass(frozen=True)
class FractionBatch(BatchSize):
    """A fraction of the scenarios; always at least one."""

    fraction: float

    def __post_init__(self) -> None:
        if not 0.0 < self.fraction <= 1.0:
            raise ValidationError(f"Fraction must be in (0, 1], got {self.fraction}")

    def count(self, n_scenarios: int) -> int:
        # round() is half-to-even
        return max(1, round(n_scenarios * self.fraction))


# ------------------------------------------------------------------
# Shared parameters
# ------------------------------------------------------------------

class SharedParameters(Config):
    """Immutable bag of scenario-independent constants.

    >>> sp = SharedParameters(discount_rate=0.03, horizon=50)
    >>> sp.horizon
    50

    Subclass it to attach the simulation callbacks to the constants.
    """

    __slots__ = ("_params",)

    def __init__(self, **params: Any):
        object.__setattr__(self, "_params", dict(params))

    def __getattr__(self, name: str) -> Any:
        if name == "_params":
            raise AttributeError(name)
        try:
            return self._params[name]
        except KeyError as exc:
            raise AttributeError(
                f"{type(self).__name__} has no parameter '{name}'. "
                f"Available: {sorted(self._params)}"
            ) from exc

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __getstate__(self) -> Dict[str, Any]:
        return dict(self._params)

    def __setstate__(self, state: Dict[str, Any]) -> None:
        object.__setattr__(self, "_params", dict(state))

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._params == other._params

    __hash__ = None  # values may be unhashable

    def __dir__(self):
        return sorted(set(super().__dir__()) | set(self._params))

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._params.items())
        return f"{type(self).__name__}({body})"

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._params)
