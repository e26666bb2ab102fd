"""Checks run before any simulation work begins.

Everything here raises :class:`~simopt.errors.ValidationError` (or
:class:`~simopt.errors.TimeAxisTypeError` for the time axis) with a message
naming the offending field and what was expected.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Mapping, Sized
from typing import Any, Iterable, List, Sequence, Set, Tuple

from .errors import (
    InterfaceNotImplemented,
    ParameterTypeError,
    TimeAxisTypeError,
    ValidationError,
)
from .parameters import is_parameter
from .types import BatchSize, FixedBatch, Objective, Policy, Scenario

__all__ = [
    "ValidationCache",
    "iter_fields",
    "validate_time_axis",
    "validate_scenarios",
    "validate_policies",
    "validate_objectives",
    "validate_bounds",
    "validate_policy_interface",
    "validate_batch_size",
]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Field access
# ------------------------------------------------------------------

def iter_fields(obj) -> List[Tuple[str, Any]]:
    """Return ``(name, value)`` for the public fields of ``obj``.

    Dataclasses, named tuples, mappings and plain objects are supported.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return [(f.name, getattr(obj, f.name)) for f in dataclasses.fields(obj)]
    if isinstance(obj, tuple) and hasattr(obj, "_fields"):
        return list(zip(obj._fields, obj))
    if isinstance(obj, Mapping):
        return [(str(k), v) for k, v in obj.items()]
    try:
        attrs = vars(obj)
    except TypeError:
        return []
    return [(k, v) for k, v in attrs.items() if not k.startswith("_")]


# ------------------------------------------------------------------
# Strict field validation
# ------------------------------------------------------------------

class ValidationCache:
    """Caller-owned record of classes that already passed strict validation.

    Pass one to :func:`simopt.simulator.engine.simulate` (or the executors)
    with ``strict=True`` to require every Scenario, Policy and Outcome field
    to be a typed parameter. Each class is checked once per cache.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._validated: Set[type] = set()
        self._lock = threading.Lock()

    def __contains__(self, cls: type) -> bool:
        return cls in self._validated

    def __len__(self) -> int:
        return len(self._validated)

    def clear(self) -> None:
        with self._lock:
            self._validated.clear()

    def check_fields(self, obj, label: str) -> None:
        cls = type(obj)
        if cls in self._validated:
            return
        bad = [f"  - {name} :: {type(val).__name__}" for name, val in iter_fields(obj) if not is_parameter(val)]
        if bad:
            raise ParameterTypeError(
                f"{label} type `{cls.__name__}` has non-parameter fields:\n"
                + "\n".join(bad)
                + "\n\nAll fields must be one of:\n"
                "  - ContinuousParameter\n"
                "  - DiscreteParameter\n"
                "  - CategoricalParameter\n"
                "  - TimeSeriesParameter\n"
                "  - GenericParameter"
            )
        with self._lock:
            self._validated.add(cls)
        logger.debug("%s type %s passed strict validation", label, cls.__name__)

    def check_simulation(self, scenario, policy) -> None:
        if not self.strict:
            return
        self.check_fields(scenario, "Scenario")
        self.check_fields(policy, "Policy")

    def check_outcome(self, outcome) -> None:
        if not self.strict:
            return
        self.check_fields(outcome, "Outcome")


# ------------------------------------------------------------------
# Time axis
# ------------------------------------------------------------------

def validate_time_axis(times) -> list:
    """Materialise ``times`` after checking it is sized, finite and homogeneous."""
    if isinstance(times, (str, bytes)) or not isinstance(times, Sized):
        raise TimeAxisTypeError(
            "time_axis must return a sized sequence (range, list, numpy array, ...), "
            f"got {type(times).__name__}. Generators and iterators have no known length."
        )
    values = list(times)
    if len(values) != len(times):
        raise TimeAxisTypeError(
            f"time_axis reported length {len(times)} but yielded {len(values)} values"
        )
    if not values:
        raise TimeAxisTypeError("time_axis must contain at least one time value")
    kinds = {type(v) for v in values}
    if len(kinds) > 1:
        names = sorted(k.__name__ for k in kinds)
        raise TimeAxisTypeError(
            "time_axis must return a homogeneously-typed collection. "
            f"Got mixed element types {names}. Use one concrete type such as "
            "range(...) of ints or a list of dates."
        )
    return values


# ------------------------------------------------------------------
# Problem pieces
# ------------------------------------------------------------------

def validate_scenarios(scenarios: Sequence) -> None:
    """Scenarios must be non-empty, all :class:`Scenario`, all of one class."""
    if scenarios is None or len(scenarios) == 0:
        raise ValidationError("Scenarios collection cannot be empty")
    first_type = type(scenarios[0])
    if not isinstance(scenarios[0], Scenario):
        raise ValidationError(f"Scenarios must subclass Scenario, got {first_type.__name__}")
    for i, scenario in enumerate(scenarios, start=1):
        if type(scenario) is not first_type:
            raise ValidationError(
                "All scenarios must be the same type. "
                f"Scenario 1 is {first_type.__name__}, scenario {i} is {type(scenario).__name__}"
            )


def validate_policies(policies: Sequence) -> None:
    if policies is None or len(policies) == 0:
        raise ValidationError("Policies collection cannot be empty")
    for i, policy in enumerate(policies, start=1):
        if not isinstance(policy, Policy):
            raise ValidationError(f"Policy {i} must subclass Policy, got {type(policy).__name__}")


def validate_objectives(objectives: Iterable[Objective]) -> None:
    objectives = list(objectives)
    if not objectives:
        raise ValidationError("At least one objective is required")
    seen: Set[str] = set()
    for obj in objectives:
        if not isinstance(obj, Objective):
            raise ValidationError(
                f"Objectives must be Objective instances (use minimize(name) or maximize(name)), got {obj!r}"
            )
        if obj.name in seen:
            raise ValidationError(f"Duplicate objective name: {obj.name}")
        seen.add(obj.name)


def validate_bounds(bounds, label: str = "bounds") -> List[Tuple[float, float]]:
    """Return ``bounds`` as float pairs after checking shape and lower <= upper."""
    if bounds is None or isinstance(bounds, (str, bytes)):
        raise ValidationError(f"{label} must be a sequence of (lower, upper) pairs, got {bounds!r}")
    try:
        pairs = list(bounds)
    except TypeError:
        raise ValidationError(f"{label} must be a sequence of (lower, upper) pairs, got {type(bounds).__name__}") from None
    if not pairs:
        raise ValidationError(f"{label} is empty")
    out = []
    for i, b in enumerate(pairs, start=1):
        try:
            lo, hi = b
        except (TypeError, ValueError):
            raise ValidationError(f"{label}[{i}] must be a 2-tuple, got {b!r}") from None
        lo, hi = float(lo), float(hi)
        if lo > hi:
            raise ValidationError(f"{label}[{i}] has lower > upper: {lo} > {hi}")
        out.append((lo, hi))
    return out


def validate_policy_interface(policy_type: type) -> List[Tuple[float, float]]:
    """Check ``param_bounds`` and ``from_vector`` on ``policy_type``; return the bounds."""
    if not (isinstance(policy_type, type) and issubclass(policy_type, Policy)):
        raise ValidationError(f"policy_type must be a Policy subclass, got {policy_type!r}")
    name = policy_type.__name__
    try:
        raw = policy_type.param_bounds()
    except InterfaceNotImplemented:
        raise ValidationError(f"Policy type {name} must implement the classmethod `param_bounds()`") from None
    bounds = validate_bounds(raw, f"{name}.param_bounds()")

    sample = [(lo + hi) / 2.0 for lo, hi in bounds]
    try:
        policy = policy_type.from_vector(sample)
    except InterfaceNotImplemented:
        raise ValidationError(f"Policy type {name} must implement the classmethod `from_vector(x)`") from None
    except Exception as exc:
        raise ValidationError(f"{name}.from_vector(x) failed on the bounds midpoint: {exc}") from exc
    if not isinstance(policy, Policy):
        raise ValidationError(f"{name}.from_vector(x) must return a Policy, got {type(policy).__name__}")
    return bounds


def validate_batch_size(batch_size: BatchSize, n_scenarios: int) -> None:
    if not isinstance(batch_size, BatchSize):
        raise ValidationError(f"batch_size must be FullBatch, FixedBatch or FractionBatch, got {batch_size!r}")
    if isinstance(batch_size, FixedBatch) and batch_size.n > n_scenarios:
        raise ValidationError(
            f"FixedBatch({batch_size.n}) exceeds the number of scenarios ({n_scenarios})"
        )
