"""Optimisation problem definition, batch sampling and policy evaluation."""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import DownstreamMetricError, ValidationError
from ..simulator.crn import CRNConfig, scenario_rng
from ..simulator.engine import simulate
from ..types import BatchSize, Config, FullBatch, Objective, Policy
from ..validation import (
    ValidationCache,
    validate_batch_size,
    validate_bounds,
    validate_objectives,
    validate_policy_interface,
    validate_scenarios,
)
from .constraints import Constraint

__all__ = [
    "OptimizationProblem",
    "select_indices",
    "select_batch",
    "evaluate",
    "evaluate_policy",
    "metrics_mapping",
    "extract_objectives",
    "natural_objectives",
]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Problem
# ------------------------------------------------------------------

@dataclass
class OptimizationProblem:
    """Everything a search backend needs to score candidate policies.

    Parameters
    ----------
    config
        Shared configuration with the simulation callbacks.
    scenarios
        Non-empty, homogeneous collection of scenarios.
    policy_type
        Policy subclass implementing ``from_vector`` and ``param_bounds``.
    metric_fn
        ``metric_fn(outcomes) -> {name: value}``.
    objectives
        Unique :class:`~simopt.types.Objective` entries, at least one.
    batch_size
        Scenarios used per fitness evaluation.
    constraints
        Feasibility and penalty constraints applied to every candidate.
    bounds
        Custom ``(lower, upper)`` pairs overriding ``policy_type.param_bounds()``.
    """

    config: Config
    scenarios: Sequence[Any]
    policy_type: type
    metric_fn: Callable
    objectives: Sequence[Objective]
    batch_size: BatchSize = field(default_factory=FullBatch)
    constraints: Sequence[Constraint] = ()
    bounds: Optional[Sequence[Tuple[float, float]]] = None

    def __post_init__(self):
        self.scenarios = list(self.scenarios)
        self.objectives = list(self.objectives)
        self.constraints = list(self.constraints)
        self.validate()

    def validate(self) -> None:
        """Structural checks; cheap, run before any simulation."""
        validate_scenarios(self.scenarios)
        validate_objectives(self.objectives)
        policy_bounds = validate_policy_interface(self.policy_type)
        if self.bounds is not None:
            self.bounds = validate_bounds(self.bounds, "bounds")
            if len(self.bounds) != len(policy_bounds):
                raise ValidationError(
                    f"bounds has {len(self.bounds)} entries but {self.policy_type.__name__} "
                    f"has {len(policy_bounds)} parameters"
                )
        if not callable(self.metric_fn):
            raise ValidationError(f"metric_fn must be callable, got {type(self.metric_fn).__name__}")
        for c in self.constraints:
            if not isinstance(c, Constraint):
                raise ValidationError(f"constraints must be Constraint instances, got {c!r}")
        validate_batch_size(self.batch_size, len(self.scenarios))

    def validate_hooks(self) -> None:
        """Run the domain ``validate`` hooks of the config and a sample policy."""
        if not self.config.validate():
            raise ValidationError(f"{type(self.config).__name__}.validate() returned False")
        sample = self.policy_type.from_vector([(lo + hi) / 2.0 for lo, hi in self.get_bounds()])
        if not sample.validate(self.config):
            raise ValidationError(
                f"{self.policy_type.__name__}.validate(config) returned False for the bounds midpoint"
            )

    def get_bounds(self) -> List[Tuple[float, float]]:
        """Custom bounds if given, otherwise those of the policy type."""
        if self.bounds is not None:
            return list(self.bounds)
        return [(float(lo), float(hi)) for lo, hi in self.policy_type.param_bounds()]

    @property
    def n_objectives(self) -> int:
        return len(self.objectives)


# ------------------------------------------------------------------
# Batch sampling
# ------------------------------------------------------------------

def select_indices(n_scenarios: int, batch_size: BatchSize, rng: np.random.Generator) -> np.ndarray:
    """0-based indices of the scenarios taking part in one evaluation.

    ``FullBatch`` consumes no randomness. The other kinds take the head of
    one random permutation, so draws are without replacement.
    """
    validate_batch_size(batch_size, n_scenarios)
    if isinstance(batch_size, FullBatch):
        return np.arange(n_scenarios)
    k = batch_size.count(n_scenarios)
    return rng.permutation(n_scenarios)[:k]


def select_batch(scenarios: Sequence, batch_size: BatchSize, rng: np.random.Generator) -> list:
    return [scenarios[i] for i in select_indices(len(scenarios), batch_size, rng)]


# ------------------------------------------------------------------
# Evaluation
# ------------------------------------------------------------------

def evaluate(
    config: Config,
    scenarios: Sequence,
    policy: Policy,
    metric_fn: Callable,
    rng: Optional[np.random.Generator] = None,
    batch_size: BatchSize = FullBatch(),
    crn: Optional[CRNConfig] = None,
    validation: Optional[ValidationCache] = None,
):
    """Simulate ``policy`` on a batch of ``scenarios`` and reduce with ``metric_fn``.

    ``rng`` drives both the batch draw and, unless ``crn`` is given, every
    simulation. With ``crn`` each selected scenario gets the stream keyed on
    its 1-based position in ``scenarios``.
    """
    rng = np.random.default_rng() if rng is None else rng
    indices = select_indices(len(scenarios), batch_size, rng)
    logger.debug("evaluating %s on %d of %d scenarios", type(policy).__name__, len(indices), len(scenarios))

    outcomes = []
    for i in indices:
        sim_rng = rng if crn is None else scenario_rng(crn, int(i) + 1)
        outcomes.append(simulate(config, scenarios[i], policy, rng=sim_rng, validation=validation))
    return metric_fn(outcomes)


def evaluate_policy(
    problem: OptimizationProblem,
    policy: Policy,
    rng: Optional[np.random.Generator] = None,
    seed: int = 1234,
):
    """Evaluate ``policy`` with the problem's scenarios, metric and batch size."""
    rng = np.random.default_rng(seed) if rng is None else rng
    return evaluate(problem.config, problem.scenarios, policy, problem.metric_fn, rng, problem.batch_size)


# ------------------------------------------------------------------
# Objective extraction
# ------------------------------------------------------------------

def metrics_mapping(metrics) -> Dict[str, Any]:
    """View a metrics record (mapping, named tuple or dataclass) as a dict."""
    if isinstance(metrics, Mapping):
        return dict(metrics)
    if hasattr(metrics, "_asdict"):
        return dict(metrics._asdict())
    if dataclasses.is_dataclass(metrics) and not isinstance(metrics, type):
        return dataclasses.asdict(metrics)
    raise TypeError(
        f"metric_fn must return a mapping, named tuple or dataclass, got {type(metrics).__name__}"
    )


def natural_objectives(metrics, objectives: Sequence[Objective]) -> np.ndarray:
    """Objective values as reported by the metric function, in objective order."""
    record = metrics_mapping(metrics)
    values = []
    for obj in objectives:
        if obj.name not in record:
            raise DownstreamMetricError(
                f"Metric function did not return '{obj.name}'. Available metrics: {sorted(record)}"
            )
        values.append(float(record[obj.name]))
    return np.asarray(values, dtype=float)


def extract_objectives(metrics, objectives: Sequence[Objective]) -> np.ndarray:
    """Objective vector in minimisation space: maximised objectives are negated."""
    signs = np.asarray([obj.sign for obj in objectives], dtype=float)
    return natural_objectives(metrics, objectives) * signs
