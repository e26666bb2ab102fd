"""
Optimisation module: backend registry, abstract base class and public API.

This module provides:
- An abstract base class (`OptimizationBackend`) for search backends.
- A registry system for looking backends up by name.
- `optimize`, which validates a problem and hands it to a backend.

Backends search in the normalised unit cube and map candidates back to the
real bounds with `denormalize`; every fitness call shares one simulation seed
so candidates are compared on the same random draws.

Usage Example:
--------------

from simopt.optimization import OptimizationProblem, optimize, get_backend, minimize

problem = OptimizationProblem(config, scenarios, MyPolicy, metric_fn, [minimize("cost")])
result = optimize(problem, get_backend("RandomSearchBackend", n_samples=200))
for params, objectives in result.pareto_front():
    ...

@register_backend
class MyBackend(OptimizationBackend):
    def run(self, problem):
        ...
"""
from __future__ import annotations

import inspect
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Tuple, Type

import numpy as np

from ..types import Objective, maximize, minimize
from .constraints import FeasibilityConstraint, PenaltyConstraint, apply_constraints
from .pareto import OptimizationResult, merge_candidate, merge_policy, pareto_filter
from .problem import OptimizationProblem, evaluate, evaluate_policy, extract_objectives

__all__ = [
    "OptimizationBackend",
    "register_backend",
    "get_backend",
    "available_backends",
    "optimize",
    "denormalize",
    "make_fitness",
    "unnegate",
    "OptimizationProblem",
    "OptimizationResult",
    "FeasibilityConstraint",
    "PenaltyConstraint",
    "evaluate",
    "evaluate_policy",
    "extract_objectives",
    "merge_candidate",
    "merge_policy",
    "pareto_filter",
    "minimize",
    "maximize",
    "random_search",
    "differential_evolution",
]

logger = logging.getLogger(__name__)

# Backend registry: maps backend names to classes
_REGISTRY: Dict[str, Type["OptimizationBackend"]] = {}


class OptimizationBackend(ABC):
    """
    Abstract interface every search backend must implement.
    Backends propose parameter vectors and return an `OptimizationResult`.
    """

    @abstractmethod
    def run(self, problem: OptimizationProblem, /) -> OptimizationResult:
        """Search ``problem`` and return its Pareto front."""

    @property
    def name(self) -> str:
        """Name used in logs and experiment records (defaults to class name)."""
        return self.__class__.__name__


# ------------------------------------------------------------------
# Registry helpers
# ------------------------------------------------------------------

def register_backend(cls: Type["OptimizationBackend"]) -> Type["OptimizationBackend"]:
    """
    Class decorator registering a backend under its class name.
    Raises on duplicate or invalid registration.
    """
    if not inspect.isclass(cls):
        raise TypeError("@register_backend can only decorate classes")
    if not issubclass(cls, OptimizationBackend):
        raise TypeError("Registered class must inherit from OptimizationBackend")

    key = cls.__name__
    if key in _REGISTRY:
        raise KeyError(f"Backend '{key}' is already registered")
    _REGISTRY[key] = cls
    return cls


def get_backend(name: str, **kwargs) -> "OptimizationBackend":
    """
    Instantiate a registered backend by name.
    Raises KeyError if not found.
    """
    try:
        cls = _REGISTRY[name]
    except KeyError as exc:
        raise KeyError(
            f"Backend '{name}' not found in registry. Available: {list(_REGISTRY)}"
        ) from exc
    return cls(**kwargs)


def available_backends() -> List[str]:
    return list(_REGISTRY)


# ------------------------------------------------------------------
# Shared backend helpers
# ------------------------------------------------------------------

def denormalize(x_normalized, bounds: Sequence[Tuple[float, float]]) -> np.ndarray:
    """Map a point (or rows of points) from ``[0, 1]^n`` onto ``bounds``."""
    x = np.asarray(x_normalized, dtype=float)
    lo = np.asarray([b[0] for b in bounds], dtype=float)
    hi = np.asarray([b[1] for b in bounds], dtype=float)
    return lo + x * (hi - lo)


def make_fitness(problem: OptimizationProblem, sim_seed: int):
    """Return ``fitness(x_normalized) -> (params, objective vector)``.

    The objective vector is in minimisation space with constraints applied.
    Every call draws from a generator seeded with ``sim_seed``.
    """
    bounds = problem.get_bounds()

    def fitness(x_normalized):
        params = denormalize(x_normalized, bounds)
        policy = problem.policy_type.from_vector(params)
        metrics = evaluate(
            problem.config,
            problem.scenarios,
            policy,
            problem.metric_fn,
            np.random.default_rng(sim_seed),
            problem.batch_size,
        )
        values = extract_objectives(metrics, problem.objectives)
        return params, apply_constraints(values, policy, problem.constraints)

    return fitness


def unnegate(min_values, objectives: Sequence[Objective]) -> np.ndarray:
    """Map minimisation-space values back to natural scale."""
    return np.asarray(min_values, dtype=float) * np.asarray([o.sign for o in objectives], dtype=float)


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------

def optimize(problem: OptimizationProblem, backend: OptimizationBackend) -> OptimizationResult:
    """Validate ``problem`` (including the domain hooks) and run ``backend`` on it."""
    if not isinstance(problem, OptimizationProblem):
        raise TypeError(f"problem must be an OptimizationProblem, got {type(problem).__name__}")
    if not isinstance(backend, OptimizationBackend):
        raise TypeError(f"backend must be an OptimizationBackend, got {type(backend).__name__}")
    problem.validate()
    problem.validate_hooks()

    logger.info(
        "optimising %s over %d scenarios with %s (%d objectives)",
        problem.policy_type.__name__, len(problem.scenarios), backend.name, problem.n_objectives,
    )
    start = time.time()
    result = backend.run(problem)
    result.convergence_info.setdefault("n_pareto", len(result))
    logger.info("%s finished in %.2f s with %d Pareto members", backend.name, time.time() - start, len(result))
    return result


# ------------------------------------------------------------------
# Import backends so that they register themselves
# ------------------------------------------------------------------

from . import random_search  # noqa: E402
from . import differential_evolution  # noqa: E402
