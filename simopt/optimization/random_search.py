"""Uniform random search over the parameter box.

Works with any number of objectives: every feasible sample is folded into
the Pareto front. Candidates are scored in parallel with joblib threads,
since simulations release no shared state and policies are cheap to build.
"""
from __future__ import annotations

import logging

import numpy as np
from joblib import Parallel, delayed

from ..errors import ValidationError
from . import OptimizationBackend, make_fitness, register_backend, unnegate
from .pareto import OptimizationResult, merge_candidate
from .problem import OptimizationProblem

__all__ = ["RandomSearchBackend"]

logger = logging.getLogger(__name__)


@register_backend
class RandomSearchBackend(OptimizationBackend):
    """Sample ``n_samples`` points uniformly and keep the non-dominated ones.

    Parameters
    ----------
    n_samples
        Number of candidate policies to evaluate.
    seed
        Seed of the candidate sampler.
    n_jobs
        joblib worker count; ``1`` runs inline, ``-1`` uses every core.
    sim_seed
        Seed shared by every fitness evaluation.
    """

    def __init__(self, n_samples: int = 100, seed: int = 0, n_jobs: int = 1, sim_seed: int = 42):
        if int(n_samples) < 1:
            raise ValidationError(f"n_samples must be >= 1, got {n_samples}")
        self.n_samples = int(n_samples)
        self.seed = seed
        self.n_jobs = n_jobs
        self.sim_seed = sim_seed

    def __repr__(self) -> str:
        return f"RandomSearchBackend(n_samples={self.n_samples}, seed={self.seed}, n_jobs={self.n_jobs})"

    def run(self, problem: OptimizationProblem, /) -> OptimizationResult:
        fitness = make_fitness(problem, self.sim_seed)
        n_params = len(problem.get_bounds())
        candidates = np.random.default_rng(self.seed).random((self.n_samples, n_params))

        scored = Parallel(n_jobs=self.n_jobs, prefer="threads")(delayed(fitness)(x) for x in candidates)

        result = OptimizationResult(problem.objectives)
        n_infeasible = 0
        for params, min_values in scored:
            if not np.all(np.isfinite(min_values)):
                n_infeasible += 1
                continue
            merge_candidate(result, params, unnegate(min_values, problem.objectives))
        if n_infeasible:
            logger.warning("%d of %d random candidates were infeasible", n_infeasible, self.n_samples)

        result.convergence_info.update(
            iterations=1,
            f_calls=self.n_samples,
            converged="sample budget exhausted",
            n_pareto=len(result),
            n_infeasible=n_infeasible,
        )
        return result
