"""Single-objective search with SciPy's differential evolution."""
from __future__ import annotations

import logging
import math

import numpy as np
from scipy.optimize import differential_evolution

from ..errors import ValidationError
from . import OptimizationBackend, make_fitness, register_backend, unnegate
from .pareto import OptimizationResult
from .problem import OptimizationProblem

__all__ = ["DifferentialEvolutionBackend"]

logger = logging.getLogger(__name__)


@register_backend
class DifferentialEvolutionBackend(OptimizationBackend):
    """Differential evolution in the normalised parameter cube.

    Parameters
    ----------
    max_iterations
        Generations to evolve.
    population_size
        Approximate total population; SciPy's per-parameter multiplier is
        derived from it.
    seed
        Seed of the evolutionary operators.
    sim_seed
        Seed shared by every fitness evaluation.
    tol
        Relative convergence tolerance.
    """

    def __init__(
        self,
        max_iterations: int = 100,
        population_size: int = 50,
        seed: int = 0,
        sim_seed: int = 42,
        tol: float = 0.01,
    ):
        if int(max_iterations) < 1:
            raise ValidationError(f"max_iterations must be >= 1, got {max_iterations}")
        if int(population_size) < 1:
            raise ValidationError(f"population_size must be >= 1, got {population_size}")
        self.max_iterations = int(max_iterations)
        self.population_size = int(population_size)
        self.seed = seed
        self.sim_seed = sim_seed
        self.tol = tol

    def __repr__(self) -> str:
        return (
            f"DifferentialEvolutionBackend(max_iterations={self.max_iterations}, "
            f"population_size={self.population_size}, seed={self.seed})"
        )

    def run(self, problem: OptimizationProblem, /) -> OptimizationResult:
        if problem.n_objectives != 1:
            raise ValidationError(
                f"DifferentialEvolutionBackend handles one objective, got {problem.n_objectives}. "
                "Use RandomSearchBackend for multi-objective problems."
            )
        fitness = make_fitness(problem, self.sim_seed)
        n_params = len(problem.get_bounds())

        def scalar_fitness(x):
            return float(fitness(x)[1][0])

        de = differential_evolution(
            scalar_fitness,
            bounds=[(0.0, 1.0)] * n_params,
            maxiter=self.max_iterations,
            popsize=max(1, math.ceil(self.population_size / n_params)),
            tol=self.tol,
            seed=self.seed,
            polish=False,
        )
        logger.debug("differential evolution stopped after %d generations: %s", de.nit, de.message)

        best_params, best_min = fitness(de.x)
        result = OptimizationResult(problem.objectives)
        if np.all(np.isfinite(best_min)):
            result.pareto_params.append(best_params)
            result.pareto_objectives.append(unnegate(best_min, problem.objectives))
        else:
            logger.warning("differential evolution found no feasible policy")

        result.convergence_info.update(
            iterations=int(de.nit),
            f_calls=int(de.nfev) + 1,
            converged=str(de.message),
            success=bool(de.success),
            n_pareto=len(result),
        )
        return result
