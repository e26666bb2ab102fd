"""Tests for search backends, constraints and the optimize entry point."""
from dataclasses import dataclass

import numpy as np
import pytest

from simopt.errors import ValidationError
from simopt.optimization import (
    OptimizationBackend,
    OptimizationProblem,
    available_backends,
    denormalize,
    get_backend,
    make_fitness,
    merge_policy,
    optimize,
    register_backend,
    unnegate,
)
from simopt.optimization.constraints import FeasibilityConstraint, PenaltyConstraint, apply_constraints
from simopt.optimization.differential_evolution import DifferentialEvolutionBackend
from simopt.optimization.pareto import dominates, to_min_space
from simopt.optimization.random_search import RandomSearchBackend
from simopt.types import maximize, minimize

from toy_models import (
    TRADEOFF_OBJECTIVES,
    Bowl,
    DriftPolicy,
    Effort,
    NoisyWalk,
    Point,
    TradeoffConfig,
    TrivialScenario,
    cost_and_reliability,
    mean_loss,
    mean_total,
    noisy_scenarios,
)


def bowl_problem(**kwargs):
    return OptimizationProblem(Bowl(), [TrivialScenario()], Point, mean_loss, [minimize("loss")], **kwargs)


def tradeoff_problem(**kwargs):
    return OptimizationProblem(
        TradeoffConfig(k=2.0), [TrivialScenario()], Effort, cost_and_reliability, TRADEOFF_OBJECTIVES, **kwargs
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def test_denormalize_maps_unit_cube_to_bounds():
    out = denormalize([0.0, 0.5, 1.0], [(0, 10), (-1, 1), (2, 4)])
    assert out.tolist() == [0.0, 0.0, 4.0]


def test_unnegate_restores_natural_scale():
    assert unnegate([1.0, -0.9], TRADEOFF_OBJECTIVES).tolist() == [1.0, 0.9]


def test_fitness_reuses_the_simulation_seed():
    problem = OptimizationProblem(NoisyWalk(4), noisy_scenarios(2), DriftPolicy, mean_total, [maximize("total")])
    fitness = make_fitness(problem, sim_seed=11)
    p1, v1 = fitness([0.3])
    p2, v2 = fitness([0.3])
    assert p1.tolist() == p2.tolist() == [0.3]
    assert v1.tolist() == v2.tolist()


# ------------------------------------------------------------------
# Constraints
# ------------------------------------------------------------------

def test_infeasible_policy_scores_infinity():
    c = FeasibilityConstraint("cheap", lambda p: p.x <= 2)
    assert np.all(np.isinf(apply_constraints([1.0, 2.0], Point(3.0), [c])))
    assert apply_constraints([1.0, 2.0], Point(1.0), [c]).tolist() == [1.0, 2.0]


def test_penalty_adds_weighted_violation():
    c = PenaltyConstraint("budget", lambda p: max(0.0, p.x - 2), weight=10.0)
    assert apply_constraints([1.0], Point(2.5), [c]).tolist() == [6.0]
    assert apply_constraints([1.0], Point(1.0), [c]).tolist() == [1.0]


def test_negative_penalty_weight_rejected():
    with pytest.raises(ValidationError):
        PenaltyConstraint("bad", lambda p: 0.0, weight=-1)


# ------------------------------------------------------------------
# Random search
# ------------------------------------------------------------------

def test_random_search_front_is_non_dominated():
    result = optimize(tradeoff_problem(), RandomSearchBackend(n_samples=40, seed=3))
    assert len(result) > 1
    front = [to_min_space(o, result.objectives) for o in result.pareto_objectives]
    for a in front:
        for b in front:
            assert not dominates(a, b)
    info = result.convergence_info
    assert info["f_calls"] == 40
    assert info["iterations"] == 1
    assert info["n_pareto"] == len(result)
    assert info["n_infeasible"] == 0


def test_random_search_stores_natural_scale_values():
    result = optimize(tradeoff_problem(), RandomSearchBackend(n_samples=10, seed=0))
    for params, (cost, reliability) in result.pareto_front():
        assert reliability == pytest.approx(params[0])
        assert cost == pytest.approx(2.0 * params[0] ** 2)
        assert reliability >= 0


def test_random_search_thread_count_does_not_change_result():
    a = optimize(tradeoff_problem(), RandomSearchBackend(n_samples=20, seed=5, n_jobs=1))
    b = optimize(tradeoff_problem(), RandomSearchBackend(n_samples=20, seed=5, n_jobs=2))
    assert [o.tolist() for o in a.pareto_objectives] == [o.tolist() for o in b.pareto_objectives]


def test_random_search_skips_infeasible_candidates():
    problem = bowl_problem(constraints=[FeasibilityConstraint("x_small", lambda p: p.x <= 2.0)])
    result = optimize(problem, RandomSearchBackend(n_samples=50, seed=1))
    assert result.convergence_info["n_infeasible"] > 0
    params, _ = result.best()
    assert params[0] <= 2.0


def test_random_search_rejects_empty_budget():
    with pytest.raises(ValidationError):
        RandomSearchBackend(n_samples=0)


# ------------------------------------------------------------------
# Differential evolution
# ------------------------------------------------------------------

def test_differential_evolution_finds_bowl_minimum():
    result = optimize(bowl_problem(), DifferentialEvolutionBackend(max_iterations=60, population_size=20, seed=2))
    assert len(result) == 1
    params, (loss,) = result.best()
    assert params[0] == pytest.approx(3.0, abs=0.1)
    assert loss < 1e-2
    info = result.convergence_info
    assert info["iterations"] >= 1
    assert info["f_calls"] > info["iterations"]
    assert isinstance(info["converged"], str)


def test_differential_evolution_is_single_objective():
    with pytest.raises(ValidationError, match="one objective"):
        optimize(tradeoff_problem(), DifferentialEvolutionBackend(max_iterations=2))


@pytest.mark.parametrize("kwargs", [{"max_iterations": 0}, {"population_size": 0}])
def test_differential_evolution_argument_checks(kwargs):
    with pytest.raises(ValidationError):
        DifferentialEvolutionBackend(**kwargs)


# ------------------------------------------------------------------
# Entry point and registry
# ------------------------------------------------------------------

def test_optimize_type_checks():
    with pytest.raises(TypeError):
        optimize("problem", RandomSearchBackend())
    with pytest.raises(TypeError):
        optimize(bowl_problem(), "backend")


def test_optimize_runs_validation_hooks():
    @dataclass(frozen=True)
    class Picky(Point):
        def validate(self, config):
            return False

    problem = OptimizationProblem(Bowl(), [TrivialScenario()], Picky, mean_loss, [minimize("loss")])
    with pytest.raises(ValidationError, match="Picky.validate"):
        optimize(problem, RandomSearchBackend(n_samples=2))


def test_registry_lookup():
    assert {"RandomSearchBackend", "DifferentialEvolutionBackend"} <= set(available_backends())
    backend = get_backend("RandomSearchBackend", n_samples=7)
    assert isinstance(backend, RandomSearchBackend)
    assert backend.n_samples == 7
    assert backend.name == "RandomSearchBackend"
    with pytest.raises(KeyError, match="Available"):
        get_backend("SimulatedAnnealing")


def test_registry_rejects_bad_registrations():
    with pytest.raises(TypeError):
        register_backend(object)
    with pytest.raises(TypeError):
        register_backend(RandomSearchBackend(n_samples=1))
    with pytest.raises(KeyError, match="already registered"):
        register_backend(RandomSearchBackend)


def test_backend_base_is_abstract():
    with pytest.raises(TypeError):
        OptimizationBackend()


def test_merge_policy_adds_baseline_to_front():
    problem = bowl_problem()
    result = optimize(problem, RandomSearchBackend(n_samples=10, seed=4))
    merge_policy(result, problem, Point(3.0))
    assert len(result) == 1
    params, (loss,) = result.best()
    assert params.tolist() == [3.0]
    assert loss == 0.0
