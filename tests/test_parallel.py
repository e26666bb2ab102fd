"""Tests for grid execution strategies."""
import logging

import pytest

from simopt.errors import ParameterTypeError, UnsupportedStrategyError, ValidationError
from simopt.parallel import (
    DistributedExecutor,
    Executor,
    SequentialExecutor,
    ThreadedExecutor,
    available_executors,
    get_executor,
    register_executor,
    run_grid,
    run_traced_grid,
)
from simopt.validation import ValidationCache

from toy_models import (
    FailingHorizon,
    Horizon,
    Increment,
    NoisyWalk,
    TrivialScenario,
    drift_policies,
    noisy_scenarios,
)

EXECUTORS = [
    SequentialExecutor(),
    ThreadedExecutor(n_tasks=3),
    DistributedExecutor(n_workers=2),
]


def collect(executor, config, scenarios, policies, **kwargs):
    seen = {}

    def callback(p, s, outcome):
        assert (p, s) not in seen
        seen[(p, s)] = outcome

    run_grid(executor, config, scenarios, policies, callback, **kwargs)
    return seen


@pytest.mark.parametrize("executor", EXECUTORS, ids=lambda e: type(e).__name__)
def test_every_cell_delivered_exactly_once(executor):
    scenarios = [TrivialScenario(i) for i in range(3)]
    policies = [Increment(1.0), Increment(2.0)]
    seen = collect(executor, Horizon(4), scenarios, policies)
    assert set(seen) == {(p, s) for p in (1, 2) for s in (1, 2, 3)}
    assert seen[(2, 3)]["final_value"] == 8.0


def test_sequential_delivers_row_major():
    order = []
    run_grid(
        SequentialExecutor(),
        Horizon(2),
        [TrivialScenario(i) for i in range(3)],
        [Increment(1.0), Increment(2.0)],
        lambda p, s, o: order.append((p, s)),
    )
    assert order == [(1, 1), (1, 2), (1, 3), (2, 1), (2, 2), (2, 3)]


@pytest.mark.parametrize("executor", EXECUTORS[1:], ids=lambda e: type(e).__name__)
def test_parallel_strategies_match_sequential(executor):
    scenarios, policies = noisy_scenarios(4), drift_policies()
    expected = collect(SequentialExecutor(), NoisyWalk(5), scenarios, policies)
    got = collect(executor, NoisyWalk(5), scenarios, policies)
    assert {k: v.total.value for k, v in got.items()} == {k: v.total.value for k, v in expected.items()}


def test_crn_ties_noise_to_scenario_not_policy():
    seen = collect(SequentialExecutor(seed=3), NoisyWalk(5), noisy_scenarios(2), drift_policies((0.0, 1.0)))
    for s in (1, 2):
        assert seen[(2, s)].total.value - seen[(1, s)].total.value == pytest.approx(5.0)


def test_threaded_callback_is_serialised():
    counter = {"n": 0}

    def callback(p, s, outcome):
        current = counter["n"]
        counter["n"] = current + 1

    scenarios = [TrivialScenario(i) for i in range(20)]
    run_grid(ThreadedExecutor(n_tasks=8), Horizon(3), scenarios, [Increment(1.0)] * 5, callback)
    assert counter["n"] == 100


@pytest.mark.parametrize("executor", [SequentialExecutor(), ThreadedExecutor(n_tasks=2)], ids=["seq", "threaded"])
def test_first_failure_propagates(executor):
    scenarios = [TrivialScenario(i) for i in range(1, 6)]
    with pytest.raises(RuntimeError, match="boom on scenario 3"):
        collect(executor, FailingHorizon(horizon=2, fail_on=3), scenarios, [Increment(1.0)])


def test_distributed_failure_propagates():
    scenarios = [TrivialScenario(i) for i in range(1, 4)]
    with pytest.raises(RuntimeError, match="boom"):
        collect(DistributedExecutor(n_workers=2), FailingHorizon(horizon=2, fail_on=3), scenarios, [Increment(1.0)])


def test_distributed_strict_validation_runs_up_front():
    cache = ValidationCache(strict=True)
    with pytest.raises(ParameterTypeError):
        collect(DistributedExecutor(n_workers=1), Horizon(2), [TrivialScenario()], [Increment(1.0)], validation=cache)


def test_traced_grid_delivers_traces():
    traces = {}

    def callback(p, s, outcome, trace):
        traces[(p, s)] = (outcome, trace)

    run_traced_grid(ThreadedExecutor(n_tasks=2), Horizon(3), [TrivialScenario(0)], [Increment(2.0)], callback)
    outcome, trace = traces[(1, 1)]
    assert outcome["final_value"] == 6.0
    assert trace.times == [1, 2, 3]


def test_traced_grid_unsupported_when_distributed():
    with pytest.raises(UnsupportedStrategyError):
        run_traced_grid(
            DistributedExecutor(n_workers=1),
            Horizon(2),
            [TrivialScenario()],
            [Increment(1.0)],
            lambda p, s, o, t: None,
        )


def test_progress_bar_does_not_change_results():
    seen = collect(SequentialExecutor(), Horizon(2), [TrivialScenario()], [Increment(1.0)], progress=True)
    assert seen[(1, 1)]["final_value"] == 2.0


def test_disabled_crn_warns_for_parallel_strategies(caplog):
    with caplog.at_level(logging.WARNING, logger="simopt.parallel"):
        collect(ThreadedExecutor(n_tasks=2, crn=False), Horizon(2), [TrivialScenario()], [Increment(1.0)])
    assert "CRN disabled" in caplog.text


def test_grid_inputs_are_validated():
    with pytest.raises(ValidationError, match="Executor"):
        run_grid("sequential", Horizon(2), [TrivialScenario()], [Increment(1.0)], lambda *a: None)
    with pytest.raises(ValidationError):
        run_grid(SequentialExecutor(), Horizon(2), [], [Increment(1.0)], lambda *a: None)
    with pytest.raises(ValidationError):
        run_grid(SequentialExecutor(), Horizon(2), [TrivialScenario()], [], lambda *a: None)


@pytest.mark.parametrize("factory", [lambda: ThreadedExecutor(n_tasks=0), lambda: DistributedExecutor(n_workers=0)])
def test_pool_sizes_must_be_positive(factory):
    with pytest.raises(ValidationError):
        factory()


def test_executor_registry():
    assert available_executors() == ["sequential", "threaded", "distributed"]
    ex = get_executor("Threaded", n_tasks=2, seed=9)
    assert isinstance(ex, ThreadedExecutor)
    assert ex.n_tasks == 2
    assert ex.crn.seed == 9
    with pytest.raises(KeyError, match="Available"):
        get_executor("gpu")
    with pytest.raises(TypeError):
        register_executor(object)
    with pytest.raises(KeyError, match="already registered"):
        register_executor(SequentialExecutor)


def test_base_executor_has_no_grid():
    with pytest.raises(NotImplementedError):
        Executor().run_grid(Horizon(2), [TrivialScenario()], [Increment(1.0)], lambda *a: None)
