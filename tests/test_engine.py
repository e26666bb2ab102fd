"""Tests for the time-stepped simulation engine."""
from dataclasses import dataclass

import numpy as np
import pytest

from simopt.errors import InterfaceNotImplemented, ParameterTypeError, TimeAxisTypeError
from simopt.simulator.engine import run_simulation, simulate, simulate_traced
from simopt.simulator.recorders import Recorder
from simopt.types import Config, Policy
from simopt.validation import ValidationCache

from toy_models import (
    Counter,
    DriftPolicy,
    Horizon,
    Increment,
    NoisyWalk,
    TrivialScenario,
    noisy_scenarios,
    drift_policies,
)


class ListRecorder(Recorder):
    def __init__(self):
        self.calls = []

    def record(self, state, step_record, time_value, action):
        self.calls.append((state, step_record, time_value, action))


@dataclass(frozen=True)
class StepLog(Horizon):
    """Records the TimeStep seen at every transition."""

    def run_timestep(self, state, action, time_step, scenario, rng):
        return Counter(state.value + action), (time_step.t, time_step.val)

    def compute_outcome(self, step_records, scenario):
        return list(step_records)


@dataclass(frozen=True)
class AxisConfig(Horizon):
    axis: tuple = ()

    def time_axis(self, scenario):
        return self.axis


def test_counter_final_value():
    outcome = simulate(Horizon(10), TrivialScenario(), Increment(5.0))
    assert outcome["final_value"] == 50.0


def test_time_steps_are_one_based_and_increasing():
    outcome = simulate(StepLog(4), TrivialScenario(), Increment(1.0))
    assert [t for t, _ in outcome] == [1, 2, 3, 4]
    assert [v for _, v in outcome] == [1, 2, 3, 4]


def test_recorder_sees_initial_state_then_every_step():
    rec = ListRecorder()
    run_simulation(Horizon(3), TrivialScenario(), Increment(2.0), recorder=rec)
    assert len(rec.calls) == 4
    assert rec.calls[0] == (Counter(0.0), None, None, None)
    assert [c[2] for c in rec.calls[1:]] == [1, 2, 3]
    assert [c[3] for c in rec.calls[1:]] == [2.0, 2.0, 2.0]
    assert rec.calls[-1][0] == Counter(6.0)


def test_states_are_replaced_not_mutated():
    rec = ListRecorder()
    run_simulation(Horizon(3), TrivialScenario(), Increment(1.0), recorder=rec)
    states = [c[0] for c in rec.calls]
    assert len({id(s) for s in states}) == len(states)
    assert [s.value for s in states] == [0.0, 1.0, 2.0, 3.0]


def test_same_rng_seed_reproduces_outcome():
    cfg, scenario, policy = NoisyWalk(6), noisy_scenarios(1)[0], drift_policies()[1]
    a = simulate(cfg, scenario, policy, rng=np.random.default_rng(7))
    b = simulate(cfg, scenario, policy, rng=np.random.default_rng(7))
    assert a == b


@pytest.mark.parametrize(
    "axis",
    [
        iter([1, 2, 3]),
        (x for x in range(3)),
        "abc",
        [],
        [1, 2.0, 3],
        [1, True],
    ],
)
def test_bad_time_axis_rejected(axis):
    with pytest.raises(TimeAxisTypeError):
        simulate(AxisConfig(axis=axis), TrivialScenario(), Increment(1.0))


def test_numpy_time_axis_accepted():
    outcome = simulate(AxisConfig(axis=np.arange(5)), TrivialScenario(), Increment(1.0))
    assert outcome["final_value"] == 5.0


def test_missing_callback_names_method_and_type():
    class Bare(Config):
        pass

    with pytest.raises(InterfaceNotImplemented) as info:
        simulate(Bare(), TrivialScenario(), Increment(1.0))
    msg = str(info.value)
    assert "time_axis" in msg
    assert "Bare" in msg
    assert "def time_axis(self, scenario)" in msg


def test_missing_get_action_is_reported():
    class Lazy(Policy):
        pass

    with pytest.raises(InterfaceNotImplemented, match="get_action"):
        simulate(Horizon(2), TrivialScenario(), Lazy())


def test_interface_error_is_not_implemented_error():
    class Bare(Config):
        pass

    with pytest.raises(NotImplementedError):
        Bare().initialize(None, None)


def test_initialize_returning_none_raises():
    @dataclass(frozen=True)
    class NoInit(Horizon):
        def initialize(self, scenario, rng):
            return None

    with pytest.raises(TypeError, match="initialize"):
        simulate(NoInit(2), TrivialScenario(), Increment(1.0))


def test_run_timestep_must_return_pair():
    @dataclass(frozen=True)
    class BadStep(Horizon):
        def run_timestep(self, state, action, time_step, scenario, rng):
            return Counter(1.0)

    with pytest.raises(TypeError, match="run_timestep"):
        simulate(BadStep(2), TrivialScenario(), Increment(1.0))


def test_strict_validation_rejects_plain_fields():
    cache = ValidationCache(strict=True)
    with pytest.raises(ParameterTypeError, match="increment"):
        simulate(Horizon(2), noisy_scenarios(1)[0], Increment(1.0), validation=cache)
    assert type(noisy_scenarios(1)[0]) in cache


def test_strict_validation_caches_checked_classes():
    cache = ValidationCache(strict=True)
    scenario, policy = noisy_scenarios(1)[0], drift_policies()[0]
    simulate(NoisyWalk(3), scenario, policy, rng=np.random.default_rng(0), validation=cache)
    assert type(scenario) in cache
    assert DriftPolicy in cache
    assert len(cache) == 3
    cache.clear()
    assert len(cache) == 0


def test_non_strict_cache_skips_checks():
    cache = ValidationCache(strict=False)
    simulate(Horizon(2), TrivialScenario(), Increment(1.0), validation=cache)
    assert len(cache) == 0


def test_simulate_traced_returns_outcome_and_trace():
    outcome, trace = simulate_traced(Horizon(4), TrivialScenario(), Increment(2.0))
    assert outcome["final_value"] == 8.0
    assert len(trace) == 4
    assert trace.initial_state == Counter(0.0)
    assert trace.times == [1, 2, 3, 4]
    assert trace.step_records[-1] == {"value": 8.0}
