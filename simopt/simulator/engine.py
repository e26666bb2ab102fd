"""Execution engine that runs one policy on one scenario, step by step.

The five user callbacks are called in a fixed order::

    config.time_axis(scenario)
    state = config.initialize(scenario, rng)
    for each TimeStep:
        action = policy.get_action(state, time_step, scenario)
        state, record = config.run_timestep(state, action, time_step, scenario, rng)
    config.compute_outcome(step_records, scenario)

State is replaced by every ``run_timestep`` call, never mutated by the
engine, which is what lets different scenarios run concurrently.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from ..types import Config, Policy, Scenario, TimeStep
from ..validation import ValidationCache, validate_time_axis
from .recorders import NoRecorder, Recorder, SimulationTrace, TraceRecorderBuilder

__all__ = ["run_simulation", "simulate", "simulate_traced"]

logger = logging.getLogger(__name__)

_NO_RECORDER = NoRecorder()


def _check_transition(result, time_step: TimeStep):
    if not (isinstance(result, tuple) and len(result) == 2):
        raise TypeError(
            f"run_timestep must return a (new_state, step_record) tuple, got {type(result).__name__} "
            f"at step {time_step.t}"
        )
    if result[0] is None:
        raise TypeError(f"run_timestep returned a None state at step {time_step.t}")
    return result


# ------------------------------------------------------------------
# Engine entry-points
# ------------------------------------------------------------------

def run_simulation(
    config: Config,
    scenario: Scenario,
    policy: Policy,
    recorder: Optional[Recorder] = None,
    rng: Optional[np.random.Generator] = None,
):
    """Run the time-stepped state machine and return the outcome.

    Parameters
    ----------
    config
        Scenario-independent parameters carrying the transition callbacks.
    scenario
        The state of the world being simulated.
    policy
        Decision rule supplying ``get_action``.
    recorder
        Observer for every step; ``None`` keeps no trace.
    rng
        Random source passed to ``initialize`` and ``run_timestep``. ``None``
        draws a fresh, non-reproducible generator.
    """
    recorder = _NO_RECORDER if recorder is None else recorder
    rng = np.random.default_rng() if rng is None else rng

    times = validate_time_axis(config.time_axis(scenario))
    n = len(times)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("simulating %s on %s over %d steps", type(policy).__name__, type(scenario).__name__, n)

    state = config.initialize(scenario, rng)
    if state is None:
        raise TypeError(f"{type(config).__name__}.initialize returned None; it must return a State")
    recorder.record(state, None, None, None)

    step_records = [None] * n
    for i, val in enumerate(times):
        ts = TimeStep(i + 1, val)
        action = policy.get_action(state, ts, scenario)
        state, step_record = _check_transition(
            config.run_timestep(state, action, ts, scenario, rng), ts
        )
        step_records[i] = step_record
        recorder.record(state, step_record, val, action)

    return config.compute_outcome(step_records, scenario)


def simulate(
    config: Config,
    scenario: Scenario,
    policy: Policy,
    recorder: Optional[Recorder] = None,
    rng: Optional[np.random.Generator] = None,
    validation: Optional[ValidationCache] = None,
):
    """:func:`run_simulation` plus optional strict field validation."""
    if validation is not None:
        validation.check_simulation(scenario, policy)
    outcome = run_simulation(config, scenario, policy, recorder, rng)
    if validation is not None:
        validation.check_outcome(outcome)
    return outcome


def simulate_traced(
    config: Config,
    scenario: Scenario,
    policy: Policy,
    rng: Optional[np.random.Generator] = None,
    validation: Optional[ValidationCache] = None,
) -> Tuple[object, SimulationTrace]:
    """Run a simulation and return ``(outcome, trace)``."""
    builder = TraceRecorderBuilder()
    outcome = simulate(config, scenario, policy, builder, rng, validation)
    return outcome, builder.build()
