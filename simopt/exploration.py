"""Exploratory modeling: run every policy on every scenario and tabulate.

Scenario, Policy and Outcome objects used here expose their fields as typed
parameters (see :mod:`simopt.parameters`), which lets each grid cell be
flattened into one table row::

    policy | scenario | policy_<field> ... | scenario_<field> ... | <outcome> ...

Time-series fields expand into one column per time value, ``name[t]``.
``GenericParameter`` fields are carried by the objects but never tabulated.

Usage Example:
--------------

from simopt.exploration import explore, StreamingSink, CSVSink
result = explore(config, scenarios, policies)
result.outcomes_for_policy(1)

# stream to disk instead of keeping rows in memory
path = explore(config, scenarios, policies, sink=StreamingSink(CSVSink("out.csv")))
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import ExploratoryInterfaceError, UnsupportedStrategyError, ValidationError
from .parallel import DistributedExecutor, Executor, SequentialExecutor, run_grid, run_traced_grid
from .parameters import GenericParameter, Parameter, TimeSeriesParameter
from .simulator.crn import scenario_rng
from .simulator.engine import simulate
from .types import Config, Policy
from .validation import ValidationCache, iter_fields

__all__ = [
    "ExplorationResult",
    "ResultSink",
    "NoSink",
    "InMemorySink",
    "FileSink",
    "CSVSink",
    "StreamingSink",
    "flatten",
    "explore",
    "explore_traced",
]

logger = logging.getLogger(__name__)

_ALLOWED = (
    "ContinuousParameter, DiscreteParameter, CategoricalParameter, "
    "TimeSeriesParameter, or GenericParameter"
)


# ------------------------------------------------------------------
# Flattening
# ------------------------------------------------------------------

def _field_errors(obj, label: str) -> List[str]:
    return [
        f"  - {label}.{name} :: {type(val).__name__}"
        for name, val in iter_fields(obj)
        if not isinstance(val, (Parameter, TimeSeriesParameter))
    ]


def flatten(obj, prefix: str = "") -> Dict[str, Any]:
    """Flatten the parameter fields of ``obj`` into ``{column: value}``.

    ``prefix`` is prepended as ``<prefix>_<field>`` when non-empty.
    """
    row: Dict[str, Any] = {}
    for name, field in iter_fields(obj):
        col = f"{prefix}_{name}" if prefix else name
        if isinstance(field, GenericParameter):
            continue
        if isinstance(field, TimeSeriesParameter):
            for t, v in zip(field.time_axis, field.values.tolist()):
                row[f"{col}[{t}]"] = v
        elif isinstance(field, Parameter):
            row[col] = field.value
        else:
            raise ExploratoryInterfaceError(
                f"Field `{name}::{type(field).__name__}` in `{type(obj).__name__}` is not a parameter type."
            )
    return row


def _validate_exploratory_interface(scenario, policies: Sequence[Policy], outcome) -> None:
    errors = _field_errors(scenario, "Scenario")
    seen = set()
    for policy in policies:
        if type(policy) in seen:
            continue
        seen.add(type(policy))
        errors.extend(_field_errors(policy, "Policy"))
    errors.extend(_field_errors(outcome, "Outcome"))
    if errors:
        raise ExploratoryInterfaceError(
            "Cannot use `explore()` with current types:\n\n"
            + "\n".join(errors)
            + f"\n\nAll fields must be: {_ALLOWED}.\n\n"
            "Note: `simulate()` and `evaluate_policy()` still work without this."
        )


# ------------------------------------------------------------------
# Result container
# ------------------------------------------------------------------

class ExplorationResult:
    """Tabular exploration results, one row per (policy, scenario) cell."""

    def __init__(self, data: pd.DataFrame, n_policies: int, n_scenarios: int, outcome_columns: Sequence[str]):
        self.data = data.sort_values(["policy", "scenario"]).reset_index(drop=True)
        self.n_policies = n_policies
        self.n_scenarios = n_scenarios
        self.outcome_columns = list(outcome_columns)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n_policies, self.n_scenarios

    @property
    def columns(self) -> List[str]:
        return list(self.data.columns)

    def __len__(self) -> int:
        return len(self.data)

    def __getitem__(self, column: str) -> pd.Series:
        return self.data[column]

    def __repr__(self) -> str:
        return (
            f"ExplorationResult({self.n_policies} policies x {self.n_scenarios} scenarios, "
            f"outcomes={self.outcome_columns})"
        )

    def outcomes_for_policy(self, p: int) -> pd.DataFrame:
        """Rows of policy ``p`` (1-based), one per scenario."""
        return self.data[self.data["policy"] == p].reset_index(drop=True)

    def outcomes_for_scenario(self, s: int) -> pd.DataFrame:
        """Rows of scenario ``s`` (1-based), one per policy."""
        return self.data[self.data["scenario"] == s].reset_index(drop=True)

    def to_matrix(self, column: str) -> np.ndarray:
        """``column`` as an ``(n_policies, n_scenarios)`` array."""
        return self.data[column].to_numpy().reshape(self.n_policies, self.n_scenarios)

    def to_csv(self, path: str) -> str:
        self.data.to_csv(path, index=False)
        return path


# ------------------------------------------------------------------
# Sinks
# ------------------------------------------------------------------

class ResultSink:
    """Receives flattened rows; ``finalize`` returns whatever ``explore`` returns."""

    def record(self, row: Dict[str, Any]) -> None:
        raise NotImplementedError

    def finalize(self, n_policies: int, n_scenarios: int, outcome_columns: Sequence[str]):
        raise NotImplementedError

    def close(self) -> None:
        """Release resources after a failed grid; rows already recorded are kept."""
        return None


class NoSink(ResultSink):
    """Discard every row."""

    def record(self, row):
        return None

    def finalize(self, n_policies, n_scenarios, outcome_columns):
        return None


class InMemorySink(ResultSink):
    """Keep every row and build an :class:`ExplorationResult` at the end."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []

    def record(self, row):
        self.rows.append(row)

    def finalize(self, n_policies, n_scenarios, outcome_columns):
        columns = list(self.rows[0]) if self.rows else ["policy", "scenario"]
        return ExplorationResult(pd.DataFrame(self.rows, columns=columns), n_policies, n_scenarios, outcome_columns)


class FileSink:
    """Row-oriented file writer used by :class:`StreamingSink`."""

    path: str

    def write_header(self, columns: Sequence[str]) -> None:
        raise NotImplementedError

    def write_rows(self, rows: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class CSVSink(FileSink):
    """Write rows to a CSV file with pandas."""

    def __init__(self, path: str):
        self.path = os.fspath(path)
        self._columns: List[str] = []
        self._fh = open(self.path, "w", newline="")

    def write_header(self, columns):
        self._columns = list(columns)
        pd.DataFrame(columns=self._columns).to_csv(self._fh, index=False)
        self._fh.flush()

    def write_rows(self, rows):
        pd.DataFrame(rows, columns=self._columns).to_csv(self._fh, header=False, index=False)
        self._fh.flush()

    def close(self):
        if not self._fh.closed:
            self._fh.close()


class StreamingSink(ResultSink):
    """Buffer rows and hand them to ``file_sink`` every ``flush_every`` rows."""

    def __init__(self, file_sink: FileSink, flush_every: int = 100):
        if flush_every < 1:
            raise ValidationError(f"flush_every must be >= 1, got {flush_every}")
        self.file_sink = file_sink
        self.flush_every = int(flush_every)
        self.buffer: List[Dict[str, Any]] = []
        self.header_written = False

    def record(self, row):
        if not self.header_written:
            self.file_sink.write_header(list(row))
            self.header_written = True
        self.buffer.append(row)
        if len(self.buffer) >= self.flush_every:
            self.flush()

    def flush(self) -> None:
        if self.buffer:
            self.file_sink.write_rows(self.buffer)
            self.buffer = []

    def finalize(self, n_policies, n_scenarios, outcome_columns):
        self.flush()
        self.file_sink.close()
        return self.file_sink.path

    def close(self) -> None:
        self.flush()
        self.file_sink.close()


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------

def _column_mismatch(expected: Sequence[str], actual: Sequence[str]) -> str:
    missing = [c for c in expected if c not in actual]
    extra = [c for c in actual if c not in expected]
    return f"missing {missing}, unexpected {extra}"


def _check_columns(kind: str, index: int, expected: List[str], actual: Dict[str, Any]) -> None:
    if list(actual) != expected:
        raise ExploratoryInterfaceError(
            f"{kind} {index} flattens to different columns than {kind.lower()} 1: "
            + _column_mismatch(expected, list(actual))
        )


def _prepare(config, scenarios, policies, executor):
    if isinstance(policies, Policy):
        policies = [policies]
    if scenarios is None or len(scenarios) == 0:
        raise ValidationError("scenarios cannot be empty")
    if policies is None or len(policies) == 0:
        raise ValidationError("policies cannot be empty")
    executor = SequentialExecutor() if executor is None else executor
    if not isinstance(executor, Executor):
        raise ValidationError(f"executor must be an Executor, got {type(executor).__name__}")

    first = simulate(config, scenarios[0], policies[0], rng=scenario_rng(executor.crn, 1))
    _validate_exploratory_interface(scenarios[0], policies, first)
    outcome_columns = list(flatten(first))
    policy_cols = [flatten(p, "policy") for p in policies]
    scenario_cols = [flatten(s, "scenario") for s in scenarios]
    # every row must share one schema; the result table and CSV header use it
    for i, cols in enumerate(policy_cols[1:], start=2):
        _check_columns("Policy", i, list(policy_cols[0]), cols)
    for i, cols in enumerate(scenario_cols[1:], start=2):
        _check_columns("Scenario", i, list(scenario_cols[0]), cols)

    def make_row(p: int, s: int, outcome) -> Dict[str, Any]:
        values = flatten(outcome)
        if list(values) != outcome_columns:
            raise ExploratoryInterfaceError(
                f"Outcome of policy {p} on scenario {s} flattens to different columns "
                f"than policy 1 on scenario 1: {_column_mismatch(outcome_columns, list(values))}. "
                "Time series outcomes need the same time axis in every scenario."
            )
        row: Dict[str, Any] = {"policy": p, "scenario": s}
        row.update(policy_cols[p - 1])
        row.update(scenario_cols[s - 1])
        row.update(values)
        return row

    return list(policies), executor, outcome_columns, make_row


def explore(
    config: Config,
    scenarios: Sequence,
    policies,
    executor: Optional[Executor] = None,
    sink: Optional[ResultSink] = None,
    progress: bool = False,
    validation: Optional[ValidationCache] = None,
):
    """Simulate every (policy, scenario) pair and collect the rows in ``sink``.

    Parameters
    ----------
    config
        Shared configuration with the simulation callbacks.
    scenarios
        Non-empty sequence of scenarios with parameter fields.
    policies
        A policy or a non-empty sequence of policies with parameter fields.
    executor
        Execution strategy; defaults to :class:`SequentialExecutor`.
    sink
        Destination of the rows; defaults to :class:`InMemorySink`.

    Returns
    -------
    Whatever ``sink.finalize`` returns: an :class:`ExplorationResult` for the
    in-memory sink, the file path for a :class:`StreamingSink`, ``None`` for
    :class:`NoSink`.
    """
    policies, executor, outcome_columns, make_row = _prepare(config, scenarios, policies, executor)
    sink = InMemorySink() if sink is None else sink

    def callback(p, s, outcome):
        sink.record(make_row(p, s, outcome))

    try:
        run_grid(executor, config, scenarios, policies, callback, progress=progress, validation=validation)
    except BaseException:
        sink.close()
        raise
    logger.info("explored %d policies x %d scenarios", len(policies), len(scenarios))
    return sink.finalize(len(policies), len(scenarios), outcome_columns)


def explore_traced(
    config: Config,
    scenarios: Sequence,
    policies,
    executor: Optional[Executor] = None,
    progress: bool = False,
    validation: Optional[ValidationCache] = None,
):
    """Like :func:`explore` but also keep the trace of every cell.

    Returns ``(ExplorationResult, traces)`` where ``traces[p - 1][s - 1]`` is
    the :class:`~simopt.simulator.recorders.SimulationTrace` of policy ``p`` on
    scenario ``s``. Not available with :class:`DistributedExecutor`.
    """
    if isinstance(executor, DistributedExecutor):
        raise UnsupportedStrategyError(
            "explore_traced is not supported with DistributedExecutor. "
            "Use SequentialExecutor or ThreadedExecutor."
        )
    policies, executor, outcome_columns, make_row = _prepare(config, scenarios, policies, executor)
    sink = InMemorySink()
    traces: List[List[Any]] = [[None] * len(scenarios) for _ in policies]

    def callback(p, s, outcome, trace):
        sink.record(make_row(p, s, outcome))
        traces[p - 1][s - 1] = trace

    try:
        run_traced_grid(executor, config, scenarios, policies, callback, progress=progress, validation=validation)
    except BaseException:
        sink.close()
        raise
    return sink.finalize(len(policies), len(scenarios), outcome_columns), traces
