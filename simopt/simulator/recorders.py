"""Recorders observe a simulation run without influencing it."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List

import pandas as pd

__all__ = ["Recorder", "NoRecorder", "TraceRecorderBuilder", "SimulationTrace"]

TRACE_COLUMNS = ("time", "state", "step_record", "action")


class Recorder:
    """Receives ``(state, step_record, time_value, action)`` once per step.

    The initial state is reported first as ``(state, None, None, None)``.
    """

    def record(self, state, step_record, time_value, action) -> None:
        raise NotImplementedError


class NoRecorder(Recorder):
    """Discards everything; the default on optimisation paths."""

    def record(self, state, step_record, time_value, action) -> None:
        return None


class TraceRecorderBuilder(Recorder):
    """Collects every observation; call :meth:`build` after the run."""

    def __init__(self) -> None:
        self.states: List[Any] = []
        self.step_records: List[Any] = []
        self.times: List[Any] = []
        self.actions: List[Any] = []

    def record(self, state, step_record, time_value, action) -> None:
        self.states.append(state)
        self.step_records.append(step_record)
        self.times.append(time_value)
        self.actions.append(action)

    def build(self) -> "SimulationTrace":
        if len(self.states) < 2:
            raise ValueError("Cannot build trace: need at least initial state + one timestep")
        return SimulationTrace(
            initial_state=self.states[0],
            states=self.states[1:],
            step_records=self.step_records[1:],
            times=self.times[1:],
            actions=self.actions[1:],
        )


@dataclass
class SimulationTrace:
    """Step-by-step record of one run, excluding the initial row."""

    initial_state: Any
    states: List[Any] = field(default_factory=list)
    step_records: List[Any] = field(default_factory=list)
    times: List[Any] = field(default_factory=list)
    actions: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.states)

    def __iter__(self) -> Iterator[dict]:
        for row in zip(self.times, self.states, self.step_records, self.actions):
            yield dict(zip(TRACE_COLUMNS, row))

    def column(self, name: str) -> List[Any]:
        try:
            return {
                "time": self.times,
                "state": self.states,
                "step_record": self.step_records,
                "action": self.actions,
            }[name]
        except KeyError:
            raise KeyError(f"SimulationTrace has no column '{name}'. Available: {list(TRACE_COLUMNS)}") from None

    def to_dataframe(self) -> pd.DataFrame:
        """One row per step with columns ``time, state, step_record, action``."""
        return pd.DataFrame({name: self.column(name) for name in TRACE_COLUMNS}, columns=list(TRACE_COLUMNS))
