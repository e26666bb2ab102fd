"""Simulation core: time-stepped engine, recorders, random streams and metrics.

The sub-modules are intentionally kept lightweight so that the executors, the
policy evaluator and the optimisation backends can all share one simulation
primitive.
"""
from .crn import CRNConfig, scenario_rng, stream_for
from .engine import run_simulation, simulate, simulate_traced
from .metrics import (
    CustomMetric,
    ExpectedValue,
    MeanAndVariance,
    Probability,
    Quantile,
    Variance,
    compute_metrics,
    metric_names,
)
from .recorders import NoRecorder, SimulationTrace, TraceRecorderBuilder

__all__ = [
    "CRNConfig",
    "scenario_rng",
    "stream_for",
    "run_simulation",
    "simulate",
    "simulate_traced",
    "NoRecorder",
    "SimulationTrace",
    "TraceRecorderBuilder",
    "ExpectedValue",
    "Probability",
    "Variance",
    "MeanAndVariance",
    "Quantile",
    "CustomMetric",
    "compute_metrics",
    "metric_names",
]
