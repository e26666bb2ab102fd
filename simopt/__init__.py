"""Simulation-optimisation of decision policies under uncertainty."""
from __future__ import annotations

from importlib import metadata as _metadata

try:
    __version__: str = _metadata.version("simopt")
except _metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .errors import (
    DownstreamMetricError,
    ExploratoryInterfaceError,
    InterfaceNotImplemented,
    ParameterTypeError,
    SimOptError,
    TimeAxisTypeError,
    TimeSeriesParameterBoundsError,
    UnsupportedStrategyError,
    ValidationError,
)
from .exploration import CSVSink, ExplorationResult, InMemorySink, NoSink, StreamingSink, explore, explore_traced
from .optimization import (
    FeasibilityConstraint,
    OptimizationBackend,
    OptimizationProblem,
    OptimizationResult,
    PenaltyConstraint,
    get_backend,
    optimize,
    register_backend,
)
from .optimization.pareto import dominates, hypervolume_2d, merge_candidate, merge_policy, pareto_filter
from .optimization.problem import evaluate, evaluate_policy, extract_objectives
from .parallel import DistributedExecutor, SequentialExecutor, ThreadedExecutor, run_grid, run_traced_grid
from .parameters import (
    CategoricalParameter,
    ContinuousParameter,
    DiscreteParameter,
    GenericParameter,
    TimeSeriesParameter,
)
from .simulator import CRNConfig, simulate, simulate_traced, stream_for
from .types import (
    Action,
    Config,
    FixedBatch,
    FractionBatch,
    FullBatch,
    Objective,
    Policy,
    Scenario,
    SharedParameters,
    State,
    TimeStep,
    maximize,
    minimize,
)
from .utils import discount_factor, is_first, is_last, timeindex
from .validation import ValidationCache

from . import config, persistence

__all__ = [
    "types",
    "parameters",
    "simulator",
    "parallel",
    "exploration",
    "optimization",
    "persistence",
    "config",
    "utils",
    "Config",
    "Scenario",
    "Policy",
    "State",
    "Action",
    "TimeStep",
    "Objective",
    "minimize",
    "maximize",
    "FullBatch",
    "FixedBatch",
    "FractionBatch",
    "SharedParameters",
    "ContinuousParameter",
    "DiscreteParameter",
    "CategoricalParameter",
    "GenericParameter",
    "TimeSeriesParameter",
    "CRNConfig",
    "stream_for",
    "timeindex",
    "is_first",
    "is_last",
    "discount_factor",
    "simulate",
    "simulate_traced",
    "SequentialExecutor",
    "ThreadedExecutor",
    "DistributedExecutor",
    "run_grid",
    "run_traced_grid",
    "explore",
    "explore_traced",
    "ExplorationResult",
    "NoSink",
    "InMemorySink",
    "StreamingSink",
    "CSVSink",
    "OptimizationProblem",
    "OptimizationResult",
    "OptimizationBackend",
    "register_backend",
    "get_backend",
    "optimize",
    "FeasibilityConstraint",
    "PenaltyConstraint",
    "evaluate",
    "evaluate_policy",
    "extract_objectives",
    "dominates",
    "merge_candidate",
    "merge_policy",
    "pareto_filter",
    "hypervolume_2d",
    "ValidationCache",
    "SimOptError",
    "InterfaceNotImplemented",
    "ValidationError",
    "TimeAxisTypeError",
    "UnsupportedStrategyError",
    "DownstreamMetricError",
    "ExploratoryInterfaceError",
    "ParameterTypeError",
    "TimeSeriesParameterBoundsError",
]
