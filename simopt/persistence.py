"""Saving and loading checkpoints and finished experiments.

Objects are stored with :mod:`pickle`, so everything reachable from them
(metric functions, policy classes, scenarios) must be defined at module
level. Only load files you trust.
"""
from __future__ import annotations

import datetime as _dt
import logging
import os
import pickle
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .optimization.pareto import OptimizationResult
from .optimization.problem import OptimizationProblem
from .types import SharedParameters
from .validation import validate_scenarios

__all__ = [
    "FORMAT_VERSION",
    "ExperimentRecord",
    "save_checkpoint",
    "load_checkpoint",
    "save_experiment",
    "load_experiment",
]

logger = logging.getLogger(__name__)

FORMAT_VERSION = "0.1.0"


@dataclass
class ExperimentRecord:
    """Everything needed to reproduce one optimisation experiment.

    Attributes
    ----------
    seed
        Random seed of the experiment.
    scenarios
        The scenarios used; validated on construction.
    shared
        Scenario-independent constants.
    backend
        The configured search backend.
    timestamp
        Creation time; defaults to now.
    git_commit, package_versions
        Free-form provenance supplied by the caller.
    scenario_source
        How the scenarios were generated.
    """

    seed: int
    scenarios: List[Any]
    shared: SharedParameters
    backend: Any
    timestamp: _dt.datetime = field(default_factory=_dt.datetime.now)
    git_commit: str = ""
    package_versions: str = ""
    scenario_source: str = "unspecified"

    def __post_init__(self):
        validate_scenarios(self.scenarios)
        self.scenarios = list(self.scenarios)

    def __str__(self) -> str:
        return (
            f"ExperimentRecord(seed={self.seed}, n_scenarios={len(self.scenarios)}, "
            f"backend={type(self.backend).__name__})"
        )


def _dump(path: os.PathLike | str, payload: Dict[str, Any]) -> None:
    path = Path(path)
    payload = dict(payload, timestamp=_dt.datetime.now(), version=FORMAT_VERSION)
    with open(path, "wb") as fh:
        pickle.dump(payload, fh, protocol=pickle.HIGHEST_PROTOCOL)
    logger.info("saved %s", path)


def _load(path: os.PathLike | str, required: List[str]) -> Dict[str, Any]:
    with open(path, "rb") as fh:
        data = pickle.load(fh)
    missing = [k for k in required if k not in data]
    if missing:
        raise KeyError(f"{path} is missing entries {missing}")
    if data["version"] != FORMAT_VERSION:
        logger.warning("%s was written by format %s, reading with %s", path, data["version"], FORMAT_VERSION)
    return data


def save_checkpoint(
    path: os.PathLike | str,
    problem: OptimizationProblem,
    optimizer_state: Any,
    metadata: str = "",
) -> None:
    """Save an in-progress optimisation for recovery or later analysis."""
    _dump(path, {"problem": problem, "optimizer_state": optimizer_state, "metadata": metadata})


def load_checkpoint(path: os.PathLike | str) -> Dict[str, Any]:
    """Return a dict with ``problem, optimizer_state, metadata, timestamp, version``."""
    return _load(path, ["problem", "optimizer_state", "metadata", "timestamp", "version"])


def save_experiment(path: os.PathLike | str, record: ExperimentRecord, result: OptimizationResult) -> None:
    """Save the experiment record together with its result."""
    _dump(path, {"config": record, "result": result})


def load_experiment(path: os.PathLike | str) -> Dict[str, Any]:
    """Return a dict with ``config, result, timestamp, version``."""
    return _load(path, ["config", "result", "timestamp", "version"])
