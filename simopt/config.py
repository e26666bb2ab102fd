"""Experiment-wide settings.

Seeds, execution strategy, batch size and logging level live here so that an
experiment can be reproduced from one YAML file. Settings objects can be
created programmatically or loaded with :meth:`ExperimentSettings.from_yaml`.
"""

from __future__ import annotations

import logging
import os
import random
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
import yaml

from .errors import ValidationError
from .parallel import Executor, available_executors, get_executor
from .simulator.crn import CRNConfig
from .types import BatchSize, FixedBatch, FractionBatch, FullBatch
from .validation import ValidationCache

__all__ = [
    "ExperimentSettings",
]

DEFAULT_YAML_INDENT = 2
BATCH_KINDS = ("full", "fixed", "fraction")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ExperimentSettings:
    """Container for experiment-level knobs.

    Attributes
    ----------
    seed
        Base seed for CRN streams and global generators.
    crn
        Give every scenario its own reproducible random stream.
    executor
        ``sequential``, ``threaded`` or ``distributed``.
    n_workers
        Pool size for parallel executors; ``None`` lets the executor decide.
    batch
        ``full``, ``fixed`` or ``fraction``.
    batch_value
        Scenario count for ``fixed``, fraction in (0, 1] for ``fraction``.
    progress
        Show progress bars.
    strict_validation
        Require parameter-typed fields on scenarios, policies and outcomes.
    log_level
        Level passed to ``logging.basicConfig`` by the command line.
    """

    seed: int = 1234
    crn: bool = True
    executor: str = "sequential"
    n_workers: Optional[int] = None
    batch: str = "full"
    batch_value: Optional[float] = None
    progress: bool = False
    strict_validation: bool = False
    log_level: str = "INFO"

    # Free-form field to store arbitrary user metadata (e.g., experiment name).
    tag: str = ""

    # Automatically filled, not expected to be loaded from file.
    _yaml_path: Optional[Path] = field(default=None, repr=False, compare=False)

    # ---------------------------------------------------------------------
    # YAML helpers
    # ---------------------------------------------------------------------
    @classmethod
    def from_yaml(cls, path: os.PathLike | str) -> "ExperimentSettings":
        """Load settings from a YAML file."""
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        unknown = sorted(set(data) - {k for k in cls.__dataclass_fields__ if not k.startswith("_")})
        if unknown:
            raise ValidationError(f"Unknown settings in {path}: {unknown}")
        settings = cls(**data)
        settings._yaml_path = Path(path)
        return settings

    def to_yaml(self, path: os.PathLike | str) -> None:
        """Save the settings to YAML."""
        data = {k: v for k, v in asdict(self).items() if not k.startswith("_")}
        with open(path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(data, fh, indent=DEFAULT_YAML_INDENT, sort_keys=False)

    # ------------------------------------------------------------------
    # Random Seed Control
    # ------------------------------------------------------------------
    def set_global_seeds(self) -> None:
        """Seed `random` and the legacy `numpy` global generator."""
        random.seed(self.seed)
        np.random.seed(self.seed % 2**32)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------
    def crn_config(self) -> CRNConfig:
        return CRNConfig(enabled=self.crn, seed=self.seed)

    def make_executor(self) -> Executor:
        kwargs = {"crn": self.crn_config()}
        if self.executor == "threaded":
            kwargs["n_tasks"] = self.n_workers
        elif self.executor == "distributed":
            kwargs["n_workers"] = self.n_workers
        return get_executor(self.executor, **kwargs)

    def make_batch_size(self) -> BatchSize:
        if self.batch == "fixed":
            return FixedBatch(int(self.batch_value))
        if self.batch == "fraction":
            return FractionBatch(float(self.batch_value))
        return FullBatch()

    def validation_cache(self) -> ValidationCache:
        return ValidationCache(strict=self.strict_validation)

    def __str__(self) -> str:  # noqa: DunderStr
        return f"ExperimentSettings(executor={self.executor}, batch={self.batch}, seed={self.seed})"

    def __post_init__(self):
        self.seed = int(self.seed)
        self.crn = bool(self.crn)
        self.progress = bool(self.progress)
        self.strict_validation = bool(self.strict_validation)
        self.executor = str(self.executor).lower()
        self.batch = str(self.batch).lower()
        self.log_level = str(self.log_level).upper()

        if self.executor not in available_executors():
            raise ValidationError(f"Unknown executor '{self.executor}'. Available: {available_executors()}")
        if self.batch not in BATCH_KINDS:
            raise ValidationError(f"Unknown batch kind '{self.batch}'. Use one of {list(BATCH_KINDS)}")
        if self.batch != "full" and self.batch_value is None:
            raise ValidationError(f"batch '{self.batch}' requires batch_value")
        if self.n_workers is not None:
            self.n_workers = int(self.n_workers)
        if self.log_level not in LOG_LEVELS:
            raise ValidationError(f"Unknown log_level '{self.log_level}'. Use one of {list(LOG_LEVELS)}")
        # build once so that bad batch values fail here rather than mid-run
        self.make_batch_size()

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)
