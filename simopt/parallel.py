"""Execution strategies for running a policy x scenario grid.

Every strategy calls ``callback(policy_index, scenario_index, outcome)`` once
per cell with 1-based indices. Only the delivery order differs: sequential
runs are row-major, threaded and distributed runs deliver in completion order.
The random stream of a cell depends on its scenario index alone, so numeric
results agree across strategies whenever CRN is enabled.
"""
from __future__ import annotations

import logging
import multiprocessing as mp
import os
import threading
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from tqdm.auto import tqdm

from .errors import UnsupportedStrategyError, ValidationError
from .simulator.crn import CRNConfig, scenario_rng
from .simulator.engine import simulate, simulate_traced
from .types import Config, Policy
from .validation import ValidationCache, validate_policies, validate_scenarios

__all__ = [
    "Executor",
    "SequentialExecutor",
    "ThreadedExecutor",
    "DistributedExecutor",
    "register_executor",
    "get_executor",
    "available_executors",
    "run_grid",
    "run_traced_grid",
]

logger = logging.getLogger(__name__)

GridCallback = Callable[[int, int, object], None]
TracedGridCallback = Callable[[int, int, object, object], None]


def _grid_cells(n_policies: int, n_scenarios: int) -> List[Tuple[int, int]]:
    return [(p, s) for p in range(1, n_policies + 1) for s in range(1, n_scenarios + 1)]


def _progress_bar(total: int, enabled: bool, desc: str):
    return tqdm(total=total, disable=not enabled, desc=desc, leave=False)


def _run_cell(config, scenario, policy, p: int, s: int, crn: CRNConfig):
    """Process-pool work unit; module level so it can be pickled."""
    outcome = simulate(config, scenario, policy, rng=scenario_rng(crn, s))
    return p, s, outcome


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

_REGISTRY: Dict[str, Type["Executor"]] = {}


def register_executor(cls: Type["Executor"]):
    """Decorator to register an execution strategy under ``cls.name``."""
    if not issubclass(cls, Executor):
        raise TypeError("Only subclasses of Executor can be registered")
    key = cls.name.lower()
    if key in _REGISTRY:
        raise KeyError(f"Executor '{cls.name}' already registered")
    _REGISTRY[key] = cls
    return cls


def get_executor(name: str, **kwargs) -> "Executor":
    """Instantiate a registered executor by name."""
    key = name.lower()
    if key not in _REGISTRY:
        raise KeyError(f"Unknown executor '{name}'. Available: {list(_REGISTRY)}")
    return _REGISTRY[key](**kwargs)


def available_executors() -> List[str]:
    return list(_REGISTRY)


# ------------------------------------------------------------------
# Strategies
# ------------------------------------------------------------------

class Executor:
    """Base class for grid execution strategies.

    Parameters
    ----------
    crn
        ``True``/``False`` to toggle common random numbers, or a ready
        :class:`~simopt.simulator.crn.CRNConfig`.
    seed
        Base seed for the scenario streams; ignored when ``crn`` is a config.
    """

    name: str = "base"

    def __init__(self, crn=True, seed: int = 1234):
        self.crn = crn if isinstance(crn, CRNConfig) else CRNConfig(enabled=bool(crn), seed=seed)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(crn={self.crn.enabled}, seed={self.crn.seed})"

    def run_grid(
        self,
        config: Config,
        scenarios: Sequence,
        policies: Sequence[Policy],
        callback: GridCallback,
        progress: bool = False,
        validation: Optional[ValidationCache] = None,
    ) -> None:
        raise NotImplementedError

    def run_traced_grid(
        self,
        config: Config,
        scenarios: Sequence,
        policies: Sequence[Policy],
        callback: TracedGridCallback,
        progress: bool = False,
        validation: Optional[ValidationCache] = None,
    ) -> None:
        raise UnsupportedStrategyError(f"{type(self).__name__} does not support traced grid runs")


@register_executor
class SequentialExecutor(Executor):
    """Single-threaded, row-major: (1,1), (1,2), ..., (P,S)."""

    name = "sequential"

    def run_grid(self, config, scenarios, policies, callback, progress=False, validation=None):
        with _progress_bar(len(policies) * len(scenarios), progress, "grid") as bar:
            for p, policy in enumerate(policies, start=1):
                for s, scenario in enumerate(scenarios, start=1):
                    outcome = simulate(config, scenario, policy, rng=scenario_rng(self.crn, s), validation=validation)
                    callback(p, s, outcome)
                    bar.update()

    def run_traced_grid(self, config, scenarios, policies, callback, progress=False, validation=None):
        with _progress_bar(len(policies) * len(scenarios), progress, "traced grid") as bar:
            for p, policy in enumerate(policies, start=1):
                for s, scenario in enumerate(scenarios, start=1):
                    outcome, trace = simulate_traced(
                        config, scenario, policy, rng=scenario_rng(self.crn, s), validation=validation
                    )
                    callback(p, s, outcome, trace)
                    bar.update()


@register_executor
class ThreadedExecutor(Executor):
    """Thread pool over the flattened grid.

    Simulations run without any lock; the callback and the progress bar are
    updated under one shared lock. ``n_tasks`` defaults to ``os.cpu_count()``.
    """

    name = "threaded"

    def __init__(self, n_tasks: Optional[int] = None, crn=True, seed: int = 1234):
        super().__init__(crn, seed)
        n_tasks = (os.cpu_count() or 1) if n_tasks is None else int(n_tasks)
        if n_tasks < 1:
            raise ValidationError(f"n_tasks must be >= 1, got {n_tasks}")
        self.n_tasks = n_tasks

    def __repr__(self) -> str:
        return f"ThreadedExecutor(n_tasks={self.n_tasks}, crn={self.crn.enabled}, seed={self.crn.seed})"

    def _run(self, cells, work, progress, desc):
        lock = threading.Lock()
        with _progress_bar(len(cells), progress, desc) as bar:

            def guarded(p, s):
                deliver = work(p, s)
                with lock:
                    deliver()
                    bar.update()

            with ThreadPoolExecutor(max_workers=self.n_tasks) as pool:
                futures = [pool.submit(guarded, p, s) for p, s in cells]
                try:
                    for fut in as_completed(futures):
                        fut.result()
                except BaseException:
                    for fut in futures:
                        fut.cancel()
                    raise

    def run_grid(self, config, scenarios, policies, callback, progress=False, validation=None):
        if not self.crn.enabled:
            logger.warning("CRN disabled under %s: results will differ between runs", self)

        def work(p, s):
            outcome = simulate(
                config, scenarios[s - 1], policies[p - 1], rng=scenario_rng(self.crn, s), validation=validation
            )
            return lambda: callback(p, s, outcome)

        self._run(_grid_cells(len(policies), len(scenarios)), work, progress, "grid")

    def run_traced_grid(self, config, scenarios, policies, callback, progress=False, validation=None):
        def work(p, s):
            outcome, trace = simulate_traced(
                config, scenarios[s - 1], policies[p - 1], rng=scenario_rng(self.crn, s), validation=validation
            )
            return lambda: callback(p, s, outcome, trace)

        self._run(_grid_cells(len(policies), len(scenarios)), work, progress, "traced grid")


@register_executor
class DistributedExecutor(Executor):
    """Process pool; every cell is an independent, pickled unit of work.

    Config, scenarios, policies and outcomes must be picklable and their
    classes importable by the workers. The callback runs on the coordinating
    process. Strict validation, when requested, also runs on the coordinator.
    """

    name = "distributed"

    def __init__(
        self,
        n_workers: Optional[int] = None,
        crn=True,
        seed: int = 1234,
        mp_context: Optional[str] = None,
    ):
        super().__init__(crn, seed)
        if n_workers is not None and int(n_workers) < 1:
            raise ValidationError(f"n_workers must be >= 1, got {n_workers}")
        self.n_workers = None if n_workers is None else int(n_workers)
        self.mp_context = mp_context

    def __repr__(self) -> str:
        return f"DistributedExecutor(n_workers={self.n_workers}, crn={self.crn.enabled}, seed={self.crn.seed})"

    def run_grid(self, config, scenarios, policies, callback, progress=False, validation=None):
        if not self.crn.enabled:
            logger.warning("CRN disabled under %s: results will differ between runs", self)
        if validation is not None:
            for policy in policies:
                validation.check_simulation(scenarios[0], policy)

        ctx = mp.get_context(self.mp_context) if self.mp_context else None
        cells = _grid_cells(len(policies), len(scenarios))
        with _progress_bar(len(cells), progress, "grid") as bar:
            with ProcessPoolExecutor(max_workers=self.n_workers, mp_context=ctx) as pool:
                futures = [
                    pool.submit(_run_cell, config, scenarios[s - 1], policies[p - 1], p, s, self.crn)
                    for p, s in cells
                ]
                try:
                    for fut in as_completed(futures):
                        p, s, outcome = fut.result()
                        if validation is not None:
                            validation.check_outcome(outcome)
                        callback(p, s, outcome)
                        bar.update()
                except BaseException:
                    for fut in futures:
                        fut.cancel()
                    raise

    def run_traced_grid(self, config, scenarios, policies, callback, progress=False, validation=None):
        raise UnsupportedStrategyError(
            "DistributedExecutor does not support traced runs. Use SequentialExecutor or ThreadedExecutor."
        )


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------

def _check_grid(executor, scenarios, policies) -> None:
    if not isinstance(executor, Executor):
        raise ValidationError(f"executor must be an Executor, got {type(executor).__name__}")
    validate_scenarios(scenarios)
    validate_policies(policies)


def run_grid(
    executor: Executor,
    config: Config,
    scenarios: Sequence,
    policies: Sequence[Policy],
    callback: GridCallback,
    progress: bool = False,
    validation: Optional[ValidationCache] = None,
) -> None:
    """Run every (policy, scenario) cell with ``executor``."""
    _check_grid(executor, scenarios, policies)
    logger.info("running %d x %d grid with %r", len(policies), len(scenarios), executor)
    executor.run_grid(config, scenarios, policies, callback, progress=progress, validation=validation)


def run_traced_grid(
    executor: Executor,
    config: Config,
    scenarios: Sequence,
    policies: Sequence[Policy],
    callback: TracedGridCallback,
    progress: bool = False,
    validation: Optional[ValidationCache] = None,
) -> None:
    """Like :func:`run_grid` but ``callback`` also receives the trace."""
    _check_grid(executor, scenarios, policies)
    logger.info("running traced %d x %d grid with %r", len(policies), len(scenarios), executor)
    executor.run_traced_grid(config, scenarios, policies, callback, progress=progress, validation=validation)
