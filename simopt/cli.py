"""Command-line interface entry-point.

A model is a Python callable ``module:factory`` returning a mapping with the
keys ``config``, ``scenarios``, ``policy_type``, ``metric_fn`` and
``objectives``, and optionally ``policies`` and ``constraints``.

Usage examples
--------------
Write default settings:
    python -m simopt.cli init-config --out cfgs/mine.yaml

Evaluate the second listed policy:
    python -m simopt.cli evaluate --model mypkg.models:build --config cfgs/default.yaml --policy-index 2

Explore every listed policy on every scenario and stream rows to CSV:
    python -m simopt.cli explore --model mypkg.models:build --config cfgs/default.yaml --out results.csv

Random search with 500 samples:
    python -m simopt.cli optimize --model mypkg.models:build --config cfgs/default.yaml \
        --backend RandomSearchBackend --samples 500
"""
from __future__ import annotations

import argparse
import importlib
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List

import numpy as np

from .config import ExperimentSettings
from .errors import SimOptError, ValidationError
from .exploration import CSVSink, StreamingSink, explore
from .optimization import OptimizationProblem, available_backends, get_backend, optimize
from .optimization.problem import evaluate, metrics_mapping
from .persistence import ExperimentRecord, save_experiment
from .types import SharedParameters

SUBCOMMANDS = {"init-config", "evaluate", "explore", "optimize"}
REQUIRED_MODEL_KEYS = ("config", "scenarios", "policy_type", "metric_fn", "objectives")

logger = logging.getLogger(__name__)


def _parse_args(argv: List[str] | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="simopt", description="Simulation-optimisation under uncertainty")

    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # ------------------------------------------------------------------
    # init-config
    # ------------------------------------------------------------------
    p_init = subparsers.add_parser("init-config", help="Write default experiment settings to YAML")
    p_init.add_argument("--out", required=True, type=Path, help="Destination YAML file")

    # ------------------------------------------------------------------
    # evaluate
    # ------------------------------------------------------------------
    p_eval = subparsers.add_parser("evaluate", help="Evaluate one policy over the scenarios")
    p_eval.add_argument("--model", required=True, help="Model factory as module:function")
    p_eval.add_argument("--config", type=Path, default=None, help="YAML settings file")
    p_eval.add_argument(
        "--policy-index",
        type=int,
        default=None,
        help="1-based index into the model's policies (default: bounds midpoint)",
    )

    # ------------------------------------------------------------------
    # explore
    # ------------------------------------------------------------------
    p_explore = subparsers.add_parser("explore", help="Run every listed policy on every scenario")
    p_explore.add_argument("--model", required=True, help="Model factory as module:function")
    p_explore.add_argument("--config", type=Path, default=None, help="YAML settings file")
    p_explore.add_argument("--out", type=Path, default=None, help="Stream rows to this CSV file")

    # ------------------------------------------------------------------
    # optimize
    # ------------------------------------------------------------------
    p_opt = subparsers.add_parser("optimize", help="Search policy parameters")
    p_opt.add_argument("--model", required=True, help="Model factory as module:function")
    p_opt.add_argument("--config", type=Path, default=None, help="YAML settings file")
    p_opt.add_argument("--backend", default="RandomSearchBackend", help=f"One of {available_backends()}")
    p_opt.add_argument("--samples", type=int, default=None, help="Sample budget for RandomSearchBackend")
    p_opt.add_argument("--iterations", type=int, default=None, help="Generations for DifferentialEvolutionBackend")
    p_opt.add_argument("--save", type=Path, default=None, help="Save the experiment and its result here")
    return parser


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _load_settings(path: Path | None) -> ExperimentSettings:
    return ExperimentSettings() if path is None else ExperimentSettings.from_yaml(path)


def load_model(target: str) -> Dict[str, Any]:
    """Import ``module:factory`` and return the mapping the factory builds."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValidationError(f"--model must look like 'package.module:factory', got '{target}'")
    factory = getattr(importlib.import_module(module_name), attr)
    model = factory()
    if not isinstance(model, Mapping):
        raise ValidationError(f"{target} must return a mapping, got {type(model).__name__}")
    missing = [k for k in REQUIRED_MODEL_KEYS if k not in model]
    if missing:
        raise ValidationError(f"{target} did not return {missing}")
    return dict(model)


def _build_problem(model: Dict[str, Any], settings: ExperimentSettings) -> OptimizationProblem:
    return OptimizationProblem(
        model["config"],
        model["scenarios"],
        model["policy_type"],
        model["metric_fn"],
        model["objectives"],
        batch_size=settings.make_batch_size(),
        constraints=model.get("constraints", ()),
    )


def _backend_kwargs(args, settings: ExperimentSettings) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"seed": settings.seed}
    if args.backend == "RandomSearchBackend" and args.samples is not None:
        kwargs["n_samples"] = args.samples
    if args.backend == "DifferentialEvolutionBackend" and args.iterations is not None:
        kwargs["max_iterations"] = args.iterations
    return kwargs


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

def _cmd_init_config(args) -> None:
    ExperimentSettings().to_yaml(args.out)
    print(f"Wrote default settings to {args.out}")


def _cmd_evaluate(args, settings: ExperimentSettings) -> None:
    model = load_model(args.model)
    problem = _build_problem(model, settings)
    if args.policy_index is not None:
        policies = model.get("policies") or []
        if not 1 <= args.policy_index <= len(policies):
            raise ValidationError(f"--policy-index {args.policy_index} out of range 1..{len(policies)}")
        policy = policies[args.policy_index - 1]
    else:
        policy = problem.policy_type.from_vector([(lo + hi) / 2.0 for lo, hi in problem.get_bounds()])

    metrics = evaluate(
        problem.config,
        problem.scenarios,
        policy,
        problem.metric_fn,
        np.random.default_rng(settings.seed),
        problem.batch_size,
        crn=settings.crn_config() if settings.crn else None,
        validation=settings.validation_cache(),
    )
    print(f"Policy: {policy!r}")
    for name, val in metrics_mapping(metrics).items():
        print(f"  {name} = {val}")


def _cmd_explore(args, settings: ExperimentSettings) -> None:
    model = load_model(args.model)
    policies = model.get("policies")
    if not policies:
        raise ValidationError(f"{args.model} must provide 'policies' to explore")
    sink = None if args.out is None else StreamingSink(CSVSink(args.out))
    out = explore(
        model["config"],
        model["scenarios"],
        policies,
        executor=settings.make_executor(),
        sink=sink,
        progress=settings.progress,
        validation=settings.validation_cache(),
    )
    if args.out is not None:
        print(f"Wrote {len(policies) * len(model['scenarios'])} rows to {out}")
    else:
        print(out)
        print(out.data.groupby("policy")[out.outcome_columns].mean(numeric_only=True).to_string())


def _cmd_optimize(args, settings: ExperimentSettings) -> None:
    model = load_model(args.model)
    problem = _build_problem(model, settings)
    backend = get_backend(args.backend, **_backend_kwargs(args, settings))
    result = optimize(problem, backend)

    print(f"Backend: {backend!r}")
    for key, val in result.convergence_info.items():
        print(f"  {key}: {val}")
    print(result.to_dataframe().to_string(index=False))

    if args.save is not None:
        config = model["config"]
        record = ExperimentRecord(
            seed=settings.seed,
            scenarios=problem.scenarios,
            shared=config if isinstance(config, SharedParameters) else SharedParameters(),
            backend=backend,
            scenario_source=args.model,
        )
        save_experiment(args.save, record, result)
        print(f"Saved experiment to {args.save}")


def main(argv: List[str] | None = None) -> None:  # noqa: D401
    """Main entry point for the command-line interface."""
    parser = _parse_args(argv)
    args = parser.parse_args(argv)
    if args.cmd not in SUBCOMMANDS:
        print(f"Invalid subcommand '{args.cmd}'. Must be one of {SUBCOMMANDS}")
        parser.print_help()
        sys.exit(1)

    if args.cmd == "init-config":
        _cmd_init_config(args)
        return

    settings = _load_settings(args.config)
    logging.basicConfig(level=settings.log_level_value, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings.set_global_seeds()
    logger.debug("loaded %s", settings)

    try:
        if args.cmd == "evaluate":
            _cmd_evaluate(args, settings)
        elif args.cmd == "explore":
            _cmd_explore(args, settings)
        elif args.cmd == "optimize":
            _cmd_optimize(args, settings)
    except SimOptError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
