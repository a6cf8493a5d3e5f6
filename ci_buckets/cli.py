#!/usr/bin/env python3
"""Command line entry point.

    ci-buckets plan --config scheduling.yaml --history test-class-data.json --output jobs.json
    ci-buckets filter --build-dir build --task integTest --source-set integTest -P includeTestClasses=true
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .classifier import StatisticBasedBucketProvider
from .config import Config, SchedulingSettings
from .filters import TestTask, select_filter_provider
from .history import BuildProjectClassTimes, HistoryFormatError, load_history
from .logger import StructuredLogger
from .model import BuildModel

ENV_PREFIX = "CI_BUCKETS"


def _parse_properties(pairs: Sequence[str]) -> Dict[str, str]:
    properties: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {pair!r}")
        properties[key] = value
    return properties


def _plan(args: argparse.Namespace) -> int:
    cfg = Config.load(args.config, env_prefix=ENV_PREFIX, cli_overrides=_parse_properties(args.set))
    StructuredLogger.configure_from_config(cfg)
    logger = StructuredLogger.get_logger("ci_buckets.cli")
    model = BuildModel.from_mapping(cfg.get("build_model", dict, default=None))
    settings = SchedulingSettings.from_mapping(cfg.get("scheduling", dict, default=None))

    history: BuildProjectClassTimes = {}
    history_path: Optional[str] = args.history or cfg.get("history.path", str, default=None)
    if history_path:
        if Path(history_path).expanduser().exists():
            history = load_history(history_path, logger=logger)
        else:
            logger.warning("cli.history.not_found", path=history_path)

    with logger.stage("Bucketing"):
        provider = StatisticBasedBucketProvider(model, history, settings, logger=logger)

    jobs: List[Dict[str, Any]] = []
    with logger.stage("Materialize"):
        for stage in model.stages:
            if args.stage and stage.name != args.stage:
                continue
            for coverage in stage.functional_tests:
                jobs.extend(job.to_dict() for job in provider.create_functional_tests_for(stage, coverage))
            jobs.extend(job.to_dict() for job in provider.create_deferred_functional_tests_for(stage))
        logger.info("cli.plan.complete", jobs=len(jobs))

    document = json.dumps({"jobs": jobs}, indent=2, ensure_ascii=False)
    if args.output:
        output = Path(args.output).expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(document + "\n", encoding="utf-8")
    else:
        print(document)
    return 0


def _filter(args: argparse.Namespace) -> int:
    provider = select_filter_provider(_parse_properties(args.property), args.build_dir)
    task = provider.configure(TestTask(name=args.task, source_set=args.source_set))
    print(json.dumps(task.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ci-buckets", description="Split test suites into balanced CI buckets")
    commands = parser.add_subparsers(dest="command", required=True)

    plan = commands.add_parser("plan", help="Compute buckets and emit job definitions as JSON")
    plan.add_argument("--config", required=True, help="Path to the YAML configuration")
    plan.add_argument("--history", default=None, help="Path to the test-class timing JSON")
    plan.add_argument("--output", default=None, help="Write jobs here instead of stdout")
    plan.add_argument("--stage", default=None, help="Only emit jobs of this stage")
    plan.add_argument("--set", action="append", default=[], metavar="KEY=VALUE", help="Override a configuration key")
    plan.set_defaults(handler=_plan)

    filt = commands.add_parser("filter", help="Show how a test task is filtered for this run")
    filt.add_argument("--build-dir", default="build", help="Directory holding the filter files")
    filt.add_argument("--task", required=True, help="Test task name")
    filt.add_argument("--source-set", required=True, help="Source set of the test task")
    filt.add_argument("-P", "--property", action="append", default=[], metavar="KEY=VALUE", help="Project property")
    filt.set_defaults(handler=_filter)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.handler(args)
    except FileNotFoundError as exc:
        print(f"File not found: {exc.filename}", file=sys.stderr)
        return 1
    except (HistoryFormatError, yaml.YAMLError, ValueError, TypeError, KeyError, RuntimeError) as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
