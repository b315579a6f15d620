#!/usr/bin/env python3
"""Record a benchmark run in the history store and fail CI on regressions."""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path

from bench_history.config import (
    AGGREGATIONS,
    AnalysisConfig,
    config_from_mapping,
    load_config,
    parse_direction_overrides,
)
from bench_history.errors import ConfigError, ParseError, StorageError
from bench_history.history import HistoryStore, JsonFileBackend
from bench_history.orchestrator import ProcessOutcome, RunOrchestrator
from bench_history.parser import FORMATS
from bench_history.report import results_to_dicts

EXIT_OK = 0
EXIT_REGRESSION = 1
EXIT_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Compare a benchmark run against stored history and record it.")
    ap.add_argument("--output_file", required=True, help="Raw benchmark tool output for this run")
    ap.add_argument("--platform", required=True, help="Platform label, e.g. the CI runner OS")
    ap.add_argument("--run_id", required=True, help="Unique run identity, e.g. the commit SHA")
    ap.add_argument("--history_dir", required=True, help="Directory holding one history JSON file per platform")
    ap.add_argument("--timestamp", type=int, default=None, help="Unix time of the run (default: now)")
    ap.add_argument("--format", dest="fmt", default="auto", choices=FORMATS)
    ap.add_argument("--config", default="", help="JSON file with analysis configuration")
    ap.add_argument("--baseline_window", type=int, default=None)
    ap.add_argument("--min_history", type=int, default=None)
    ap.add_argument("--regression_threshold", type=float, default=None)
    ap.add_argument("--improvement_threshold", type=float, default=None)
    ap.add_argument("--fail_threshold", type=float, default=None)
    ap.add_argument("--aggregation", default=None, choices=AGGREGATIONS)
    ap.add_argument("--retention_cap", type=int, default=None)
    ap.add_argument(
        "--direction",
        action="append",
        default=[],
        help="Per-benchmark metric direction, NAME=lower_is_better|higher_is_better (repeatable)",
    )
    ap.add_argument("--no_fail_on_alert", action="store_true", help="Report regressions without failing")
    ap.add_argument("--out_report", default="", help="Write the markdown report here")
    ap.add_argument("--out_json", default="", help="Write machine-readable verdicts here")
    ap.add_argument("--verbose", action="store_true")
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> AnalysisConfig:
    base = load_config(Path(args.config)) if args.config else AnalysisConfig()
    overrides: dict[str, object] = {}
    for key in (
        "baseline_window",
        "min_history",
        "regression_threshold",
        "improvement_threshold",
        "fail_threshold",
        "aggregation",
        "retention_cap",
    ):
        value = getattr(args, key)
        if value is not None:
            overrides[key] = value
    if args.direction:
        overrides["metric_direction"] = {**base.metric_direction, **parse_direction_overrides(args.direction)}
    if args.no_fail_on_alert:
        overrides["fail_on_alert"] = False
    return config_from_mapping(overrides, base=base)


def write_outputs(outcome: ProcessOutcome, args: argparse.Namespace) -> None:
    if args.out_report:
        out = Path(args.out_report)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(outcome.report, encoding="utf-8")
        print(f"wrote_report={out}")
    if args.out_json:
        out = Path(args.out_json)
        out.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "platform": outcome.run.platform,
            "run_id": outcome.run.run_id,
            "should_fail": outcome.should_fail,
            "appended": outcome.appended,
            "warnings": list(outcome.warnings),
            "results": results_to_dicts(outcome.results),
        }
        out.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        print(f"wrote_json={out}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = build_config(args)
        raw_output = Path(args.output_file).read_text(encoding="utf-8")
    except ConfigError as exc:
        print(f"config_error: {exc}")
        return EXIT_ERROR
    except OSError as exc:
        print(f"input_error: could not read {args.output_file}: {exc}")
        return EXIT_ERROR

    timestamp = args.timestamp if args.timestamp is not None else int(time.time())
    store = HistoryStore(JsonFileBackend(Path(args.history_dir)), retention_cap=config.retention_cap)
    orchestrator = RunOrchestrator(store, config)
    try:
        outcome = orchestrator.process(args.platform, raw_output, run_id=args.run_id, timestamp=timestamp, fmt=args.fmt)
    except ParseError as exc:
        print(f"parse_error: {exc}")
        return EXIT_ERROR
    except StorageError as exc:
        print(f"storage_error: stage={(orchestrator.failed_stage or orchestrator.stage).value} {exc}")
        return EXIT_ERROR

    counts: dict[str, int] = {}
    for result in outcome.results:
        counts[result.verdict.value] = counts.get(result.verdict.value, 0) + 1
    summary = " ".join(f"{key.lower()}={counts[key]}" for key in sorted(counts))
    print(
        f"platform={args.platform} run_id={args.run_id} benchmarks={len(outcome.results)} "
        f"{summary} appended={outcome.appended} should_fail={outcome.should_fail}"
    )
    for message in outcome.warnings:
        print(f"warning: {message}")
    write_outputs(outcome, args)

    if outcome.should_fail:
        print("Benchmark regression exceeded threshold with fail-on-alert enabled")
        return EXIT_REGRESSION
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
