"""Render comparison results as a markdown report and a fail/pass decision."""

from __future__ import annotations

import math
from collections.abc import Sequence

from .config import AnalysisConfig
from .models import ComparisonResult, Verdict

SECTION_ORDER = (
    Verdict.REGRESSION,
    Verdict.IMPROVEMENT,
    Verdict.MISSING,
    Verdict.SKIPPED,
    Verdict.NEW,
    Verdict.OK,
)

SECTION_TITLES = {
    Verdict.REGRESSION: "Regressions",
    Verdict.IMPROVEMENT: "Improvements",
    Verdict.MISSING: "Missing benchmarks",
    Verdict.SKIPPED: "Not analyzed",
    Verdict.NEW: "New or insufficient history",
    Verdict.OK: "Within threshold",
}


def _fmt_value(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:.6f}"


def _fmt_ratio(ratio: float | None) -> str:
    if ratio is None:
        return "-"
    if math.isinf(ratio):
        return "inf"
    return f"{ratio:.4f}"


def failing_regressions(results: Sequence[ComparisonResult], config: AnalysisConfig) -> list[ComparisonResult]:
    if not config.fail_on_alert:
        return []
    limit = None if config.fail_threshold is None else 1.0 + config.fail_threshold
    return [
        r
        for r in results
        if r.verdict is Verdict.REGRESSION and (limit is None or (r.ratio is not None and r.ratio > limit))
    ]


def should_fail(results: Sequence[ComparisonResult], config: AnalysisConfig) -> bool:
    return bool(failing_regressions(results, config))


def build_report(
    results: Sequence[ComparisonResult],
    config: AnalysisConfig,
    platform: str,
    run_id: str,
) -> str:
    improvement = config.effective_improvement_threshold
    lines = [
        "# Benchmark Regression Report",
        "",
        f"- Platform: `{platform}`",
        f"- Run: `{run_id}`",
        f"- Baseline: `{config.aggregation}` of the last `{config.baseline_window}` runs "
        f"(minimum `{config.min_history}` observations)",
        f"- Regression threshold: `{config.regression_threshold * 100:.2f}%` (ratio > {1 + config.regression_threshold:.2f})",
        f"- Improvement threshold: `{improvement * 100:.2f}%` (ratio < {1 - improvement:.2f})",
    ]
    if config.fail_threshold is not None:
        lines.append(
            f"- Fail threshold: `{config.fail_threshold * 100:.2f}%` (ratio > {1 + config.fail_threshold:.2f})"
        )
    lines.append(f"- Fail on alert: `{'yes' if config.fail_on_alert else 'no'}`")

    grouped: dict[Verdict, list[ComparisonResult]] = {v: [] for v in SECTION_ORDER}
    for result in results:
        grouped[result.verdict].append(result)

    for verdict in SECTION_ORDER:
        rows = sorted(grouped[verdict], key=lambda r: r.benchmark_name)
        if not rows:
            continue
        lines += [
            "",
            f"## {SECTION_TITLES[verdict]} ({len(rows)})",
            "",
            "| Benchmark | Baseline | Current | Unit | Ratio | Verdict | Note |",
            "|---|---:|---:|---|---:|---|---|",
        ]
        for r in rows:
            lines.append(
                f"| {r.benchmark_name} | {_fmt_value(r.baseline_value)} | {_fmt_value(r.current_value)} | "
                f"{r.unit} | {_fmt_ratio(r.ratio)} | {r.verdict.value} | {r.note} |"
            )

    counts = ", ".join(f"{v.value.lower()}={len(grouped[v])}" for v in SECTION_ORDER)
    failing = failing_regressions(results, config)
    lines += [
        "",
        f"- Summary: {counts}",
        f"- Result: {'FAIL' if failing else 'PASS'}",
    ]
    if failing:
        names = sorted(r.benchmark_name for r in failing)
        lines.append(f"- Failing benchmarks: {', '.join(names)}")
    return "\n".join(lines) + "\n"


def results_to_dicts(results: Sequence[ComparisonResult]) -> list[dict[str, object]]:
    return [r.to_dict() for r in sorted(results, key=lambda r: r.benchmark_name)]
