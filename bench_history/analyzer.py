"""Compare a new run against its platform's historical baseline."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .config import HIGHER_IS_BETTER, AnalysisConfig
from .models import ComparisonResult, Run, Sample, Verdict

# Scale to nanoseconds; "/iter" suffixes (libtest) compare like the bare unit.
TIME_UNIT_NS = {
    "ns": 1.0,
    "us": 1e3,
    "µs": 1e3,
    "μs": 1e3,
    "ms": 1e6,
    "s": 1e9,
}

AGGREGATORS = {
    "mean": np.mean,
    "median": np.median,
    "min": np.min,
}


@dataclass(frozen=True)
class Observation:
    run_id: str
    sample: Sample


def _time_scale(unit: str) -> float | None:
    base = unit[: -len("/iter")] if unit.endswith("/iter") else unit
    return TIME_UNIT_NS.get(base)


def convert_value(value: float, from_unit: str, to_unit: str) -> float | None:
    """Convert between time units; None when the units are not comparable."""
    if from_unit == to_unit:
        return value
    src = _time_scale(from_unit)
    dst = _time_scale(to_unit)
    if src is None or dst is None:
        return None
    return value * src / dst


def prior_runs(run: Run, history: Sequence[Run]) -> list[Run]:
    return [
        prev
        for prev in history
        if prev.platform == run.platform and prev.timestamp < run.timestamp and prev.run_id != run.run_id
    ]


def collect_observations(prior: Sequence[Run], window: int) -> dict[str, list[Observation]]:
    """Most recent ``window`` observations per benchmark, newest first."""
    out: dict[str, list[Observation]] = {}
    for prev in reversed(prior):
        for sample in prev.samples:
            bucket = out.setdefault(sample.benchmark_name, [])
            if len(bucket) < window:
                bucket.append(Observation(run_id=prev.run_id, sample=sample))
    return out


def aggregate(values: Sequence[float], method: str) -> float:
    return float(AGGREGATORS[method](np.asarray(values, dtype=np.float64)))


def _baseline(observations: Sequence[Observation], unit: str, method: str) -> tuple[float | None, str]:
    values: list[float] = []
    for obs in observations:
        converted = convert_value(obs.sample.value, obs.sample.unit, unit)
        if converted is None:
            return None, f"unit changed from {obs.sample.unit!r} to {unit!r} (run {obs.run_id})"
        values.append(converted)
    return aggregate(values, method), ""


def compute_ratio(baseline: float, current: float, direction: str) -> float:
    if direction == HIGHER_IS_BETTER:
        if current <= 0.0:
            return math.inf
        return baseline / current
    return current / baseline


def classify(ratio: float, config: AnalysisConfig) -> Verdict:
    if ratio > 1.0 + config.regression_threshold:
        return Verdict.REGRESSION
    if ratio < 1.0 - config.effective_improvement_threshold:
        return Verdict.IMPROVEMENT
    return Verdict.OK


def compare_sample(sample: Sample, observations: Sequence[Observation], config: AnalysisConfig) -> ComparisonResult:
    name = sample.benchmark_name
    count = len(observations)
    if count == 0:
        return ComparisonResult(
            benchmark_name=name,
            baseline_value=None,
            current_value=sample.value,
            ratio=None,
            verdict=Verdict.NEW,
            unit=sample.unit,
            note="no prior observations",
        )

    baseline, problem = _baseline(observations, sample.unit, config.aggregation)
    if count < config.min_history:
        return ComparisonResult(
            benchmark_name=name,
            baseline_value=baseline,
            current_value=sample.value,
            ratio=None,
            verdict=Verdict.NEW,
            unit=sample.unit,
            observations=count,
            note=f"{count} of {config.min_history} required observations",
        )
    if baseline is None:
        return ComparisonResult(
            benchmark_name=name,
            baseline_value=None,
            current_value=sample.value,
            ratio=None,
            verdict=Verdict.SKIPPED,
            unit=sample.unit,
            observations=count,
            note=problem,
        )
    if baseline <= 0.0:
        return ComparisonResult(
            benchmark_name=name,
            baseline_value=baseline,
            current_value=sample.value,
            ratio=None,
            verdict=Verdict.SKIPPED,
            unit=sample.unit,
            observations=count,
            note="baseline is not positive",
        )

    direction = config.direction_for(name)
    ratio = compute_ratio(baseline, sample.value, direction)
    return ComparisonResult(
        benchmark_name=name,
        baseline_value=baseline,
        current_value=sample.value,
        ratio=ratio,
        verdict=classify(ratio, config),
        unit=sample.unit,
        observations=count,
        note="" if direction != HIGHER_IS_BETTER else "higher is better",
    )


def missing_result(name: str, observations: Sequence[Observation], config: AnalysisConfig) -> ComparisonResult:
    unit = observations[0].sample.unit
    baseline, problem = _baseline(observations, unit, config.aggregation)
    note = f"not reported by this run; last seen in {observations[0].run_id}"
    if problem:
        note = f"{note}; {problem}"
    return ComparisonResult(
        benchmark_name=name,
        baseline_value=baseline,
        current_value=None,
        ratio=None,
        verdict=Verdict.MISSING,
        unit=unit,
        observations=len(observations),
        note=note,
    )


def analyze(run: Run, history: Sequence[Run], config: AnalysisConfig) -> list[ComparisonResult]:
    """Classify every benchmark of ``run`` plus benchmarks that disappeared from it."""
    prior = prior_runs(run, history)
    observations = collect_observations(prior, config.baseline_window)
    current = run.sample_map()

    results = [compare_sample(sample, observations.get(name, []), config) for name, sample in current.items()]

    # Only runs inside the window count for disappearance.
    recent_names: set[str] = set()
    for prev in prior[-config.baseline_window :]:
        recent_names.update(s.benchmark_name for s in prev.samples)
    for name in recent_names - set(current):
        results.append(missing_result(name, observations[name], config))

    return sorted(results, key=lambda r: r.benchmark_name)
