"""Analysis configuration and validation."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from .errors import ConfigError

LOWER_IS_BETTER = "lower_is_better"
HIGHER_IS_BETTER = "higher_is_better"
DIRECTIONS = (LOWER_IS_BETTER, HIGHER_IS_BETTER)
AGGREGATIONS = ("mean", "median", "min")


@dataclass(frozen=True)
class AnalysisConfig:
    baseline_window: int = 10
    min_history: int = 3
    regression_threshold: float = 0.5
    improvement_threshold: float | None = None
    fail_threshold: float | None = None
    fail_on_alert: bool = True
    retention_cap: int | None = None
    aggregation: str = "mean"
    metric_direction: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.validate()

    @property
    def effective_improvement_threshold(self) -> float:
        # Symmetric by default; a bound of 1.0 or more could never trigger.
        if self.improvement_threshold is not None:
            return self.improvement_threshold
        return min(self.regression_threshold, 0.99)

    def direction_for(self, benchmark_name: str) -> str:
        return self.metric_direction.get(benchmark_name, LOWER_IS_BETTER)

    def validate(self) -> None:
        if _not_int(self.baseline_window) or self.baseline_window < 1:
            raise ConfigError(f"baseline_window must be an integer >= 1, got {self.baseline_window!r}")
        if _not_int(self.min_history) or self.min_history < 1:
            raise ConfigError(f"min_history must be an integer >= 1, got {self.min_history!r}")
        if self.min_history > self.baseline_window:
            raise ConfigError(
                f"min_history ({self.min_history}) cannot exceed baseline_window ({self.baseline_window})"
            )
        if _not_number(self.regression_threshold) or self.regression_threshold < 0:
            raise ConfigError(f"regression_threshold must be >= 0, got {self.regression_threshold!r}")
        if self.improvement_threshold is not None:
            if _not_number(self.improvement_threshold) or not 0 <= self.improvement_threshold < 1:
                raise ConfigError(f"improvement_threshold must be in [0, 1), got {self.improvement_threshold!r}")
        if self.fail_threshold is not None:
            if _not_number(self.fail_threshold) or self.fail_threshold < self.regression_threshold:
                raise ConfigError(
                    f"fail_threshold must be >= regression_threshold ({self.regression_threshold}), "
                    f"got {self.fail_threshold!r}"
                )
        if not isinstance(self.fail_on_alert, bool):
            raise ConfigError(f"fail_on_alert must be a boolean, got {self.fail_on_alert!r}")
        if self.retention_cap is not None:
            if _not_int(self.retention_cap) or self.retention_cap < 1:
                raise ConfigError(f"retention_cap must be an integer >= 1, got {self.retention_cap!r}")
            if self.retention_cap < self.baseline_window:
                raise ConfigError(
                    f"retention_cap ({self.retention_cap}) is smaller than baseline_window ({self.baseline_window})"
                )
        if self.aggregation not in AGGREGATIONS:
            raise ConfigError(f"Invalid aggregation {self.aggregation!r}; expected one of {list(AGGREGATIONS)}")
        for name, direction in self.metric_direction.items():
            if direction not in DIRECTIONS:
                raise ConfigError(
                    f"Invalid direction {direction!r}; expected one of {list(DIRECTIONS)}",
                    benchmark=name,
                )


def _not_int(value: object) -> bool:
    return isinstance(value, bool) or not isinstance(value, int)


def _not_number(value: object) -> bool:
    # NaN or inf would make every threshold comparison false.
    return isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value)


def config_from_mapping(data: Mapping[str, object], base: AnalysisConfig | None = None) -> AnalysisConfig:
    known = {f.name for f in fields(AnalysisConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {unknown}")
    overrides = dict(data)
    direction = overrides.get("metric_direction")
    if direction is not None and not isinstance(direction, Mapping):
        raise ConfigError(f"metric_direction must be a mapping, got {direction!r}")
    if base is None:
        return AnalysisConfig(**overrides)
    return replace(base, **overrides)


def load_config(path: Path) -> AnalysisConfig:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return config_from_mapping(data)


def parse_direction_overrides(values: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for value in values:
        name, sep, direction = value.rpartition("=")
        name = name.strip()
        direction = direction.strip().lower()
        if not sep or not name:
            raise ConfigError(f"Invalid direction override {value!r}; expected NAME=lower_is_better|higher_is_better")
        if direction not in DIRECTIONS:
            raise ConfigError(f"Invalid direction {direction!r}; expected one of {list(DIRECTIONS)}", benchmark=name)
        out[name] = direction
    return out
