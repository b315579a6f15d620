"""Runs, samples and comparison results."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import StorageError


class Verdict(str, enum.Enum):
    OK = "OK"
    REGRESSION = "REGRESSION"
    IMPROVEMENT = "IMPROVEMENT"
    NEW = "NEW"
    MISSING = "MISSING"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class Sample:
    benchmark_name: str
    value: float
    unit: str

    def to_dict(self) -> dict[str, str | float]:
        return {"name": self.benchmark_name, "value": self.value, "unit": self.unit}


@dataclass(frozen=True)
class Run:
    run_id: str
    platform: str
    timestamp: int
    samples: tuple[Sample, ...]

    def sample_map(self) -> dict[str, Sample]:
        return {s.benchmark_name: s for s in self.samples}

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "platform": self.platform,
            "timestamp": self.timestamp,
            "samples": [s.to_dict() for s in self.samples],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Run:
        """Rebuild a run from its stored form, raising StorageError on schema problems."""
        try:
            run_id = data["run_id"]
            platform = data["platform"]
            timestamp = data["timestamp"]
            raw_samples = data["samples"]
        except (KeyError, TypeError) as exc:
            raise StorageError(f"Stored run record is missing field {exc}") from exc
        if not isinstance(run_id, str) or not isinstance(platform, str):
            raise StorageError("Stored run_id/platform must be strings", run_id=str(run_id))
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise StorageError(f"Stored timestamp must be an integer, got {timestamp!r}", run_id=run_id)
        if not isinstance(raw_samples, list):
            raise StorageError("Stored samples must be a list", platform=platform, run_id=run_id)

        samples: list[Sample] = []
        for item in raw_samples:
            if not isinstance(item, dict):
                raise StorageError(f"Stored sample must be an object, got {item!r}", platform=platform, run_id=run_id)
            name = item.get("name")
            value = item.get("value")
            unit = item.get("unit")
            if not isinstance(name, str) or not isinstance(unit, str):
                raise StorageError(f"Stored sample has invalid name/unit: {item!r}", platform=platform, run_id=run_id)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise StorageError(
                    f"Stored sample value is not numeric: {value!r}",
                    platform=platform,
                    run_id=run_id,
                    benchmark=name,
                )
            samples.append(Sample(benchmark_name=name, value=float(value), unit=unit))
        return cls(run_id=run_id, platform=platform, timestamp=timestamp, samples=tuple(samples))


@dataclass(frozen=True)
class ComparisonResult:
    benchmark_name: str
    baseline_value: float | None
    current_value: float | None
    ratio: float | None
    verdict: Verdict
    unit: str = ""
    observations: int = 0
    note: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "benchmark_name": self.benchmark_name,
            "baseline_value": self.baseline_value,
            "current_value": self.current_value,
            "ratio": self.ratio,
            "verdict": self.verdict.value,
            "unit": self.unit,
            "observations": self.observations,
            "note": self.note,
        }
