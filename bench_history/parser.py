"""Turn raw benchmark tool output into a normalized Run."""

from __future__ import annotations

import json
import math
import re

from .errors import ParseError
from .models import Run, Sample

FORMATS = ("auto", "cargo", "lines", "json")

# libtest bencher: "test parse::deep ... bench:       1,234 ns/iter (+/- 56)"
CARGO_LINE_RE = re.compile(
    r"^test\s+(?P<name>\S+)\s+\.\.\.\s+bench:\s+(?P<value>[0-9][0-9,]*(?:\.[0-9]+)?)\s+(?P<unit>\S+/iter)"
    r"(?:\s+\(\+/-\s+[0-9][0-9,]*(?:\.[0-9]+)?\))?\s*$"
)
CARGO_HINT_RE = re.compile(r"^test\s+\S+.*\bbench:")


def _to_float(raw: object, *, platform: str, run_id: str, name: str, where: str) -> float:
    if isinstance(raw, bool):
        raise ParseError(f"Non-numeric value {raw!r} {where}", platform=platform, run_id=run_id, benchmark=name)
    try:
        value = float(raw.replace(",", "")) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError) as exc:
        raise ParseError(
            f"Non-numeric value {raw!r} {where}", platform=platform, run_id=run_id, benchmark=name
        ) from exc
    if not math.isfinite(value):
        raise ParseError(f"Non-finite value {raw!r} {where}", platform=platform, run_id=run_id, benchmark=name)
    return value


def parse_cargo(text: str, platform: str, run_id: str) -> list[Sample]:
    out: list[Sample] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        m = CARGO_LINE_RE.match(line)
        if m is None:
            if CARGO_HINT_RE.match(line):
                raise ParseError(f"Malformed bencher line {lineno}: {line!r}", platform=platform, run_id=run_id)
            continue
        name = m.group("name")
        value = _to_float(m.group("value"), platform=platform, run_id=run_id, name=name, where=f"on line {lineno}")
        out.append(Sample(benchmark_name=name, value=value, unit=m.group("unit")))
    return out


def parse_lines(text: str, platform: str, run_id: str) -> list[Sample]:
    out: list[Sample] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) != 3:
            raise ParseError(
                f"Line {lineno} must be '<name> <value> <unit>', got {line!r}", platform=platform, run_id=run_id
            )
        name, raw_value, unit = parts
        value = _to_float(raw_value, platform=platform, run_id=run_id, name=name, where=f"on line {lineno}")
        out.append(Sample(benchmark_name=name, value=value, unit=unit))
    return out


def parse_json(text: str, platform: str, run_id: str) -> list[Sample]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON benchmark output: {exc}", platform=platform, run_id=run_id) from exc
    if isinstance(payload, dict):
        payload = payload.get("benchmarks")
    if not isinstance(payload, list):
        raise ParseError(
            "JSON benchmark output must be a list of {name, value, unit} records or an object with 'benchmarks'",
            platform=platform,
            run_id=run_id,
        )

    out: list[Sample] = []
    for idx, record in enumerate(payload):
        if not isinstance(record, dict):
            raise ParseError(f"Record {idx} is not an object: {record!r}", platform=platform, run_id=run_id)
        name = record.get("name")
        unit = record.get("unit")
        if not isinstance(name, str) or not name.strip():
            raise ParseError(f"Record {idx} has no benchmark name", platform=platform, run_id=run_id)
        if not isinstance(unit, str) or not unit.strip():
            raise ParseError(f"Record {idx} has no unit", platform=platform, run_id=run_id, benchmark=name)
        if "value" not in record:
            raise ParseError(f"Record {idx} has no value", platform=platform, run_id=run_id, benchmark=name)
        value = _to_float(record["value"], platform=platform, run_id=run_id, name=name, where=f"in record {idx}")
        out.append(Sample(benchmark_name=name.strip(), value=value, unit=unit.strip()))
    return out


def detect_format(text: str) -> str:
    stripped = text.lstrip()
    if stripped.startswith(("[", "{")):
        return "json"
    if any(CARGO_HINT_RE.match(line.strip()) for line in text.splitlines()):
        return "cargo"
    return "lines"


def _check_unique(samples: list[Sample], platform: str, run_id: str) -> tuple[Sample, ...]:
    seen: set[str] = set()
    for sample in samples:
        if sample.benchmark_name in seen:
            raise ParseError(
                "Benchmark reported more than once in a single run",
                platform=platform,
                run_id=run_id,
                benchmark=sample.benchmark_name,
            )
        seen.add(sample.benchmark_name)
    return tuple(samples)


def parse_run(raw_output: str, platform: str, run_id: str, timestamp: int, fmt: str = "auto") -> Run:
    """Parse one run's raw output; raises ParseError without side effects."""
    if not platform.strip():
        raise ParseError("Platform label must not be empty", run_id=run_id)
    if not run_id.strip():
        raise ParseError("Run id must not be empty", platform=platform)
    if fmt not in FORMATS:
        raise ParseError(f"Unknown output format {fmt!r}; expected one of {list(FORMATS)}", platform=platform)

    if fmt == "auto":
        fmt = detect_format(raw_output)
    parsers = {"cargo": parse_cargo, "lines": parse_lines, "json": parse_json}
    samples = parsers[fmt](raw_output, platform, run_id)
    if not samples:
        raise ParseError(f"No benchmark samples found in {fmt} output", platform=platform, run_id=run_id)
    return Run(
        run_id=run_id,
        platform=platform,
        timestamp=int(timestamp),
        samples=_check_unique(samples, platform, run_id),
    )
