from __future__ import annotations

import json

import pytest

from bench_history.errors import ParseError
from bench_history.models import Sample
from bench_history.parser import detect_format, parse_run

CARGO_OUTPUT = """\
   Compiling nodejs_resolver v0.0.1
    Finished bench [optimized] target(s) in 12.31s
     Running unittests (target/release/deps/bench-1234)

running 3 tests
test resolve::alias      ... bench:       1,234 ns/iter (+/- 56)
test resolve::relative   ... bench:         987 ns/iter (+/- 12)
test resolve::node_mods  ... bench:      45,001 ns/iter (+/- 1,200)

test result: ok. 0 passed; 0 failed; 0 ignored; 3 measured; 0 filtered out
"""


def test_parse_cargo_output_keeps_order_and_units() -> None:
    run = parse_run(CARGO_OUTPUT, platform="ubuntu-latest", run_id="abc123", timestamp=100)
    assert run.platform == "ubuntu-latest"
    assert run.run_id == "abc123"
    assert run.timestamp == 100
    assert run.samples == (
        Sample("resolve::alias", 1234.0, "ns/iter"),
        Sample("resolve::relative", 987.0, "ns/iter"),
        Sample("resolve::node_mods", 45001.0, "ns/iter"),
    )


def test_parse_cargo_rejects_malformed_bench_line() -> None:
    text = "test resolve::alias ... bench: fast ns/iter\n"
    with pytest.raises(ParseError, match="Malformed bencher line 1"):
        parse_run(text, platform="linux", run_id="r1", timestamp=1, fmt="cargo")


def test_parse_lines_format_preserves_unknown_units() -> None:
    text = "# name value unit\n\nencode 12.5 ms\nthroughput 830.0 MB/s\nframes 12 widgets\n"
    run = parse_run(text, platform="linux", run_id="r1", timestamp=1)
    assert [s.unit for s in run.samples] == ["ms", "MB/s", "widgets"]
    assert run.samples[0].value == pytest.approx(12.5)


def test_parse_lines_rejects_wrong_shape_and_bad_numbers() -> None:
    with pytest.raises(ParseError, match="Line 1"):
        parse_run("encode 12.5\n", platform="linux", run_id="r1", timestamp=1, fmt="lines")
    with pytest.raises(ParseError, match="Non-numeric") as exc_info:
        parse_run("encode fast ms\n", platform="linux", run_id="r1", timestamp=1, fmt="lines")
    assert exc_info.value.benchmark == "encode"
    with pytest.raises(ParseError, match="Non-finite"):
        parse_run("encode nan ms\n", platform="linux", run_id="r1", timestamp=1, fmt="lines")


def test_parse_json_list_and_wrapped_object() -> None:
    records = [
        {"name": "encode", "value": 12.5, "unit": "ms"},
        {"name": "decode", "value": "3.25", "unit": "ms"},
    ]
    run = parse_run(json.dumps(records), platform="macos-latest", run_id="r2", timestamp=5)
    assert [s.benchmark_name for s in run.samples] == ["encode", "decode"]
    assert run.samples[1].value == pytest.approx(3.25)

    wrapped = parse_run(json.dumps({"benchmarks": records}), platform="macos-latest", run_id="r2", timestamp=5)
    assert wrapped == run


def test_parse_json_rejects_bad_records() -> None:
    with pytest.raises(ParseError, match="Invalid JSON"):
        parse_run("[{", platform="linux", run_id="r1", timestamp=1, fmt="json")
    with pytest.raises(ParseError, match="no unit"):
        parse_run('[{"name": "a", "value": 1}]', platform="linux", run_id="r1", timestamp=1)
    with pytest.raises(ParseError, match="Non-numeric"):
        parse_run('[{"name": "a", "value": true, "unit": "ms"}]', platform="linux", run_id="r1", timestamp=1)
    with pytest.raises(ParseError, match="must be a list"):
        parse_run('{"results": []}', platform="linux", run_id="r1", timestamp=1)


def test_duplicate_benchmark_name_in_one_run_is_rejected() -> None:
    with pytest.raises(ParseError) as exc_info:
        parse_run("encode 1 ms\nencode 2 ms\n", platform="linux", run_id="r9", timestamp=1)
    err = exc_info.value
    assert err.benchmark == "encode"
    assert err.platform == "linux"
    assert err.run_id == "r9"
    assert "benchmark=encode" in str(err)


def test_empty_output_and_missing_identity_are_rejected() -> None:
    with pytest.raises(ParseError, match="No benchmark samples"):
        parse_run("# nothing here\n", platform="linux", run_id="r1", timestamp=1)
    with pytest.raises(ParseError, match="Platform label"):
        parse_run("encode 1 ms\n", platform=" ", run_id="r1", timestamp=1)
    with pytest.raises(ParseError, match="Run id"):
        parse_run("encode 1 ms\n", platform="linux", run_id="", timestamp=1)
    with pytest.raises(ParseError, match="Unknown output format"):
        parse_run("encode 1 ms\n", platform="linux", run_id="r1", timestamp=1, fmt="xml")


def test_detect_format() -> None:
    assert detect_format('  [{"name": "a"}]') == "json"
    assert detect_format(CARGO_OUTPUT) == "cargo"
    assert detect_format("encode 1 ms\n") == "lines"
