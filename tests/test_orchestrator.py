from __future__ import annotations

import pytest

from bench_history.config import AnalysisConfig
from bench_history.errors import ParseError, StorageError
from bench_history.history import HistoryStore, MemoryBackend
from bench_history.models import Run, Sample, Verdict
from bench_history.orchestrator import RunOrchestrator, Stage, process


def _seed(store: HistoryStore, platform: str = "linux", count: int = 10, **values: float) -> None:
    for i in range(count):
        samples = tuple(Sample(name, value, "ms") for name, value in values.items())
        store.append(platform, Run(run_id=f"seed-{i}", platform=platform, timestamp=100 + i, samples=samples))


def test_process_reports_and_records_run() -> None:
    store = HistoryStore(MemoryBackend())
    _seed(store, parse=100.0, bar=5.0)
    orchestrator = RunOrchestrator(store, AnalysisConfig())

    outcome = orchestrator.process("linux", "parse 200 ms\nfoo 50 ms\n", run_id="sha-new", timestamp=500)

    verdicts = {r.benchmark_name: r.verdict for r in outcome.results}
    assert verdicts == {"bar": Verdict.MISSING, "foo": Verdict.NEW, "parse": Verdict.REGRESSION}
    assert outcome.should_fail
    assert outcome.appended
    assert outcome.warnings == ()
    assert orchestrator.stage is Stage.DONE
    assert orchestrator.failed_stage is None
    assert store.load("linux")[-1].run_id == "sha-new"

    report, fail = outcome
    assert fail is True
    assert "## Regressions (1)" in report


def test_resubmitting_a_run_is_idempotent() -> None:
    store = HistoryStore(MemoryBackend())
    _seed(store, parse=100.0)
    orchestrator = RunOrchestrator(store, AnalysisConfig())

    first = orchestrator.process("linux", "parse 101 ms\n", run_id="sha1", timestamp=500)
    length = len(store.load("linux"))
    second = orchestrator.process("linux", "parse 101 ms\n", run_id="sha1", timestamp=500)

    assert first.results == second.results
    assert first.report == second.report
    assert second.appended is False
    assert len(second.warnings) == 1
    assert "already recorded" in second.warnings[0]
    assert len(store.load("linux")) == length
    assert orchestrator.stage is Stage.DONE


def test_parse_failure_leaves_history_untouched() -> None:
    store = HistoryStore(MemoryBackend())
    _seed(store, count=3, parse=100.0)
    orchestrator = RunOrchestrator(store, AnalysisConfig())

    with pytest.raises(ParseError):
        orchestrator.process("linux", "parse 1 ms\nparse 2 ms\n", run_id="dup", timestamp=500)

    assert orchestrator.stage is Stage.FAILED
    assert orchestrator.failed_stage is Stage.PARSE
    assert [r.run_id for r in store.load("linux")] == ["seed-0", "seed-1", "seed-2"]


def test_storage_write_failure_is_fatal() -> None:
    class ReadOnlyBackend(MemoryBackend):
        def write(self, platform: str, records: list[dict[str, object]]) -> None:
            raise PermissionError("read-only cache")

    orchestrator = RunOrchestrator(HistoryStore(ReadOnlyBackend()), AnalysisConfig())
    with pytest.raises(StorageError, match="read-only cache"):
        orchestrator.process("linux", "parse 1 ms\n", run_id="r1", timestamp=1)
    assert orchestrator.stage is Stage.FAILED
    assert orchestrator.failed_stage is Stage.APPEND_HISTORY


def test_new_benchmark_does_not_fail_even_with_fail_on_alert() -> None:
    outcome = process("linux", "foo 50 ms\n", AnalysisConfig(fail_on_alert=True), run_id="r1", timestamp=1)
    assert [r.verdict for r in outcome.results] == [Verdict.NEW]
    assert outcome.should_fail is False


def test_fail_on_alert_disabled_still_reports_regression() -> None:
    store = HistoryStore(MemoryBackend())
    _seed(store, parse=100.0)
    outcome = process(
        "linux", "parse 300 ms\n", AnalysisConfig(fail_on_alert=False), store=store, run_id="r1", timestamp=500
    )
    assert outcome.results[0].verdict is Verdict.REGRESSION
    assert outcome.should_fail is False


def test_platforms_do_not_share_baselines() -> None:
    store = HistoryStore(MemoryBackend())
    _seed(store, platform="windows-latest", parse=10.0)
    _seed(store, platform="ubuntu-latest", parse=100.0)

    outcome = process("ubuntu-latest", "parse 101 ms\n", AnalysisConfig(), store=store, run_id="r1", timestamp=500)
    assert outcome.results[0].verdict is Verdict.OK
    assert outcome.results[0].baseline_value == pytest.approx(100.0)


def test_identical_inputs_give_identical_reports() -> None:
    reports = []
    for _ in range(2):
        store = HistoryStore(MemoryBackend())
        _seed(store, parse=100.0, encode=3.0)
        outcome = process("linux", "encode 3.1 ms\nparse 99 ms\n", AnalysisConfig(), store=store, run_id="x", timestamp=900)
        reports.append(outcome.report)
    assert reports[0] == reports[1]


def test_unreadable_history_fails_at_load_stage() -> None:
    class BrokenBackend(MemoryBackend):
        def read(self, platform: str) -> list[dict[str, object]] | None:
            raise ConnectionError("cache service unreachable")

    orchestrator = RunOrchestrator(HistoryStore(BrokenBackend()), AnalysisConfig())
    with pytest.raises(StorageError, match="cache service unreachable"):
        orchestrator.process("linux", "parse 1 ms\n", run_id="r1", timestamp=1)
    assert orchestrator.stage is Stage.FAILED
    assert orchestrator.failed_stage is Stage.LOAD_HISTORY


def test_conflicting_timestamp_keeps_report_and_warns() -> None:
    store = HistoryStore(MemoryBackend())
    _seed(store, parse=100.0)
    orchestrator = RunOrchestrator(store, AnalysisConfig())

    first = orchestrator.process("linux", "parse 101 ms\n", run_id="a", timestamp=500)
    second = orchestrator.process("linux", "parse 300 ms\n", run_id="b", timestamp=500)

    assert first.appended is True
    assert second.appended is False
    assert second.results[0].verdict is Verdict.REGRESSION
    assert "## Regressions (1)" in second.report
    assert len(second.warnings) == 1
    assert "already holds timestamp 500" in second.warnings[0]
    assert orchestrator.stage is Stage.DONE
    assert [r.run_id for r in store.load("linux") if r.timestamp == 500] == ["a"]


def test_retention_failure_after_append_keeps_report() -> None:
    class PruneFailsBackend(MemoryBackend):
        def write(self, platform: str, records: list[dict[str, object]]) -> None:
            stored = self.read(platform) or []
            if len(records) < len(stored):
                raise PermissionError("cannot rewrite cache")
            super().write(platform, records)

    store = HistoryStore(PruneFailsBackend(), retention_cap=10)
    _seed(store, parse=100.0)
    orchestrator = RunOrchestrator(store, AnalysisConfig(retention_cap=10))

    outcome = orchestrator.process("linux", "parse 101 ms\n", run_id="sha-new", timestamp=500)

    assert outcome.appended is True
    assert outcome.results[0].verdict is Verdict.OK
    assert "# Benchmark Regression Report" in outcome.report
    assert len(outcome.warnings) == 1
    assert "history retention not applied" in outcome.warnings[0]
    assert "cannot rewrite cache" in outcome.warnings[0]
    assert orchestrator.stage is Stage.DONE
    assert store.load("linux")[-1].run_id == "sha-new"
    assert len(store.load("linux")) == 11
