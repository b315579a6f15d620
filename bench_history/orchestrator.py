"""Load history, parse a run, analyze, report, then record the run."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from dataclasses import dataclass

from .analyzer import analyze
from .config import AnalysisConfig
from .errors import DuplicateRunError, RetentionError, RunOrderError
from .history import HistoryStore, MemoryBackend
from .models import ComparisonResult, Run
from .parser import parse_run
from .report import build_report, should_fail

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    IDLE = "IDLE"
    LOAD_HISTORY = "LOAD_HISTORY"
    PARSE = "PARSE"
    ANALYZE = "ANALYZE"
    REPORT = "REPORT"
    APPEND_HISTORY = "APPEND_HISTORY"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ProcessOutcome:
    report: str
    should_fail: bool
    results: tuple[ComparisonResult, ...]
    warnings: tuple[str, ...]
    run: Run
    appended: bool

    def __iter__(self) -> Iterator[object]:
        # Unpacks as (report, should_fail).
        yield self.report
        yield self.should_fail


class RunOrchestrator:
    def __init__(self, store: HistoryStore, config: AnalysisConfig) -> None:
        self.store = store
        self.config = config
        self.stage = Stage.IDLE
        self.failed_stage: Stage | None = None

    def _enter(self, stage: Stage, platform: str) -> None:
        self.stage = stage
        logger.debug("stage=%s platform=%s", stage.value, platform)

    def process(self, platform: str, raw_output: str, run_id: str, timestamp: int, fmt: str = "auto") -> ProcessOutcome:
        """Run the full pipeline for one CI invocation.

        Parse and storage-read failures propagate before any history mutation.
        A duplicate or conflicting run at the append stage does not discard the
        analysis; it is returned in ``ProcessOutcome.warnings`` instead. The same
        applies when the run was stored but retention pruning failed. After a
        failure ``stage`` is FAILED and ``failed_stage`` names the stage that raised.
        """
        self.failed_stage = None
        try:
            self._enter(Stage.LOAD_HISTORY, platform)
            history = self.store.load(platform)

            self._enter(Stage.PARSE, platform)
            run = parse_run(raw_output, platform=platform, run_id=run_id, timestamp=timestamp, fmt=fmt)

            self._enter(Stage.ANALYZE, platform)
            results = analyze(run, history, self.config)

            self._enter(Stage.REPORT, platform)
            report = build_report(results, self.config, platform=platform, run_id=run_id)
            fail = should_fail(results, self.config)

            self._enter(Stage.APPEND_HISTORY, platform)
            warnings: list[str] = []
            appended = False
            try:
                self.store.append(platform, run)
                appended = True
            except RetentionError as exc:
                appended = True
                logger.warning("history retention not applied: %s", exc)
                warnings.append(f"history retention not applied: {exc}")
            except (DuplicateRunError, RunOrderError) as exc:
                logger.warning("history not updated: %s", exc)
                warnings.append(f"history not updated: {exc}")
        except Exception:
            self.failed_stage = self.stage
            self.stage = Stage.FAILED
            raise

        self._enter(Stage.DONE, platform)
        return ProcessOutcome(
            report=report,
            should_fail=fail,
            results=tuple(results),
            warnings=tuple(warnings),
            run=run,
            appended=appended,
        )


def process(
    platform: str,
    raw_output: str,
    config: AnalysisConfig,
    store: HistoryStore | None = None,
    run_id: str = "local",
    timestamp: int = 0,
    fmt: str = "auto",
) -> ProcessOutcome:
    """Convenience wrapper; without a store the run is analyzed against an empty in-memory history."""
    if store is None:
        store = HistoryStore(MemoryBackend(), retention_cap=config.retention_cap)
    return RunOrchestrator(store, config).process(platform, raw_output, run_id=run_id, timestamp=timestamp, fmt=fmt)
