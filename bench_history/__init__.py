"""Benchmark history storage and regression detection for CI."""

from .analyzer import analyze
from .config import AnalysisConfig, load_config
from .errors import (
    BenchHistoryError,
    ConfigError,
    DuplicateRunError,
    ParseError,
    RetentionError,
    RunOrderError,
    StorageError,
)
from .history import HistoryStore, JsonFileBackend, MemoryBackend
from .models import ComparisonResult, Run, Sample, Verdict
from .orchestrator import ProcessOutcome, RunOrchestrator, Stage, process
from .parser import parse_run
from .report import build_report, results_to_dicts, should_fail

__all__ = [
    "AnalysisConfig",
    "load_config",
    "BenchHistoryError",
    "ConfigError",
    "DuplicateRunError",
    "ParseError",
    "RetentionError",
    "RunOrderError",
    "StorageError",
    "HistoryStore",
    "JsonFileBackend",
    "MemoryBackend",
    "Sample",
    "Run",
    "Verdict",
    "ComparisonResult",
    "parse_run",
    "analyze",
    "build_report",
    "should_fail",
    "results_to_dicts",
    "Stage",
    "ProcessOutcome",
    "RunOrchestrator",
    "process",
]
