"""Error types raised by the benchmark history pipeline."""

from __future__ import annotations


class BenchHistoryError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        platform: str | None = None,
        run_id: str | None = None,
        benchmark: str | None = None,
    ) -> None:
        self.message = message
        self.platform = platform
        self.run_id = run_id
        self.benchmark = benchmark
        super().__init__(self._render())

    def _render(self) -> str:
        context = [
            f"{key}={value}"
            for key, value in (("platform", self.platform), ("run_id", self.run_id), ("benchmark", self.benchmark))
            if value is not None
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ParseError(BenchHistoryError):
    """Raw benchmark output could not be turned into a run."""


class StorageError(BenchHistoryError):
    """Persisted history could not be read or written."""


class DuplicateRunError(BenchHistoryError):
    """The run id is already recorded for the platform."""


class RunOrderError(BenchHistoryError):
    """Another run already holds the same timestamp on the platform."""


class ConfigError(BenchHistoryError):
    """Invalid analysis configuration."""


class RetentionError(StorageError):
    """The run was recorded but trimming old runs afterwards failed."""
