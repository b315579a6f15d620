"""Append-only, per-platform benchmark history."""

from __future__ import annotations

import bisect
import errno
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from pathlib import Path

from .errors import ConfigError, DuplicateRunError, RetentionError, RunOrderError, StorageError
from .models import Run

if os.name == "nt":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)

HISTORY_SUFFIX = ".json"
LOCK_SUFFIX = ".lock"


class MemoryBackend:
    """Keeps serialized runs in a dict; used by tests and dry runs."""

    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, object]]] = {}

    def read(self, platform: str) -> list[dict[str, object]] | None:
        records = self._data.get(platform)
        if records is None:
            return None
        return json.loads(json.dumps(records))

    def write(self, platform: str, records: list[dict[str, object]]) -> None:
        self._data[platform] = json.loads(json.dumps(records))

    def lock(self, platform: str) -> nullcontext[None]:
        return nullcontext()

    def platforms(self) -> list[str]:
        return sorted(self._data)


def _lock_fd(fd: int) -> None:
    if os.name == "nt":
        # LK_LOCK gives up after ten one-second attempts; keep waiting like flock does.
        while True:
            try:
                msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
                return
            except OSError as exc:
                if exc.errno != errno.EDEADLOCK:
                    raise
    else:
        fcntl.flock(fd, fcntl.LOCK_EX)


def _unlock_fd(fd: int) -> None:
    if os.name == "nt":
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)


def platform_file_name(platform: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", platform) + HISTORY_SUFFIX


class JsonFileBackend:
    """One JSON document per platform under ``root``, replaced atomically on write."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, platform: str) -> Path:
        return self.root / platform_file_name(platform)

    @contextmanager
    def lock(self, platform: str) -> Iterator[None]:
        """Exclusive lock on ``<platform>.lock`` so separate processes append one at a time."""
        path = self.path_for(platform).with_suffix(LOCK_SUFFIX)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            raise StorageError(f"Could not open lock file {path}: {exc}", platform=platform) from exc
        try:
            try:
                _lock_fd(fd)
            except OSError as exc:
                raise StorageError(f"Could not lock {path}: {exc}", platform=platform) from exc
            try:
                yield
            finally:
                _unlock_fd(fd)
        finally:
            os.close(fd)

    def read(self, platform: str) -> list[dict[str, object]] | None:
        path = self.path_for(platform)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(f"Could not read history file {path}: {exc}", platform=platform) from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StorageError(f"History file {path} is corrupt: {exc}", platform=platform) from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("runs"), list):
            raise StorageError(f"History file {path} must hold an object with a 'runs' list", platform=platform)
        if payload.get("platform") != platform:
            raise StorageError(
                f"History file {path} belongs to platform {payload.get('platform')!r}", platform=platform
            )
        return payload["runs"]

    def write(self, platform: str, records: list[dict[str, object]]) -> None:
        path = self.path_for(platform)
        body = json.dumps({"platform": platform, "runs": records}, indent=2, sort_keys=True) + "\n"
        tmp_name = ""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Could not write history file {path}: {exc}", platform=platform) from exc
        logger.debug("wrote history platform=%s runs=%d path=%s", platform, len(records), path)

    def platforms(self) -> list[str]:
        if not self.root.is_dir():
            return []
        out: list[str] = []
        for path in sorted(self.root.glob(f"*{HISTORY_SUFFIX}")):
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise StorageError(f"History file {path} is unreadable: {exc}") from exc
            if isinstance(payload, dict) and isinstance(payload.get("platform"), str):
                out.append(payload["platform"])
        return sorted(out)


class HistoryStore:
    def __init__(self, backend: MemoryBackend | JsonFileBackend, retention_cap: int | None = None) -> None:
        if retention_cap is not None and retention_cap < 1:
            raise ConfigError(f"retention_cap must be >= 1, got {retention_cap}")
        self.backend = backend
        self.retention_cap = retention_cap
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, platform: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(platform, threading.Lock())
        with lock, self.backend.lock(platform):
            yield

    def _read_runs(self, platform: str) -> list[Run]:
        try:
            records = self.backend.read(platform)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"History backend read failed: {exc}", platform=platform) from exc
        if records is None:
            return []
        runs = [Run.from_dict(record) for record in records]
        for prev, cur in zip(runs, runs[1:]):
            if cur.timestamp <= prev.timestamp:
                raise StorageError(
                    f"Stored runs are not strictly time-ordered ({prev.timestamp} then {cur.timestamp})",
                    platform=platform,
                    run_id=cur.run_id,
                )
        return runs

    def _write_runs(self, platform: str, runs: list[Run]) -> None:
        try:
            self.backend.write(platform, [run.to_dict() for run in runs])
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"History backend write failed: {exc}", platform=platform) from exc

    def load(self, platform: str) -> list[Run]:
        with self._locked(platform):
            return self._read_runs(platform)

    def append(self, platform: str, run: Run) -> None:
        if run.platform != platform:
            raise StorageError(f"Run belongs to platform {run.platform!r}", platform=platform, run_id=run.run_id)
        with self._locked(platform):
            runs = self._read_runs(platform)
            if any(existing.run_id == run.run_id for existing in runs):
                raise DuplicateRunError("Run is already recorded", platform=platform, run_id=run.run_id)
            timestamps = [existing.timestamp for existing in runs]
            pos = bisect.bisect_left(timestamps, run.timestamp)
            if pos < len(timestamps) and timestamps[pos] == run.timestamp:
                raise RunOrderError(
                    f"Run {runs[pos].run_id!r} already holds timestamp {run.timestamp}",
                    platform=platform,
                    run_id=run.run_id,
                )
            runs.insert(pos, run)
            self._write_runs(platform, runs)
            logger.debug("appended run platform=%s run_id=%s total=%d", platform, run.run_id, len(runs))
            if self.retention_cap is not None:
                try:
                    self._prune_locked(platform, self.retention_cap)
                except StorageError as exc:
                    raise RetentionError(
                        f"Run was recorded but pruning to {self.retention_cap} runs failed: {exc.message}",
                        platform=platform,
                        run_id=run.run_id,
                    ) from exc

    def prune(self, platform: str, max_runs: int) -> int:
        """Drop the oldest runs beyond ``max_runs``; returns how many were removed."""
        if max_runs < 1:
            raise ConfigError(f"max_runs must be >= 1, got {max_runs}", platform=platform)
        with self._locked(platform):
            return self._prune_locked(platform, max_runs)

    def _prune_locked(self, platform: str, max_runs: int) -> int:
        runs = self._read_runs(platform)
        excess = len(runs) - max_runs
        if excess <= 0:
            return 0
        self._write_runs(platform, runs[excess:])
        logger.debug("pruned history platform=%s removed=%d kept=%d", platform, excess, max_runs)
        return excess

    def platforms(self) -> list[str]:
        try:
            return self.backend.platforms()
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"History backend listing failed: {exc}") from exc
