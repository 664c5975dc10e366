from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from tqdm import tqdm

from store.errors import StorageError

from .keys import RandomKeySource
from .schemas import RunStatus, RunSummary

logger = logging.getLogger(__name__)


class Repository(Protocol):
    def lookup(self, key: str) -> bool:
        ...

    def save(self, key: str, filename: str) -> int:
        ...

    def count(self) -> int:
        ...


def _format_time(seconds: float) -> str:
    """Format seconds into human readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"


class CycleDriver:
    """Runs lookup/save cycles against a repository until a bound is hit.

    A cycle draws a key, looks it up and saves it (or skips the save on a
    hit when ``refresh_existing`` is off). Bounds are checked between
    cycles only; an in-flight operation is never interrupted.
    """

    def __init__(
        self,
        repository: Repository,
        keys: RandomKeySource,
        *,
        max_cycles: int | None = None,
        duration_seconds: float | None = None,
        refresh_existing: bool = True,
        filename_suffix: str = ".temp",
        show_progress: bool = True,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_cycles is not None and max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        if duration_seconds is not None and duration_seconds <= 0:
            raise ValueError("duration_seconds must be positive")
        self.repository = repository
        self.keys = keys
        self.max_cycles = max_cycles
        self.duration_seconds = duration_seconds
        self.refresh_existing = refresh_existing
        self.filename_suffix = filename_suffix
        self.show_progress = show_progress
        self.clock: Callable[[], float] = clock or time.monotonic
        self.interrupted = False
        self._previous_handlers: dict[int, Any] = {}

    def install_signal_handlers(self) -> None:
        """Stop after the current cycle on SIGINT/SIGTERM."""
        def signal_handler(signum: int, frame: Any) -> None:
            logger.warning("Received signal %d, stopping after the current cycle", signum)
            self.interrupted = True

        self._previous_handlers = {
            signum: signal.signal(signum, signal_handler)
            for signum in (signal.SIGINT, signal.SIGTERM)
        }

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            # None means the handler was not installed from Python
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        self._previous_handlers = {}

    def _bound_reached(self, cycles: int, started: float) -> bool:
        if self.max_cycles is not None and cycles >= self.max_cycles:
            return True
        if self.duration_seconds is not None and self.clock() - started >= self.duration_seconds:
            return True
        return False

    def run(self) -> RunSummary:
        started_at = datetime.now(timezone.utc)
        started = self.clock()
        cycles = hits = saves = 0
        status: RunStatus = "completed"
        error: str | None = None

        logger.info(
            "Starting soak run (seed=%d, max_cycles=%s, duration=%s)",
            self.keys.seed,
            self.max_cycles,
            self.duration_seconds,
        )

        pbar = tqdm(
            total=self.max_cycles,
            desc="Cycles",
            unit="cycle",
            disable=not self.show_progress,
        )
        try:
            while not self._bound_reached(cycles, started):
                if self.interrupted:
                    status = "interrupted"
                    break

                key = self.keys.next_key()
                try:
                    found = self.repository.lookup(key)
                except StorageError as exc:
                    logger.error("Failed to lookup hash %s: %s", key, exc)
                    status, error = "failed", str(exc)
                    break

                if found:
                    hits += 1
                if not found or self.refresh_existing:
                    try:
                        self.repository.save(key, key + self.filename_suffix)
                    except StorageError as exc:
                        logger.error("Failed to save hash %s to database: %s", key, exc)
                        status, error = "failed", str(exc)
                        break
                    saves += 1

                cycles += 1
                pbar.update(1)
        finally:
            pbar.close()

        elapsed = max(self.clock() - started, 0.0)
        rows = self._final_row_count()

        summary = RunSummary(
            status=status,
            cycles=cycles,
            hits=hits,
            saves=saves,
            rows=rows,
            elapsed_seconds=elapsed,
            seed=self.keys.seed,
            error=error,
            started_at=started_at,
        )
        logger.info(
            "Run %s after %d cycles in %s (rows=%s)",
            summary.status,
            summary.cycles,
            _format_time(summary.elapsed_seconds),
            rows,
        )
        return summary

    def _final_row_count(self) -> int | None:
        try:
            return self.repository.count()
        except StorageError as exc:
            logger.error("Could not read final row count: %s", exc)
            return None


def format_summary(summary: RunSummary) -> str:
    rows = "unknown" if summary.rows is None else str(summary.rows)
    lines = [
        f"Status:   {summary.status}",
        f"Cycles:   {summary.cycles} ({summary.cycles_per_second():.1f}/s)",
        f"Hits:     {summary.hits}",
        f"Saves:    {summary.saves}",
        f"Rows:     {rows}",
        f"Elapsed:  {_format_time(summary.elapsed_seconds)}",
        f"Seed:     {summary.seed}",
    ]
    if summary.error:
        lines.append(f"Error:    {summary.error}")
    return "\n".join(lines)


def write_summary(summary: RunSummary, path: str | Path) -> None:
    """Append *summary* as one JSON line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(summary.to_json() + "\n")
