"""
Batch migration orchestrator

Drives the store-side hybrid migration (raw survey rows -> normalized table)
one fixed-size batch at a time:

    IDLE --start/resume--> RUNNING --> COMPLETED
                              |  \\--> FAILED
                              \\--stop--> IDLE

The resume point is always the ``next_offset`` the store reports, re-read
before every batch; the orchestrator never advances an offset on its own.
Failed batches are not retried in place. Calling ``resume()`` re-reads the
store's offset and continues from there.
"""

import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from loguru import logger

DEFAULT_BATCH_SIZE = 50
DEFAULT_INTER_BATCH_DELAY = 0.2
DEFAULT_PROCESSED_MARKER = "registros procesados"


class MigrationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class MigrationProgress:
    """Migration progress as reported by the store."""

    total_persons_to_process: int = 0
    processed_persons: int = 0
    progress_percentage: float = 0.0
    next_offset: int = 0
    estimated_remaining_batches: int = 0

    @classmethod
    def from_response(cls, data: Optional[Mapping[str, Any]]) -> "MigrationProgress":
        """Parse the progress payload, flat or nested under ``migration_stats``."""
        if not data:
            raise ValueError("Empty migration progress response")
        stats: Mapping[str, Any] = data.get("migration_stats") or data
        next_offset = stats.get("next_offset", data.get("next_offset"))
        processed = _as_int(stats.get("processed_persons"))
        return cls(
            total_persons_to_process=_as_int(stats.get("total_persons_to_process")),
            processed_persons=processed,
            progress_percentage=_as_float(stats.get("progress_percentage")),
            next_offset=_as_int(next_offset) if next_offset is not None else processed,
            estimated_remaining_batches=_as_int(stats.get("estimated_remaining_batches")),
        )


class MigrationStore(Protocol):
    def clear_destination(self) -> Any: ...

    def get_migration_progress(self) -> MigrationProgress: ...

    def migrate_batch(self, batch_size: int, offset: int) -> Any: ...


@dataclass
class BatchResult:
    offset: int
    processed_count: int
    elapsed_seconds: float
    message: str


@dataclass
class MigrationStatus:
    state: MigrationState = MigrationState.IDLE
    progress: Optional[MigrationProgress] = None
    percentage: float = 0.0
    batches_completed: int = 0
    message: str = ""
    error: Optional[str] = None
    batch_results: List[BatchResult] = field(default_factory=list)


def parse_processed_count(result: Any, marker: str = DEFAULT_PROCESSED_MARKER) -> Optional[int]:
    """
    Extract the processed record count from a batch result.

    Accepts a structured ``{"processed_count": n}`` payload or the store's
    human-readable message ("✅ Lote completado: 50 registros procesados").

    Returns:
        The count, or None when the result cannot be interpreted
    """
    if isinstance(result, Mapping):
        count = result.get("processed_count")
        if isinstance(count, (int, float)) and not isinstance(count, bool):
            return int(count)
        return None

    if isinstance(result, str):
        match = re.search(rf"(\d+)\s*{re.escape(marker)}", result)
        if match:
            return int(match.group(1))
    return None


class MigrationOrchestrator:
    """
    Runs the store-side batch migration to completion, failure or stop.

    Example:
        orchestrator = MigrationOrchestrator(store, batch_size=50)
        status = orchestrator.start()
        if status.state is MigrationState.FAILED:
            ...
            status = orchestrator.resume()
    """

    def __init__(
        self,
        store: MigrationStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
        processed_marker: str = DEFAULT_PROCESSED_MARKER,
        sleep: Callable[[float], None] = time.sleep,
        on_update: Optional[Callable[[MigrationStatus], None]] = None,
    ):
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.store = store
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.processed_marker = processed_marker
        self._sleep = sleep
        self._on_update = on_update
        self._stop_requested = threading.Event()
        self.status = MigrationStatus()

    @property
    def state(self) -> MigrationState:
        return self.status.state

    def _update(self, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(self.status, key, value)
        if self._on_update is not None:
            self._on_update(self.status)

    def _fail(self, message: str, error: Exception) -> MigrationStatus:
        logger.error(f"❌ {message}: {error}")
        self._update(state=MigrationState.FAILED, message=f"❌ {message}", error=str(error))
        return self.status

    def refresh_progress(self) -> MigrationProgress:
        """Re-read progress from the store."""
        progress = self.store.get_migration_progress()
        self._update(progress=progress, percentage=progress.progress_percentage)
        return progress

    def stop(self) -> None:
        """Request a stop; honored before the next batch starts."""
        logger.info("⏹️ Stop requested; finishing the in-flight batch")
        self._stop_requested.set()

    def reset(self) -> MigrationStatus:
        """Clear the destination table and return to IDLE with progress zeroed."""
        logger.info("🧹 Resetting migration: clearing normalized table")
        try:
            self.store.clear_destination()
        except Exception as e:
            return self._fail("Could not clear normalized table", e)

        self.status = MigrationStatus(message="Table cleared. Ready for a new migration.")
        self._update()
        logger.success("✅ Migration reset")
        return self.status

    def start(self) -> MigrationStatus:
        """Clear the destination table and migrate everything from the beginning."""
        if self.state is MigrationState.RUNNING:
            raise RuntimeError("Migration already running")

        logger.info("🚀 Starting batch migration")
        self._stop_requested.clear()
        self.status = MigrationStatus()
        self._update(state=MigrationState.RUNNING, message="🧹 Clearing normalized table...")

        try:
            self.store.clear_destination()
        except Exception as e:
            return self._fail("Could not clear normalized table", e)
        logger.success("   ✅ Normalized table cleared")

        return self._run()

    def resume(self) -> MigrationStatus:
        """Continue from the store-reported offset without clearing."""
        if self.state is MigrationState.RUNNING:
            raise RuntimeError("Migration already running")

        logger.info("▶️ Resuming batch migration from store offset")
        self._stop_requested.clear()
        self._update(state=MigrationState.RUNNING, error=None, message="Resuming migration...")
        return self._run()

    def _run(self) -> MigrationStatus:
        while True:
            if self._stop_requested.is_set():
                logger.info("⏹️ Migration stopped by user")
                self._update(state=MigrationState.IDLE, message="⏹️ Migration stopped by user")
                return self.status

            try:
                progress = self.refresh_progress()
            except Exception as e:
                return self._fail("Could not read migration progress", e)

            offset = progress.next_offset
            total = progress.total_persons_to_process
            if offset >= total:
                logger.success(f"🎯 Migration complete: {offset:,}/{total:,} persons")
                self._update(
                    state=MigrationState.COMPLETED,
                    percentage=100.0 if total else self.status.percentage,
                    message="🎯 Migration completed successfully",
                )
                return self.status

            last = self.status.batch_results[-1] if self.status.batch_results else None
            if last is not None and last.offset == offset and last.processed_count == 0:
                return self._fail(
                    f"Batch at offset {offset} failed",
                    ValueError("Store reported no progress after an empty batch"),
                )

            batch_number = self.status.batches_completed + 1
            logger.info(f"📦 Batch {batch_number} - offset {offset:,} of {total:,}")
            started = time.time()

            try:
                result = self.store.migrate_batch(self.batch_size, offset)
            except Exception as e:
                return self._fail(f"Batch at offset {offset} failed", e)

            elapsed = time.time() - started
            processed = parse_processed_count(result, self.processed_marker)
            if processed is None:
                return self._fail(
                    f"Batch at offset {offset} failed",
                    ValueError(f"Unexpected response from store: {result!r}"),
                )

            percentage = min((offset + processed) / total * 100, 100.0)
            message = f"✅ Batch {batch_number}: {processed} records processed in {elapsed:.2f}s"
            logger.info(f"   {message}")
            self.status.batch_results.append(
                BatchResult(
                    offset=offset,
                    processed_count=processed,
                    elapsed_seconds=elapsed,
                    message=str(result),
                )
            )
            self._update(
                batches_completed=batch_number,
                percentage=percentage,
                message=message,
            )

            self._sleep(self.inter_batch_delay)


def orchestrator_from_config(store: MigrationStore, config: Any, **kwargs: Any) -> MigrationOrchestrator:
    """Build an orchestrator with the batch policy from a Config."""
    options: Dict[str, Any] = {
        "batch_size": int(config.get("migration.batch_size", DEFAULT_BATCH_SIZE)),
        "inter_batch_delay": float(
            config.get("migration.inter_batch_delay_seconds", DEFAULT_INTER_BATCH_DELAY)
        ),
        "processed_marker": config.get("migration.processed_marker", DEFAULT_PROCESSED_MARKER),
    }
    options.update(kwargs)
    return MigrationOrchestrator(store, **options)
