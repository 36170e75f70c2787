"""
batch_uploader.py - Chunked upload of normalized records

Records go to the store in contiguous fixed-size chunks, strictly one after
another. A rejected chunk is counted as failed and the upload moves on to the
next chunk; nothing is retried. Callers detect partial uploads through
``ProcessingStats.failed``.

Usage:
    uploader = BatchUploader(store, chunk_size=100)
    stats = uploader.upload(records, on_progress=lambda pct: print(f"{pct:.0f}%"))
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set

from loguru import logger

from .data_utils import chunk_records
from .record_builder import NormalizedRecord

DEFAULT_CHUNK_SIZE = 100

ProgressCallback = Callable[[float], None]


class RecordSink(Protocol):
    def upload_records(self, rows: List[Dict[str, Any]]) -> Any: ...


@dataclass
class ProcessingStats:
    total_records: int = 0
    successful: int = 0
    failed: int = 0
    with_category: int = 0
    without_category: int = 0
    processing_time: float = 0.0
    categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRecords": self.total_records,
            "successful": self.successful,
            "failed": self.failed,
            "withCategory": self.with_category,
            "withoutCategory": self.without_category,
            "processingTime": self.processing_time,
            "categories": list(self.categories),
        }


class BatchUploader:
    """Uploads NormalizedRecords to a store in sequential chunks."""

    def __init__(self, store: RecordSink, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.store = store
        self.chunk_size = chunk_size

    def upload(
        self,
        records: Sequence[NormalizedRecord],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingStats:
        """
        Upload all records and return aggregate statistics.

        Args:
            records: Records to upload, in order
            on_progress: Called after each chunk with the cumulative percentage

        Returns:
            ProcessingStats where successful + failed == len(records)
        """
        start_time = time.time()
        total = len(records)
        stats = ProcessingStats(total_records=total)
        categories: Set[str] = set()

        logger.info(f"📤 Uploading {total:,} records in chunks of {self.chunk_size}")

        for chunk_number, chunk in enumerate(chunk_records(records, self.chunk_size), start=1):
            offset = (chunk_number - 1) * self.chunk_size
            created_at = datetime.now(timezone.utc).isoformat()
            rows = [record.to_store_row(created_at) for record in chunk]

            try:
                self.store.upload_records(rows)
            except Exception as e:
                logger.error(f"   ❌ Chunk {chunk_number} ({len(chunk)} records) failed: {e}")
                stats.failed += len(chunk)
            else:
                stats.successful += len(chunk)
                for record in chunk:
                    if record.responses:
                        stats.with_category += 1
                        categories.update(record.responses)
                    else:
                        stats.without_category += 1
                logger.debug(f"   ✅ Chunk {chunk_number}: {len(chunk)} records uploaded")

            if on_progress is not None:
                on_progress(min((offset + self.chunk_size) / total * 100, 100.0))

        stats.processing_time = time.time() - start_time
        stats.categories = sorted(categories)

        if stats.failed:
            logger.warning(
                f"⚠️ Upload finished with failures: {stats.successful:,} ok, {stats.failed:,} failed"
            )
        else:
            logger.success(
                f"✅ Uploaded {stats.successful:,} records in {stats.processing_time:.1f}s"
            )
        return stats
