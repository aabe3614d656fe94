"""Deduplicating, batching pipeline between extraction and the sink."""

from __future__ import annotations

from typing import Iterable

import structlog

from ..errors import SinkWriteError
from .exporter import BaseSink
from .records import Record

DEFAULT_QUEUE_LIMIT = 50


class DedupBatchPipeline:
    """Suppress duplicate names, buffer records and flush them in batches.

    One instance covers one keyword run: the seen-name set and the buffer live
    exactly as long as the pipeline. The seen set is in-memory and unbounded.
    """

    def __init__(
        self,
        sink: BaseSink,
        queue_limit: int = DEFAULT_QUEUE_LIMIT,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if queue_limit < 1:
            raise ValueError("queue_limit must be >= 1")
        self.sink = sink
        self.queue_limit = queue_limit
        self.logger = logger or structlog.get_logger("listing_crawler.pipeline")
        self._seen: set[str] = set()
        self._buffer: list[Record] = []
        self._sink_released = False
        self.saved = 0
        self.duplicates = 0
        self.flushes = 0

    @property
    def pending(self) -> list[Record]:
        return list(self._buffer)

    @property
    def closed(self) -> bool:
        return self._sink_released

    def add_one(self, record: Record) -> bool:
        """Buffer a record unless its name was already seen; return whether it was kept."""

        if record.name in self._seen:
            self.duplicates += 1
            return False
        self._seen.add(record.name)
        self._buffer.append(record)
        if len(self._buffer) >= self.queue_limit:
            self.flush()
        return True

    def add_many(self, records: Iterable[Record]) -> int:
        kept = 0
        for record in records:
            if self.add_one(record):
                kept += 1
        return kept

    def flush(self) -> int:
        if not self._buffer:
            return 0
        if self._sink_released:
            raise SinkWriteError("Pipeline sink already released")
        batch = list(self._buffer)
        try:
            self.sink.append(batch)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("batch_save_failed", records=len(batch), error=str(exc))
            raise SinkWriteError(f"Failed to write {len(batch)} records: {exc}") from exc
        self._buffer.clear()
        self.saved += len(batch)
        self.flushes += 1
        self.logger.info("batch_saved", records=len(batch), total_saved=self.saved)
        return len(batch)

    def close(self) -> None:
        self.flush()
        if not self._sink_released:
            self.release()
            self.logger.info("pipeline_closed", saved=self.saved, duplicates=self.duplicates)

    def release(self) -> None:
        """Close the sink handle without flushing; pending records stay buffered."""

        if self._sink_released:
            return
        self._sink_released = True
        self.sink.close()


__all__ = ["DEFAULT_QUEUE_LIMIT", "DedupBatchPipeline"]
