"""Crawl scheduler wiring proxy rotation, retrying fetches and the record pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Callable, Iterator, Sequence
from urllib.parse import quote_plus

import structlog

from .config import ConfigLocator, CrawlConfig
from .engine import (
    BrowserSessionFactory,
    CrawlTask,
    DedupBatchPipeline,
    PageFetcher,
    RetryExecutor,
    Session,
)
from .engine.exporter import BaseSink, FileSink
from .engine.records import ProxyNode
from .errors import AuthError, ProxyError, ProxyUnavailableError, SinkWriteError
from .infra import ProxySessionManager
from .logging_conf import configure_logging, keyword_logger
from .ui import ProgressReporter


class CrawlState(str, Enum):
    IDLE = "idle"
    ROTATING_PROXY = "rotating_proxy"
    FETCHING_PAGE = "fetching_page"
    FLUSHING = "flushing"
    DONE = "done"


class KeywordStatus(str, Enum):
    COMPLETED = "completed"
    PROXY_UNAVAILABLE = "proxy_unavailable"
    SINK_FAILED = "sink_failed"


@dataclass
class KeywordResult:
    """Counters for one keyword's run."""

    keyword: str
    status: KeywordStatus = KeywordStatus.COMPLETED
    pages_fetched: int = 0
    pages_dropped: int = 0
    pages_skipped: int = 0
    records_received: int = 0
    records_saved: int = 0
    duplicates_dropped: int = 0
    rotations: int = 0
    error: str | None = None
    output_path: Path | None = None


@dataclass
class CrawlSummary:
    results: list[KeywordResult] = field(default_factory=list)

    @property
    def records_saved(self) -> int:
        return sum(result.records_saved for result in self.results)

    @property
    def pages_fetched(self) -> int:
        return sum(result.pages_fetched for result in self.results)

    @property
    def pages_dropped(self) -> int:
        return sum(result.pages_dropped for result in self.results)

    @property
    def sink_failures(self) -> int:
        return sum(1 for result in self.results if result.status is KeywordStatus.SINK_FAILED)

    @property
    def aborted(self) -> list[KeywordResult]:
        return [result for result in self.results if result.status is not KeywordStatus.COMPLETED]

    def as_dict(self) -> dict[str, int]:
        return {
            "keywords": len(self.results),
            "pages_fetched": self.pages_fetched,
            "pages_dropped": self.pages_dropped,
            "records_saved": self.records_saved,
            "keywords_aborted": len(self.aborted),
        }


class CrawlScheduler:
    """Walk the keyword × page grid one task at a time.

    Per keyword: a fresh dedup pipeline is opened, the proxy session is
    replaced every ``rotation_cadence`` pages, each page goes through the retry
    executor, and the pipeline is closed once the pages run out. The active
    session is a local of the keyword loop and is handed to the fetcher
    explicitly.
    """

    def __init__(
        self,
        config: CrawlConfig,
        fetcher: PageFetcher,
        session_factory: BrowserSessionFactory,
        proxy_manager: ProxySessionManager | None = None,
        sink_factory: Callable[[str], BaseSink] | None = None,
        retry_executor: RetryExecutor | None = None,
        progress: ProgressReporter | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger_factory: Callable[[str], structlog.BoundLogger] = keyword_logger,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.session_factory = session_factory
        self.proxy_manager = proxy_manager
        self.sink_factory = sink_factory or self._default_sink
        self.retry_executor = retry_executor or RetryExecutor(config.retry, sleep=sleep)
        self.progress = progress or ProgressReporter(enabled=False)
        self._sleep = sleep
        self._logger_factory = logger_factory
        self.logger = configure_logging().bind(component="scheduler")
        self.state = CrawlState.IDLE

    # ------------------------------------------------------------------
    def run(
        self,
        keywords: Sequence[str] | None = None,
        pages_per_keyword: int | None = None,
        rotation_cadence: int | None = None,
    ) -> CrawlSummary:
        keywords = list(keywords if keywords is not None else self.config.keywords)
        pages = self.config.pages_per_keyword if pages_per_keyword is None else pages_per_keyword
        cadence = self.config.proxy.rotation_cadence if rotation_cadence is None else rotation_cadence
        if pages < 1:
            raise ValueError("pages_per_keyword must be >= 1")
        if cadence < 1:
            raise ValueError("rotation_cadence must be >= 1")

        if self.proxy_manager is not None and not self.proxy_manager.authenticated:
            self.proxy_manager.authenticate()

        summary = CrawlSummary()
        self.progress.start(total=len(keywords) * pages)
        try:
            for keyword in keywords:
                self.progress.set_label(keyword)
                summary.results.append(self.run_keyword(keyword, pages, cadence))
        finally:
            self.progress.close()
            self.state = CrawlState.DONE
        self.logger.info("crawl_summary", **summary.as_dict())
        return summary

    def run_keyword(self, keyword: str, pages: int, cadence: int) -> KeywordResult:
        log = self._logger_factory(keyword)
        result = KeywordResult(keyword=keyword)
        try:
            sink = self._open_sink(keyword)
        except SinkWriteError as exc:
            result.status = KeywordStatus.SINK_FAILED
            result.error = str(exc)
            result.pages_skipped = pages
            log.error("keyword_aborted", reason="sink_open_failed", error=str(exc))
            self.progress.skip(pages)
            if self.config.abort_on_sink_error:
                raise
            return result
        result.output_path = getattr(sink, "path", None)
        pipeline = DedupBatchPipeline(sink, self.config.output.queue_limit, logger=log)
        session: Session | None = None
        log.info("keyword_started", pages=pages, rotation_cadence=cadence)
        try:
            for task in self.tasks([keyword], pages):
                if task.page_number % cadence == 0:
                    self.state = CrawlState.ROTATING_PROXY
                    if session is not None:
                        self._close_session(session, log)
                        session = None
                    try:
                        session = self._open_session(log)
                    except ProxyUnavailableError as exc:
                        result.status = KeywordStatus.PROXY_UNAVAILABLE
                        result.error = str(exc)
                        log.error(
                            "keyword_aborted",
                            reason="proxy_unavailable",
                            page=task.page_number,
                            error=str(exc),
                        )
                        break
                    result.rotations += 1

                self.state = CrawlState.FETCHING_PAGE
                url = self.search_url(keyword, task.page_number)
                outcome = self.retry_executor.run(
                    partial(self.fetcher.fetch, url, session, self.config.browser.timeout_ms),
                    label=url,
                )
                if outcome.dropped:
                    result.pages_dropped += 1
                else:
                    result.pages_fetched += 1
                result.records_received += len(outcome.value)
                pipeline.add_many(outcome.value)
                self.progress.advance(
                    records=len(outcome.value), dropped=outcome.dropped, current_url=url
                )
                self._sleep(self.config.page_delay)

            self.state = CrawlState.FLUSHING
            pipeline.close()
            log.info(
                "records_saved",
                path=str(result.output_path) if result.output_path else None,
                saved=pipeline.saved,
            )
        except SinkWriteError as exc:
            result.status = KeywordStatus.SINK_FAILED
            result.error = str(exc)
            log.error("keyword_aborted", reason="sink_write_failed", error=str(exc))
            if self.config.abort_on_sink_error:
                raise
        finally:
            if session is not None:
                self._close_session(session, log)
            if not pipeline.closed:
                pipeline.release()
            result.records_saved = pipeline.saved
            result.duplicates_dropped = pipeline.duplicates
            done = result.pages_fetched + result.pages_dropped
            result.pages_skipped = pages - done
            self.progress.skip(result.pages_skipped)
            log.info(
                "keyword_finished",
                status=result.status.value,
                pages_fetched=result.pages_fetched,
                pages_dropped=result.pages_dropped,
                pages_skipped=result.pages_skipped,
                records_saved=result.records_saved,
                duplicates=result.duplicates_dropped,
            )
        return result

    # ------------------------------------------------------------------
    @staticmethod
    def tasks(keywords: Sequence[str], pages_per_keyword: int) -> Iterator[CrawlTask]:
        for keyword in keywords:
            for page_number in range(pages_per_keyword):
                yield CrawlTask(keyword=keyword, page_number=page_number)

    def search_url(self, keyword: str, page_number: int) -> str:
        return self.config.search_url.format(
            keyword=quote_plus(" ".join(keyword.split())),
            location=quote_plus(self.config.location),
            offset=page_number * self.config.results_per_page,
        )

    def _open_session(self, log: structlog.BoundLogger) -> Session:
        node = self._select_node(log) if self.proxy_manager is not None else None
        session = self.session_factory.open(node)
        log.info(
            "proxy_rotated",
            hostname=node.hostname if node else None,
            latency_ms=round(node.latency, 1) if node else None,
        )
        return session

    def _select_node(self, log: structlog.BoundLogger) -> ProxyNode:
        attempts = self.config.proxy.rotation_attempts
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self.proxy_manager.select_node()
            except AuthError as exc:
                last_error = exc
                log.warning("proxy_session_expired", attempt=attempt, error=str(exc))
                try:
                    self.proxy_manager.authenticate()
                except AuthError as auth_exc:
                    last_error = auth_exc
            except ProxyError as exc:
                last_error = exc
                log.warning("rotation_failed", attempt=attempt, error=str(exc))
            if attempt < attempts:
                self._sleep(self.config.retry.delay_for(attempt))
        raise ProxyUnavailableError(
            f"No proxy node after {attempts} attempts: {last_error}"
        ) from last_error

    def _open_sink(self, keyword: str) -> BaseSink:
        try:
            return self.sink_factory(keyword)
        except OSError as exc:
            raise SinkWriteError(f"Cannot open output for {keyword!r}: {exc}") from exc

    @staticmethod
    def _close_session(session: Session, log: structlog.BoundLogger) -> None:
        try:
            session.close()
        except Exception as exc:  # noqa: BLE001
            log.warning("session_close_failed", error=str(exc))

    def _default_sink(self, keyword: str) -> BaseSink:
        output_dir = self.config.output.resolved_directory(ConfigLocator().project_root)
        return FileSink(output_dir, keyword, self.config.output.format)


__all__ = [
    "CrawlScheduler",
    "CrawlState",
    "CrawlSummary",
    "KeywordResult",
    "KeywordStatus",
]
