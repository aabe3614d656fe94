"""Pytest configuration providing shared fixtures and in-memory collaborators."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Sequence

import pytest

from listing_crawler.config import ConfigLocator, ConfigRepository, CrawlConfig
from listing_crawler.engine.exporter import BaseSink
from listing_crawler.engine.records import ProxyNode, Record
from listing_crawler.logging_conf import configure_logging


@pytest.fixture(scope="session", autouse=True)
def _logging(tmp_path_factory: pytest.TempPathFactory) -> None:
    # Handlers must exist before CliRunner swaps the standard streams
    os.environ.setdefault("LISTING_CRAWLER_HOME", str(tmp_path_factory.mktemp("home")))
    configure_logging()


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LISTING_CRAWLER_HOME", str(tmp_path))
    monkeypatch.delenv("LISTING_CRAWLER_PROXY_USER", raising=False)
    monkeypatch.delenv("LISTING_CRAWLER_PROXY_PASS", raising=False)


class MemorySink(BaseSink):
    """Sink recording every batch it receives."""

    def __init__(self, fail: bool = False) -> None:
        self.batches: list[list[Record]] = []
        self.closed_count = 0
        self.fail = fail

    def append(self, records: Sequence[Record]) -> None:
        if self.fail:
            raise OSError("disk full")
        self.batches.append(list(records))

    def close(self) -> None:
        self.closed_count += 1

    @property
    def rows(self) -> list[Record]:
        return [record for batch in self.batches for record in batch]


class FakeSession:
    def __init__(self, node: ProxyNode | None) -> None:
        self.node = node
        self.closed = False

    @contextmanager
    def isolated_page(self) -> Iterator[Any]:
        yield object()

    def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    def __init__(self) -> None:
        self.opened: list[FakeSession] = []

    def open(self, node: ProxyNode | None) -> FakeSession:
        session = FakeSession(node)
        self.opened.append(session)
        return session


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def make_records() -> Callable[..., list[Record]]:
    def _builder(names: Iterable[str], **fields: Any) -> list[Record]:
        return [Record(name=name, url=f"https://example.com/biz/{name}", **fields) for name in names]

    return _builder


@pytest.fixture
def sample_crawl_config() -> Callable[..., CrawlConfig]:
    def _builder(**overrides: Any) -> CrawlConfig:
        base: dict[str, Any] = {
            "keywords": ["tacos"],
            "pages_per_keyword": 2,
            "page_delay": 0.0,
            "proxy": {"enabled": False},
            "retry": {"max_attempts": 3, "delay": 0.0},
            "browser": {"settle_ms": 0},
            "output": {"queue_limit": 50},
        }
        base.update(overrides)
        return CrawlConfig.model_validate(base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


@pytest.fixture
def failing_sink() -> MemorySink:
    return MemorySink(fail=True)
