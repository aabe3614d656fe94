"""Value types flowing through the crawl engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass

RECORD_FIELDS = ("name", "sponsored", "stars", "rank", "review_count", "url")


@dataclass(slots=True)
class Record:
    """One extracted search result destined for storage."""

    name: str
    sponsored: bool = False
    stars: float = 0.0
    rank: int | None = None
    review_count: int = 0
    url: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Record name cannot be empty")

    def as_row(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ProxyNode:
    """Egress node reported by the broker together with its measured latency."""

    hostname: str
    latency: float
    country: str
    port: int = 443

    @property
    def server(self) -> str:
        return f"{self.hostname}:{self.port}"


@dataclass(frozen=True, slots=True)
class CrawlTask:
    keyword: str
    page_number: int


__all__ = ["CrawlTask", "ProxyNode", "RECORD_FIELDS", "Record"]
