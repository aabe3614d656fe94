"""Exception taxonomy shared by the crawl engine."""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for every error raised by Listing-Crawler."""


# ----------------------------------------------------------------------
# Fetch failures: retryable, absorbed by the retry executor
# ----------------------------------------------------------------------
class FetchError(CrawlerError):
    """A single page fetch or extraction attempt failed."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """Navigation failed or the target answered with an error status."""


class FetchTimeoutError(FetchError):
    """The page did not load within the configured timeout."""


class ExtractionError(FetchError):
    """The page loaded but result cards could not be turned into records."""


# ----------------------------------------------------------------------
# Proxy failures
# ----------------------------------------------------------------------
class ProxyError(CrawlerError):
    """Base class for proxy broker and rotation failures."""


class AuthError(ProxyError):
    """Broker rejected the credentials or could not be reached."""


class NoAvailableNodeError(ProxyError):
    """No probed node satisfied the region and latency constraints."""


class ProxyUnavailableError(ProxyError):
    """Rotation gave up after exhausting its node selection attempts."""


# ----------------------------------------------------------------------
# Persistence failures
# ----------------------------------------------------------------------
class SinkWriteError(CrawlerError):
    """Writing a batch to the persistence sink failed."""


__all__ = [
    "AuthError",
    "CrawlerError",
    "ExtractionError",
    "FetchError",
    "FetchTimeoutError",
    "NetworkError",
    "NoAvailableNodeError",
    "ProxyError",
    "ProxyUnavailableError",
    "SinkWriteError",
]
