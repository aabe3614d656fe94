"""Pydantic models used across the Listing-Crawler configuration flow."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

PROXY_USER_ENV = "LISTING_CRAWLER_PROXY_USER"
PROXY_PASS_ENV = "LISTING_CRAWLER_PROXY_PASS"

DEFAULT_SEARCH_URL = (
    "https://www.yelp.com/search?find_desc={keyword}&find_loc={location}&start={offset}"
)


class BackoffStrategy(str, Enum):
    """Delay growth between retry attempts."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class ProxyCredentials(BaseModel):
    """Broker login; empty values are filled from the environment."""

    username: str = ""
    password: str = ""

    @model_validator(mode="after")
    def _apply_environment(self) -> "ProxyCredentials":
        if not self.username:
            self.username = os.environ.get(PROXY_USER_ENV, "")
        if not self.password:
            self.password = os.environ.get(PROXY_PASS_ENV, "")
        return self


class ProxyConfig(BaseModel):
    """Proxy broker access and rotation constraints."""

    enabled: bool = True
    broker_url: str = "https://broker.example.net/api"
    credentials: ProxyCredentials = Field(default_factory=ProxyCredentials)
    country: str = "US"
    max_latency_ms: float = 400.0
    sample_size: int = 5
    rotation_cadence: int = 2
    rotation_attempts: int = 3
    port: int = 443
    request_timeout: float = 10.0

    @field_validator("country", mode="before")
    @classmethod
    def _upper_country(cls, value: Any) -> str:
        return str(value or "").strip().upper()

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ProxyConfig":
        if self.rotation_cadence < 1:
            raise ValueError("rotation_cadence must be >= 1")
        if self.rotation_attempts < 1:
            raise ValueError("rotation_attempts must be >= 1")
        if self.sample_size < 1:
            raise ValueError("sample_size must be >= 1")
        if self.max_latency_ms <= 0:
            raise ValueError("max_latency_ms must be > 0")
        return self


class RetryPolicyConfig(BaseModel):
    """Bounded retry settings for a single page task."""

    max_attempts: int = 3
    strategy: BackoffStrategy = BackoffStrategy.FIXED
    delay: float = 3.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    # DOM drift is not transient; allow dropping the page on first extraction failure
    retry_extraction_errors: bool = True

    @model_validator(mode="after")
    def _validate_policy(self) -> "RetryPolicyConfig":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be non-negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.max_delay < self.delay:
            raise ValueError("max_delay must be >= delay")
        return self

    def delay_for(self, attempt: int) -> float:
        """Return the wait after the given (1-based) failed attempt."""

        if self.strategy is BackoffStrategy.FIXED:
            return self.delay
        return min(self.delay * (self.multiplier ** max(attempt - 1, 0)), self.max_delay)


class BrowserConfig(BaseModel):
    """Headless renderer settings."""

    headless: bool = True
    timeout_ms: int = 60000
    settle_ms: int = 2000
    card_selector: str = "div[data-testid='serp-ia-card']"

    @model_validator(mode="after")
    def _validate_timings(self) -> "BrowserConfig":
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.settle_ms < 0:
            raise ValueError("settle_ms must be >= 0")
        return self


class OutputConfig(BaseModel):
    """Where and how records are persisted."""

    directory: Path = Field(default=Path("output"))
    format: Literal["csv", "json"] = "csv"
    queue_limit: int = 50

    @field_validator("directory", mode="before")
    @classmethod
    def _coerce_dir(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_limit(self) -> "OutputConfig":
        if self.queue_limit < 1:
            raise ValueError("queue_limit must be >= 1")
        return self

    def resolved_directory(self, base_dir: Path) -> Path:
        """Return output directory relative to the project home."""

        if not self.directory.is_absolute():
            return (base_dir / self.directory).resolve()
        return self.directory


class CrawlConfig(BaseModel):
    """Full, static definition of a crawl run."""

    keywords: list[str]
    location: str = "us"
    pages_per_keyword: int = 5
    results_per_page: int = 10
    search_url: str = DEFAULT_SEARCH_URL
    page_delay: float = 1.5
    abort_on_sink_error: bool = False
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("keywords", mode="before")
    @classmethod
    def _clean_keywords(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise ValueError("keywords expects a list of strings")
        cleaned = [str(item).strip() for item in value if str(item).strip()]
        if not cleaned:
            raise ValueError("keywords cannot be empty")
        return cleaned

    @model_validator(mode="after")
    def _validate_run(self) -> "CrawlConfig":
        if self.pages_per_keyword < 1:
            raise ValueError("pages_per_keyword must be >= 1")
        if self.results_per_page < 1:
            raise ValueError("results_per_page must be >= 1")
        if self.page_delay < 0:
            raise ValueError("page_delay must be non-negative")
        for placeholder in ("{keyword}", "{offset}"):
            if placeholder not in self.search_url:
                raise ValueError(f"search_url must contain {placeholder}")
        return self


__all__ = [
    "BackoffStrategy",
    "BrowserConfig",
    "CrawlConfig",
    "DEFAULT_SEARCH_URL",
    "OutputConfig",
    "PROXY_PASS_ENV",
    "PROXY_USER_ENV",
    "ProxyConfig",
    "ProxyCredentials",
    "RetryPolicyConfig",
]
