"""Configuration package exports."""

from .loader import HOME_ENV_VAR, ConfigLocator, ConfigRepository
from .models import (
    BackoffStrategy,
    BrowserConfig,
    CrawlConfig,
    OutputConfig,
    ProxyConfig,
    ProxyCredentials,
    RetryPolicyConfig,
)

__all__ = [
    "BackoffStrategy",
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "CrawlConfig",
    "HOME_ENV_VAR",
    "OutputConfig",
    "ProxyConfig",
    "ProxyCredentials",
    "RetryPolicyConfig",
]
