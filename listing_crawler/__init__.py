"""Listing-Crawler: proxy-rotating, deduplicating search result crawler."""

__version__ = "0.1.0"
