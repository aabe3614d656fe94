"""Engine components orchestrating fetch → extract → dedup → persist."""

from .fetcher import BrowserSession, BrowserSessionFactory, PageFetcher, Session
from .parser import ResultCardExtractor
from .pipeline import DedupBatchPipeline
from .records import CrawlTask, ProxyNode, Record
from .retry import RetryExecutor, RetryOutcome

__all__ = [
    "BrowserSession",
    "BrowserSessionFactory",
    "CrawlTask",
    "DedupBatchPipeline",
    "PageFetcher",
    "ProxyNode",
    "Record",
    "ResultCardExtractor",
    "RetryExecutor",
    "RetryOutcome",
    "Session",
]
