"""Engine components: fetch → parse inside worker lanes hosted by a pool."""

from .backoff import PatienceBudget
from .fetcher import BrowserPageFetcher, HttpPageFetcher, PageFetcher, build_fetcher
from .parser import Record, RecordParser, TransactionParser
from .pool import WorkerPool
from .worker import Worker

__all__ = [
    "BrowserPageFetcher",
    "HttpPageFetcher",
    "PageFetcher",
    "PatienceBudget",
    "Record",
    "RecordParser",
    "TransactionParser",
    "Worker",
    "WorkerPool",
    "build_fetcher",
]
