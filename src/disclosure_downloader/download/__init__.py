from disclosure_downloader.download.aggregator import ReportAggregator
from disclosure_downloader.download.dedup import DedupResult, partition_records
from disclosure_downloader.download.fetcher import DocumentFetcher
from disclosure_downloader.download.pool import DownloadPool, PoolProgress
from disclosure_downloader.download.retry import (
    RetryController,
    RetryPolicy,
    RetryState,
)

__all__ = [
    "DedupResult",
    "DocumentFetcher",
    "DownloadPool",
    "PoolProgress",
    "ReportAggregator",
    "RetryController",
    "RetryPolicy",
    "RetryState",
    "partition_records",
]
