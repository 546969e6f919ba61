from disclosure_downloader.models.download import (
    DownloadOutcome,
    DownloadReport,
    FetchResult,
    FetchStatus,
    RecordOutcome,
)
from disclosure_downloader.models.record import FilingType, Record, StorageKey

__all__ = [
    "DownloadOutcome",
    "DownloadReport",
    "FetchResult",
    "FetchStatus",
    "FilingType",
    "Record",
    "RecordOutcome",
    "StorageKey",
]
