"""Exception hierarchy for index acquisition and document downloads.

Per-record failures (bad jurisdiction codes, disk errors, rotation failures)
are contained inside the download engine. Only the precondition errors,
loading the record list and persisting the final report, abort a run.
"""


class DownloaderError(RuntimeError):
    """Base exception for the disclosure downloader."""


class InvalidRecordError(DownloaderError, ValueError):
    """Raised when a record's jurisdiction code cannot be decomposed."""


class PersistenceError(DownloaderError):
    """Raised when a fetched document cannot be written to local storage."""


class IdentityRotationError(DownloaderError):
    """Raised when the network identity rotation command fails."""


class IndexFetchError(DownloaderError):
    """Raised when a yearly index archive cannot be fetched or unpacked."""


class RecordListError(DownloaderError):
    """Raised when the record list cannot be loaded."""


class ReportWriteError(DownloaderError):
    """Raised when the download report cannot be persisted."""
