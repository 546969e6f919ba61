"""Index → dedup → bounded download → report."""

import asyncio
import logging
import signal
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

import httpx

from disclosure_downloader.config import DownloaderConfig
from disclosure_downloader.data.index_client import IndexClient, save_records
from disclosure_downloader.data.storage import LocalArtifactStore
from disclosure_downloader.download.aggregator import ReportAggregator
from disclosure_downloader.download.dedup import partition_records
from disclosure_downloader.download.fetcher import DocumentFetcher, build_client
from disclosure_downloader.download.identity import (
    CommandIdentityRotator,
    IdentityRotator,
    NoopIdentityRotator,
    SerializedIdentityRotator,
)
from disclosure_downloader.download.pool import DownloadPool, ProgressCallback
from disclosure_downloader.download.retry import RetryController, RetryPolicy
from disclosure_downloader.errors import IndexFetchError
from disclosure_downloader.models.download import DownloadReport
from disclosure_downloader.models.record import Record

logger = logging.getLogger(__name__)


def build_rotator(config: DownloaderConfig) -> IdentityRotator:
    if not config.rotate_command and not config.connect_command:
        return NoopIdentityRotator()
    inner = CommandIdentityRotator(
        config.rotate_command,
        connect_command=config.connect_command,
        timeout=config.rotation_timeout,
    )
    return SerializedIdentityRotator(inner, cooldown=config.rotation_cooldown)


def build_policy(config: DownloaderConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.max_attempts,
        backoff_seconds=config.backoff_seconds,
        backoff_jitter=config.backoff_jitter,
        blocked_counts_against_budget=config.blocked_counts_against_budget,
        max_blocked_attempts=config.max_blocked_attempts,
    )


def run_index(config: DownloaderConfig, client: httpx.Client | None = None) -> Path:
    """Build the record list for ``config.years`` and save it."""
    index = IndexClient(
        base_url=config.index_base_url,
        index_dir=Path(config.index_dir),
        timeout=config.timeout,
        client=client,
    )
    try:
        records = index.build_index(config.years)
    finally:
        if client is None:
            index.close()
    if not records:
        # Keep whatever record list is already on disk
        raise IndexFetchError(
            f"No index records fetched for years {config.years}, "
            f"leaving {config.documents_path} unchanged"
        )
    return save_records(records, Path(config.documents_path))


@contextmanager
def _cancel_on_sigint(pool: DownloadPool) -> Iterator[None]:
    """Route Ctrl-C to ``pool.cancel`` so a partial report is still written."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, pool.cancel)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        # No signal handlers on this loop/platform or outside the main thread
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def run_download(
    records: Sequence[Record],
    config: DownloaderConfig,
    *,
    client: httpx.AsyncClient | None = None,
    rotator: IdentityRotator | None = None,
    on_progress: ProgressCallback | None = None,
    on_start: Callable[[int], None] | None = None,
    stop_event: asyncio.Event | None = None,
) -> DownloadReport:
    """Download every record not yet on disk and persist the report.

    Setting ``stop_event`` (or SIGINT) stops new attempts; the report still
    covers every record that finished.
    """
    store = LocalArtifactStore(Path(config.reports_dir))
    dedup = partition_records(records, store.exists)
    rotator = rotator or build_rotator(config)

    if on_start is not None:
        on_start(len(dedup.to_fetch))

    aggregator = ReportAggregator()
    stop_event = stop_event or asyncio.Event()
    owns_client = client is None
    http = client or build_client(config.timeout)

    try:
        if dedup.to_fetch:
            try:
                await rotator.connect()
            except Exception as e:
                logger.warning("Identity connect failed, continuing: %s", e)

        fetcher = DocumentFetcher(
            http,
            store,
            ptr_base_url=config.ptr_base_url,
            financial_base_url=config.financial_base_url,
            blocked_statuses=config.blocked_statuses,
        )
        controller = RetryController(
            fetcher, rotator, build_policy(config), stop_event=stop_event
        )
        pool = DownloadPool(
            controller,
            config.concurrency,
            on_progress=on_progress,
            stop_event=stop_event,
        )
        with _cancel_on_sigint(pool):
            result = await pool.run(dedup.to_fetch)
    finally:
        if owns_client:
            await http.aclose()

    aggregator.extend(result.outcomes)
    aggregator.save(Path(config.report_path))
    aggregator.log_summary()
    return aggregator.report
