import asyncio
import logging
from collections.abc import Callable, Sequence

from pydantic import BaseModel, Field

from disclosure_downloader.download.retry import RetryController
from disclosure_downloader.models.download import DownloadOutcome, RecordOutcome
from disclosure_downloader.models.record import Record

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


class PoolProgress(BaseModel):
    """Completed/total counters, updated as each record finishes."""

    total: int = 0
    completed: int = 0
    by_outcome: dict[str, int] = Field(default_factory=dict)

    def advance(self, outcome: RecordOutcome) -> None:
        self.completed += 1
        key = outcome.outcome.value
        self.by_outcome[key] = self.by_outcome.get(key, 0) + 1


class PoolResult(BaseModel):
    outcomes: list[RecordOutcome] = Field(default_factory=list)
    skipped: list[Record] = Field(default_factory=list)


ProgressCallback = Callable[[RecordOutcome, PoolProgress], None]


class DownloadPool:
    """Runs the retry controller over many records with bounded concurrency.

    A record's failure, including an unexpected exception, is turned into a
    ``failed`` outcome and never affects the other records.
    """

    def __init__(
        self,
        controller: RetryController,
        concurrency: int = DEFAULT_CONCURRENCY,
        *,
        on_progress: ProgressCallback | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.controller = controller
        self.concurrency = concurrency
        self.on_progress = on_progress
        self.stop_event = stop_event or asyncio.Event()
        self.progress = PoolProgress()

    def cancel(self) -> None:
        """Stop starting new records; in-flight attempts run to completion."""
        if not self.stop_event.is_set():
            logger.warning("Cancellation requested, finishing in-flight downloads")
        self.stop_event.set()

    async def run(self, records: Sequence[Record]) -> PoolResult:
        self.progress = PoolProgress(total=len(records))
        result = PoolResult()
        if not records:
            return result

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded_download(record: Record) -> None:
            async with semaphore:
                if self.stop_event.is_set():
                    result.skipped.append(record)
                    return
                outcome = await self._run_one(record)
            result.outcomes.append(outcome)
            self.progress.advance(outcome)
            if self.on_progress is not None:
                self.on_progress(outcome, self.progress)

        logger.info(
            "Downloading %d documents with concurrency %d",
            len(records),
            self.concurrency,
        )
        await asyncio.gather(*(bounded_download(r) for r in records))

        if result.skipped:
            logger.warning(
                "%d documents skipped after cancellation", len(result.skipped)
            )
        return result

    async def _run_one(self, record: Record) -> RecordOutcome:
        try:
            return await self.controller.run(record)
        except Exception as e:
            logger.exception("Unhandled error for document id %d", record.document_id)
            return RecordOutcome(
                document_id=record.document_id,
                outcome=DownloadOutcome.FAILED,
                detail=f"Unexpected error: {e}",
            )
