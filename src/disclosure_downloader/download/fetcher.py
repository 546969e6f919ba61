import logging
from collections.abc import Iterable

import httpx

from disclosure_downloader.config import (
    DEFAULT_BLOCKED_STATUSES,
    DEFAULT_TIMEOUT,
    FINANCIAL_BASE_URL,
    PTR_BASE_URL,
)
from disclosure_downloader.data.storage import LocalArtifactStore
from disclosure_downloader.errors import InvalidRecordError, PersistenceError
from disclosure_downloader.models.download import FetchResult, FetchStatus
from disclosure_downloader.models.record import Record

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/pdf,*/*;q=0.8",
}


def build_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        headers=DEFAULT_HEADERS,
        follow_redirects=True,
    )


def classify_status(status_code: int, blocked_statuses: Iterable[int]) -> FetchStatus:
    if 200 <= status_code < 300:
        return FetchStatus.OK
    if status_code == 404:
        return FetchStatus.NOT_FOUND
    if status_code in blocked_statuses:
        return FetchStatus.BLOCKED
    return FetchStatus.TRANSIENT


class DocumentFetcher:
    """Performs one GET per call and stores the document on success."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: LocalArtifactStore,
        *,
        ptr_base_url: str = PTR_BASE_URL,
        financial_base_url: str = FINANCIAL_BASE_URL,
        blocked_statuses: Iterable[int] = DEFAULT_BLOCKED_STATUSES,
    ) -> None:
        self.client = client
        self.store = store
        self.ptr_base_url = ptr_base_url
        self.financial_base_url = financial_base_url
        self.blocked_statuses = frozenset(blocked_statuses)

    def url_for(self, record: Record) -> str:
        return record.document_url(self.ptr_base_url, self.financial_base_url)

    async def fetch(self, record: Record) -> FetchResult:
        url = self.url_for(record)
        logger.debug(
            "Attempting to download PDF for document id %d from %s",
            record.document_id,
            url,
        )

        try:
            resp = await self.client.get(url)
        except httpx.HTTPError as e:
            detail = f"{type(e).__name__}: {e}"
            logger.debug(
                "Request error for document id %d: %s", record.document_id, detail
            )
            return FetchResult(status=FetchStatus.TRANSIENT, detail=detail)

        status = classify_status(resp.status_code, self.blocked_statuses)
        if status is not FetchStatus.OK:
            logger.debug(
                "HTTP %d for document id %d", resp.status_code, record.document_id
            )
            return FetchResult(
                status=status,
                status_code=resp.status_code,
                detail=f"HTTP error: {resp.status_code}",
            )

        try:
            path = self.store.write(record.storage_key(), resp.content)
        except (PersistenceError, InvalidRecordError) as e:
            logger.error("Could not store document id %d: %s", record.document_id, e)
            return FetchResult(
                status=FetchStatus.PERSISTENCE,
                status_code=resp.status_code,
                detail=str(e),
            )

        logger.debug("Saved document id %d to %s", record.document_id, path)
        return FetchResult(
            status=FetchStatus.OK,
            status_code=resp.status_code,
            bytes_written=len(resp.content),
        )
