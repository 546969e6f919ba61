import asyncio
from pathlib import Path

import httpx

from disclosure_downloader.config import DEFAULT_TIMEOUT, DownloaderConfig
from disclosure_downloader.data.index_client import IndexClient
from disclosure_downloader.data.storage import LocalArtifactStore
from disclosure_downloader.download.fetcher import (
    DocumentFetcher,
    build_client,
    classify_status,
)
from disclosure_downloader.models.download import FetchStatus
from disclosure_downloader.models.record import Record

PTR = "https://clerk.test/ptr-pdfs"
FIN = "https://clerk.test/financial-pdfs"
PDF = b"%PDF-1.7\n" + b"0" * 512


def make_record(doc_id: int = 101, filing_type: str = "O") -> Record:
    return Record(
        filing_type=filing_type,
        state_dst="CA12",
        year=2023,
        filing_date="1/1/2023",
        document_id=doc_id,
    )


def fetch(handler, store: LocalArtifactStore, record: Record):
    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = DocumentFetcher(
                client, store, ptr_base_url=PTR, financial_base_url=FIN
            )
            return await fetcher.fetch(record)

    return asyncio.run(_go())


class TestClassifyStatus:
    def test_mapping(self):
        blocked = {403, 429}
        assert classify_status(200, blocked) is FetchStatus.OK
        assert classify_status(204, blocked) is FetchStatus.OK
        assert classify_status(404, blocked) is FetchStatus.NOT_FOUND
        assert classify_status(403, blocked) is FetchStatus.BLOCKED
        assert classify_status(429, blocked) is FetchStatus.BLOCKED
        assert classify_status(500, blocked) is FetchStatus.TRANSIENT
        assert classify_status(410, blocked) is FetchStatus.TRANSIENT
        assert classify_status(403, set()) is FetchStatus.TRANSIENT


class TestTimeouts:
    def test_clients_share_config_default(self) -> None:
        assert DownloaderConfig().timeout == DEFAULT_TIMEOUT

        client = build_client()
        assert client.timeout == httpx.Timeout(DEFAULT_TIMEOUT)
        asyncio.run(client.aclose())

        index = IndexClient()
        assert index.client.timeout == httpx.Timeout(DEFAULT_TIMEOUT)
        index.close()


class TestDocumentFetcher:
    def test_success_writes_file(self, tmp_path: Path) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=PDF)

        store = LocalArtifactStore(tmp_path)
        result = fetch(handler, store, make_record())

        assert result.status is FetchStatus.OK
        assert result.bytes_written == len(PDF)
        assert requested == [f"{FIN}/2023/101.pdf"]
        assert (tmp_path / "CA" / "12" / "2023" / "101.pdf").read_bytes() == PDF

    def test_ptr_url(self, tmp_path: Path) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=PDF)

        fetch(handler, LocalArtifactStore(tmp_path), make_record(filing_type="P"))
        assert requested == [f"{PTR}/2023/101.pdf"]

    def test_not_found(self, tmp_path: Path) -> None:
        store = LocalArtifactStore(tmp_path)
        result = fetch(lambda r: httpx.Response(404), store, make_record())

        assert result.status is FetchStatus.NOT_FOUND
        assert result.status_code == 404
        assert not store.exists(make_record().storage_key())

    def test_server_error_is_transient(self, tmp_path: Path) -> None:
        store = LocalArtifactStore(tmp_path)
        result = fetch(lambda r: httpx.Response(503), store, make_record())

        assert result.status is FetchStatus.TRANSIENT
        assert "503" in result.detail
        assert not any(tmp_path.iterdir())

    def test_forbidden_is_blocked(self, tmp_path: Path) -> None:
        result = fetch(
            lambda r: httpx.Response(403), LocalArtifactStore(tmp_path), make_record()
        )
        assert result.status is FetchStatus.BLOCKED

    def test_network_error_is_transient(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = fetch(handler, LocalArtifactStore(tmp_path), make_record())

        assert result.status is FetchStatus.TRANSIENT
        assert result.status_code is None
        assert "ConnectError" in result.detail

    def test_write_failure_is_persistence(self, tmp_path: Path) -> None:
        (tmp_path / "CA").write_text("not a directory")
        result = fetch(
            lambda r: httpx.Response(200, content=PDF),
            LocalArtifactStore(tmp_path),
            make_record(),
        )
        assert result.status is FetchStatus.PERSISTENCE
