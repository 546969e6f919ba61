import io
import logging
import xml.etree.ElementTree as ET
import zipfile
from collections.abc import Iterable
from pathlib import Path

import httpx
import yaml
from pydantic import ValidationError

from disclosure_downloader.config import DEFAULT_TIMEOUT, FINANCIAL_BASE_URL
from disclosure_downloader.data.storage import write_atomic
from disclosure_downloader.errors import IndexFetchError, RecordListError
from disclosure_downloader.models.record import Record

logger = logging.getLogger(__name__)

DEFAULT_INDEX_DIR = Path("data/raw/indexes")
MEMBER_TAG = "Member"


class IndexClient:
    """Downloads and parses the yearly ``{year}FD.zip`` disclosure indexes."""

    def __init__(
        self,
        base_url: str = FINANCIAL_BASE_URL,
        index_dir: Path | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.index_dir = Path(index_dir) if index_dir is not None else DEFAULT_INDEX_DIR
        self._timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def archive_url(self, year: int) -> str:
        return f"{self.base_url}/{year}FD.zip"

    def fetch_year(self, year: int) -> Path:
        """Download the year's archive and extract its XML index."""
        url = self.archive_url(year)
        try:
            resp = self.client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise IndexFetchError(f"Could not download {url}: {e}") from e

        try:
            with zipfile.ZipFile(io.BytesIO(resp.content)) as archive:
                for name in archive.namelist():
                    if name.lower().endswith(".xml"):
                        xml_bytes = archive.read(name)
                        break
                else:
                    raise IndexFetchError(f"XML file not found in {url}")
        except zipfile.BadZipFile as e:
            raise IndexFetchError(f"Corrupt archive at {url}: {e}") from e

        xml_path = self.index_dir / f"{year}FD.xml"
        write_atomic(xml_path, xml_bytes)
        logger.info("Downloaded and saved XML for year %d to %s", year, xml_path)
        return xml_path

    def build_index(self, years: Iterable[int]) -> list[Record]:
        """Fetch and parse every year; a failing year is logged and skipped."""
        records: list[Record] = []
        for year in years:
            try:
                xml_path = self.fetch_year(year)
                year_records = parse_index_xml(xml_path)
            except (IndexFetchError, ET.ParseError, OSError) as e:
                logger.error("Failed to build index for year %d: %s", year, e)
                continue
            logger.info("Parsed %d records for year %d", len(year_records), year)
            records.extend(year_records)
        return records


def parse_index_xml(path: Path) -> list[Record]:
    """Parse ``<Member>`` entries; entries that fail validation are skipped."""
    root = ET.parse(path).getroot()
    records: list[Record] = []
    for member in root.iter(MEMBER_TAG):
        values = {}
        for child in member:
            text = (child.text or "").strip()
            if text:
                values[child.tag] = text
        try:
            records.append(Record.model_validate(values))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed index entry %s: %s",
                values.get("DocID", "?"),
                e.errors()[0]["msg"],
            )
    return records


def save_records(records: Iterable[Record], path: Path) -> Path:
    data = [r.model_dump(by_alias=True) for r in records]
    write_atomic(path, yaml.safe_dump(data, sort_keys=False).encode())
    logger.info("Saved %d records to %s", len(data), path)
    return path


def load_records(path: Path) -> list[Record]:
    logger.info("Loading records from %s", path)
    try:
        raw = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise RecordListError(f"Could not read record list {path}: {e}") from e

    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise RecordListError(f"Record list {path} is not a YAML sequence")

    try:
        records = [Record.model_validate(item) for item in raw]
    except ValidationError as e:
        raise RecordListError(f"Invalid entry in {path}: {e}") from e

    logger.info("Loaded %d records from %s", len(records), path)
    return records
