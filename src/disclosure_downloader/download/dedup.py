import logging
from collections.abc import Callable, Iterable

from pydantic import BaseModel, Field

from disclosure_downloader.errors import InvalidRecordError
from disclosure_downloader.models.record import Record, StorageKey

logger = logging.getLogger(__name__)


class DedupResult(BaseModel):
    to_fetch: list[Record] = Field(default_factory=list)
    already_present: list[Record] = Field(default_factory=list)
    invalid: list[Record] = Field(default_factory=list)


def partition_records(
    records: Iterable[Record],
    exists: Callable[[StorageKey], bool],
) -> DedupResult:
    """Split records into those still to fetch and those already on disk.

    Records with a malformed jurisdiction code land in neither partition.
    A storage key seen earlier in the same list is skipped so each key is
    fetched at most once.
    """
    result = DedupResult()
    seen: set[StorageKey] = set()

    for record in records:
        try:
            key = record.storage_key()
        except InvalidRecordError as e:
            logger.warning("Skipping invalid record: %s", e)
            result.invalid.append(record)
            continue

        if key in seen:
            logger.debug("Duplicate storage key %s, skipping", key)
            continue
        seen.add(key)

        if exists(key):
            result.already_present.append(record)
        else:
            result.to_fetch.append(record)

    logger.info(
        "%d reports to download. %d reports already downloaded. %d invalid.",
        len(result.to_fetch),
        len(result.already_present),
        len(result.invalid),
    )
    return result
