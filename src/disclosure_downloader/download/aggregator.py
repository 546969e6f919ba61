import json
import logging
from collections.abc import Iterable
from pathlib import Path

import yaml

from disclosure_downloader.data.storage import write_atomic
from disclosure_downloader.errors import ReportWriteError
from disclosure_downloader.models.download import (
    DownloadOutcome,
    DownloadReport,
    RecordOutcome,
)

logger = logging.getLogger(__name__)


class ReportAggregator:
    """Collects terminal outcomes in memory and persists them once."""

    def __init__(self) -> None:
        self.report = DownloadReport()

    def add(self, outcome: RecordOutcome) -> None:
        self.report.ids_for(outcome.outcome).append(outcome.document_id)

    def extend(self, outcomes: Iterable[RecordOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def summary(self) -> dict[str, int]:
        return {o.value: len(self.report.ids_for(o)) for o in DownloadOutcome}

    def save(self, path: Path) -> Path:
        """Write the report as YAML, or JSON when ``path`` ends in ``.json``."""
        data = self.report.model_dump()
        if path.suffix == ".json":
            content = json.dumps(data, indent=2)
        else:
            content = yaml.safe_dump(data, sort_keys=False)

        try:
            write_atomic(path, content.encode())
        except OSError as e:
            raise ReportWriteError(f"Could not write report to {path}: {e}") from e

        logger.info("Download report saved to %s", path)
        return path

    def log_summary(self) -> None:
        counts = self.summary()
        logger.info(
            "Download summary: %d successful, %d not found, %d blocked, %d failed",
            counts[DownloadOutcome.SUCCESS.value],
            counts[DownloadOutcome.NOT_FOUND.value],
            counts[DownloadOutcome.BLOCKED.value],
            counts[DownloadOutcome.FAILED.value],
        )
