from enum import StrEnum

from pydantic import BaseModel, Field


class FetchStatus(StrEnum):
    """Result of a single fetch attempt."""

    OK = "ok"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    BLOCKED = "blocked"
    PERSISTENCE = "persistence"

    @property
    def retryable(self) -> bool:
        return self in (FetchStatus.TRANSIENT, FetchStatus.BLOCKED)


class DownloadOutcome(StrEnum):
    """Terminal classification of one record."""

    SUCCESS = "successful"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    FAILED = "failed"


class FetchResult(BaseModel):
    status: FetchStatus
    status_code: int | None = None
    detail: str = ""
    bytes_written: int = 0


class RecordOutcome(BaseModel):
    document_id: int
    outcome: DownloadOutcome
    attempts: int = 0
    rotations: int = 0
    detail: str = ""


class DownloadReport(BaseModel):
    """Document ids grouped by terminal outcome, in completion order."""

    successful: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    blocked: list[int] = Field(default_factory=list)
    not_found: list[int] = Field(default_factory=list)

    def ids_for(self, outcome: DownloadOutcome) -> list[int]:
        return getattr(self, outcome.value)

    @property
    def total(self) -> int:
        return sum(len(self.ids_for(o)) for o in DownloadOutcome)
