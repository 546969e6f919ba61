from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from disclosure_downloader.errors import InvalidRecordError

DOCUMENT_SUFFIX = ".pdf"


class FilingType(StrEnum):
    """Filing type tags used by the House Clerk index."""

    PERIODIC_TRANSACTION = "P"
    ANNUAL = "O"
    AMENDMENT = "A"
    CANDIDATE = "C"
    EXTENSION = "X"
    TERMINATION = "T"


class StorageKey(BaseModel):
    """Deterministic on-disk location of a record's document."""

    model_config = ConfigDict(frozen=True)

    region: str
    district: str
    year: int
    document_id: int

    @property
    def relative_path(self) -> Path:
        return (
            Path(self.region)
            / self.district
            / str(self.year)
            / f"{self.document_id}{DOCUMENT_SUFFIX}"
        )

    def __str__(self) -> str:
        return self.relative_path.as_posix()


class Record(BaseModel):
    """One filing from the disclosure index.

    Field aliases match the index XML / ``documents.yml`` keys.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prefix: str | None = Field(default=None, alias="Prefix")
    last: str | None = Field(default=None, alias="Last")
    first: str | None = Field(default=None, alias="First")
    suffix: str | None = Field(default=None, alias="Suffix")
    filing_type: str = Field(alias="FilingType")
    state_dst: str | None = Field(default=None, alias="StateDst")
    year: int = Field(alias="Year")
    filing_date: str = Field(default="", alias="FilingDate")
    document_id: int = Field(ge=0, alias="DocID")

    @property
    def display_name(self) -> str:
        parts = [self.prefix, self.first, self.last, self.suffix]
        return " ".join(p for p in parts if p)

    @property
    def is_periodic_transaction(self) -> bool:
        return self.filing_type == FilingType.PERIODIC_TRANSACTION

    def storage_key(self) -> StorageKey:
        """Split ``StateDst`` (e.g. ``CA12``) into region and padded district.

        Raises InvalidRecordError when the code is missing, shorter than three
        characters or has a non-numeric district suffix.
        """
        code = (self.state_dst or "").strip()
        if len(code) < 3:
            raise InvalidRecordError(
                f"Jurisdiction code too short for document {self.document_id}: "
                f"{self.state_dst!r}"
            )
        region, district = code[:2], code[2:]
        if not (district.isascii() and district.isdigit()):
            raise InvalidRecordError(
                f"Non-numeric district for document {self.document_id}: "
                f"{self.state_dst!r}"
            )
        return StorageKey(
            region=region,
            district=f"{int(district):02d}",
            year=self.year,
            document_id=self.document_id,
        )

    def document_url(self, ptr_base_url: str, financial_base_url: str) -> str:
        base = ptr_base_url if self.is_periodic_transaction else financial_base_url
        return f"{base.rstrip('/')}/{self.year}/{self.document_id}{DOCUMENT_SUFFIX}"
