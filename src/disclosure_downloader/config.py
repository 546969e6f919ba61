import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

CLERK_BASE_URL = "https://disclosures-clerk.house.gov/public_disc"
PTR_BASE_URL = f"{CLERK_BASE_URL}/ptr-pdfs"
FINANCIAL_BASE_URL = f"{CLERK_BASE_URL}/financial-pdfs"

DEFAULT_YEARS: list[int] = [2022, 2023, 2024]
DEFAULT_BLOCKED_STATUSES: list[int] = [403, 429]
DEFAULT_TIMEOUT = 30.0
DEFAULT_ROTATION_TIMEOUT = 120.0

# env var suffix → (field name, converter)
ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "CONCURRENCY": ("concurrency", int),
    "MAX_ATTEMPTS": ("max_attempts", int),
    "BACKOFF_SECONDS": ("backoff_seconds", float),
    "REPORTS_DIR": ("reports_dir", str),
    "DOCUMENTS_PATH": ("documents_path", str),
    "REPORT_PATH": ("report_path", str),
    "ROTATE_COMMAND": ("rotate_command", str),
    "CONNECT_COMMAND": ("connect_command", str),
}
ENV_PREFIX = "DISCLOSURES_"


class DownloaderConfig(BaseModel):
    documents_path: str = "data/documents.yml"
    report_path: str = "data/report.yml"
    reports_dir: str = "data/raw/reports"
    index_dir: str = "data/raw/indexes"
    years: list[int] = Field(default_factory=lambda: DEFAULT_YEARS.copy())

    concurrency: int = Field(default=4, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=5.0, ge=0.0)
    backoff_jitter: float = Field(default=0.0, ge=0.0)
    blocked_statuses: list[int] = Field(
        default_factory=lambda: DEFAULT_BLOCKED_STATUSES.copy()
    )
    blocked_counts_against_budget: bool = True
    max_blocked_attempts: int = Field(default=10, ge=1)
    timeout: float = DEFAULT_TIMEOUT

    rotate_command: str | None = None
    connect_command: str | None = None
    rotation_timeout: float = DEFAULT_ROTATION_TIMEOUT
    rotation_cooldown: float = Field(default=0.0, ge=0.0)

    ptr_base_url: str = PTR_BASE_URL
    financial_base_url: str = FINANCIAL_BASE_URL
    index_base_url: str = FINANCIAL_BASE_URL

    @classmethod
    def from_env(cls, **overrides: object) -> "DownloaderConfig":
        """Build a config from ``DISCLOSURES_*`` env vars (and ``.env``).

        Explicit keyword overrides win over the environment.
        """
        load_dotenv()
        values: dict[str, object] = {}
        for suffix, (field, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(ENV_PREFIX + suffix)
            if raw:
                values[field] = convert(raw)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
