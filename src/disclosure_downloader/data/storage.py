import logging
import os
from pathlib import Path

from disclosure_downloader.errors import PersistenceError
from disclosure_downloader.models.record import StorageKey

logger = logging.getLogger(__name__)

DEFAULT_REPORTS_DIR = Path("data/raw/reports")


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a sibling temp file and ``os.replace``.

    A reader never observes a partially written ``path``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


class LocalArtifactStore:
    """Filesystem store laid out as ``{region}/{district}/{year}/{doc_id}.pdf``."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else DEFAULT_REPORTS_DIR

    def path_for(self, key: StorageKey) -> Path:
        return self.root / key.relative_path

    def exists(self, key: StorageKey) -> bool:
        return self.path_for(key).is_file()

    def write(self, key: StorageKey, data: bytes) -> Path:
        path = self.path_for(key)
        try:
            write_atomic(path, data)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e
        logger.debug("Wrote %s (%d bytes)", path, len(data))
        return path
