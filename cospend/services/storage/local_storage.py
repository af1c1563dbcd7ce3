"""
Local Key-Value Storage

DESIGN DECISION: Each key is a JSON document in its own file inside a data
directory (`expenses.json`, `appSettings.json`). This mirrors the browser
localStorage model the data format was designed for:
1. Whole-value reads and writes, no partial updates
2. Human-readable files the user can back up or inspect
3. No database setup required

TRADEOFFS:
- Every mutation rewrites the full document (fine for a personal ledger)
- No transactions; writes are made atomic by writing a temp file and
  renaming it over the old one
"""

import os
import re
import tempfile
from collections import deque
from pathlib import Path
from typing import Optional

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cospend.models.audit import AuditEvent
from cospend.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Keys become file names, so keep them boring
VALID_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_key(key: str) -> str:
    if not key or not VALID_KEY.match(key) or key.startswith("."):
        raise StorageError(f"Invalid storage key: {key!r}")
    return key


class JsonFileStorage(KeyValueStorageInterface):
    """
    File-backed key-value storage.

    Transient OS errors (e.g. a file briefly locked by a sync client) are
    retried a few times before surfacing as StorageError.
    """

    SUFFIX = ".json"

    def __init__(self, data_dir: Path):
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path(self, key: str) -> Path:
        return self._data_dir / f"{_check_key(key)}{self.SUFFIX}"

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def _read(self, path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def _write(self, path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        try:
            return self._read(self._path(key))
        except OSError as e:
            raise StorageError(f"Could not read '{key}': {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._write(path, value)
        except OSError as e:
            raise StorageError(f"Could not write '{key}': {e}") from e
        logger.debug("storage_write", key=key, size=len(value), path=str(path))

    def remove_item(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Could not remove '{key}': {e}") from e
        return True

    def keys(self) -> list[str]:
        if not self._data_dir.exists():
            return []
        return sorted(
            path.name[: -len(self.SUFFIX)]
            for path in self._data_dir.iterdir()
            if path.is_file()
            and path.name.endswith(self.SUFFIX)
            and not path.name.startswith(".")
        )


class InMemoryStorage(KeyValueStorageInterface):
    """Dict-backed storage for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._items: dict[str, str] = dict(initial or {})
        self.write_count = 0

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(_check_key(key))

    def set_item(self, key: str, value: str) -> None:
        self._items[_check_key(key)] = value
        self.write_count += 1

    def remove_item(self, key: str) -> bool:
        return self._items.pop(_check_key(key), None) is not None

    def keys(self) -> list[str]:
        return sorted(self._items)


class InMemoryAuditStorage(AuditStorageInterface):
    """
    Bounded in-memory audit trail.

    Backs the "recent activity" view; the structured log remains the
    durable record.
    """

    def __init__(self, max_events: int = 200):
        self._events: deque[AuditEvent] = deque(maxlen=max_events)

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]

    def __len__(self) -> int:
        return len(self._events)
