"""SQLite-backed key-value storage holding the application's JSON regions."""
from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from .errors import StorageError

logger = logging.getLogger("propdesk.storage")

USERS_KEY = "users"
REQUESTS_KEY = "requests"
IMAGES_KEY = "images"
CURRENT_USER_KEY = "current_user"

STORAGE_KEYS = (USERS_KEY, REQUESTS_KEY, IMAGES_KEY, CURRENT_USER_KEY)


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_storage_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the key-value storage file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "propdesk.sqlite3").resolve(strict=False)


class KeyValueStore:
    """Persist text values under string keys, like a browser's local storage.

    Each value is stored verbatim; the JSON helpers encode and decode the
    regions the stores keep. When ``quota_bytes`` is set, a write that would
    grow the total stored text past the quota is refused with
    :class:`StorageError` and the previous value is kept.
    """

    def __init__(self, path: Path, *, quota_bytes: Optional[int] = None) -> None:
        try:
            _ensure_directory(path)
        except OSError as exc:
            raise StorageError(f"Cannot create storage directory for {path}") from exc
        self._path = path
        self._quota_bytes = quota_bytes

    @property
    def path(self) -> Path:
        return self._path

    @property
    def quota_bytes(self) -> Optional[int]:
        return self._quota_bytes

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open storage at {self._path}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the backing table if it does not already exist."""

        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS entries (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to initialise storage") from exc

    # ------------------------------------------------------------------
    # Raw text access
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM entries WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read '{key}' from storage") from exc
        if row is None:
            return None
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        try:
            with self._connect() as conn:
                if self._quota_bytes is not None:
                    row = conn.execute(
                        "SELECT COALESCE(SUM(LENGTH(value)), 0) AS used FROM entries WHERE key != ?",
                        (key,),
                    ).fetchone()
                    projected = int(row["used"]) + len(value)
                    if projected > self._quota_bytes:
                        logger.warning(
                            "Refusing to write %s: %d bytes would exceed the %d byte quota",
                            key,
                            projected,
                            self._quota_bytes,
                        )
                        raise StorageError("Storage quota exceeded")
                conn.execute(
                    """
                    INSERT INTO entries (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write '{key}' to storage") from exc

    def remove(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM entries WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to remove '{key}' from storage") from exc

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def usage(self) -> int:
        """Return the total length of all stored values."""

        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT COALESCE(SUM(LENGTH(value)), 0) AS used FROM entries"
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError("Failed to measure storage usage") from exc
        return int(row["used"])

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------
    def load_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageError(f"Stored value for '{key}' is not valid JSON") from exc

    def save_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, separators=(",", ":")))


__all__ = [
    "CURRENT_USER_KEY",
    "IMAGES_KEY",
    "KeyValueStore",
    "REQUESTS_KEY",
    "STORAGE_KEYS",
    "USERS_KEY",
    "resolve_storage_path",
]
