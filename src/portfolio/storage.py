"""Key-value persistence backends for portfolio state."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """
    Durable string storage addressed by key.

    Subclasses implement get_item/set_item/remove_item. Values are opaque
    serialized text; writes always replace the whole value.
    """

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    """In-process storage for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class SQLiteStorage(KeyValueStorage):
    """SQLite-backed key-value storage."""

    def __init__(self, db_path: str = "~/.stock_portfolio/portfolio.db"):
        """
        Initialize the storage.

        Args:
            db_path: Path to SQLite database file. Supports ~ expansion.

        Raises:
            PersistenceError: If the database cannot be created.
        """
        self.db_path = os.path.expanduser(db_path)
        try:
            self._ensure_directory()
            self._init_database()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open storage at {self.db_path}: {e}") from e

    def _ensure_directory(self) -> None:
        """Create database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
            logger.info(f"Created database directory: {db_dir}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Create tables if they don't exist."""
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
        logger.debug(f"Database initialized at {self.db_path}")

    def get_item(self, key: str) -> Optional[str]:
        """
        Read the value stored under key.

        Returns:
            Stored text, or None if the key has never been written.

        Raises:
            PersistenceError: If the database cannot be read.
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read {key!r}: {e}") from e
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """
        Replace the value stored under key.

        Raises:
            PersistenceError: If the write fails.
        """
        now = datetime.now().isoformat()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, now),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write {key!r}: {e}") from e
        logger.debug(f"Wrote {len(value)} bytes under {key!r}")

    def remove_item(self, key: str) -> None:
        """Delete key; no-op if absent."""
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to remove {key!r}: {e}") from e
