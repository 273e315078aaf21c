"""
SQLite-backed invoice cache.

One key/value table; the whole collection lives in a single row under the
fixed cache key, so each write is one statement in one transaction.
"""

import sqlite3
from datetime import datetime, UTC
from typing import Optional

from loguru import logger

from ...core.exceptions import LocalStorageError
from .invoice_cache_base import InvoiceCacheBase


class SQLiteInvoiceCache(InvoiceCacheBase):
    """
    Durable cache that survives application restarts.

    Features:
    - Single-slot layout (no per-record rows, no migrations)
    - Atomic overwrite via INSERT ... ON CONFLICT inside a transaction
    - Survives a corrupt or missing file: reads fall back to an empty list
    """

    def __init__(self, db_path: str = "invoices_cache.db"):
        """
        Initialize cache with database path.

        Args:
            db_path: Path to SQLite database file (default: invoices_cache.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create the key/value table if it doesn't exist"""
        try:
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            # Reads and writes report through LocalStorageError later
            logger.error("Could not initialise local cache database", db_path=self.db_path, error=str(e))

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _read_slot(self) -> Optional[str]:
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (self.key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise LocalStorageError("read", str(e))
        return row[0] if row else None

    def _write_slot(self, payload: str) -> None:
        try:
            conn = self._get_connection()
            try:
                with conn:
                    conn.execute("""
                        INSERT INTO kv_store (key, value, updated_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                    """, (self.key, payload, datetime.now(UTC).isoformat()))
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise LocalStorageError("write", str(e))
