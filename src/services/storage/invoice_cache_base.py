"""
Abstract base class for the local invoice cache.

The cache holds one snapshot of the whole collection. Backends implement the
raw slot read/write; this class owns (de)serialization and the rule that
local-storage failures never reach callers.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ...core.exceptions import LocalStorageError
from ...models.invoice import Invoice

INVOICES_STORAGE_KEY = "invoiceai_invoices"

_invoice_list = TypeAdapter(list[Invoice])


class InvoiceCacheBase(ABC):
    """
    Full-collection cache. No per-record API: every write replaces the slot.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (durable, single process)
    """

    key = INVOICES_STORAGE_KEY

    @abstractmethod
    def _read_slot(self) -> Optional[str]:
        """
        Return the raw JSON text stored under `key`, or None if absent.

        Raises:
            LocalStorageError: if the backend cannot be read
        """
        pass

    @abstractmethod
    def _write_slot(self, payload: str) -> None:
        """
        Atomically replace the text stored under `key`.

        Raises:
            LocalStorageError: if the backend cannot be written
        """
        pass

    def load(self) -> list[Invoice]:
        """Return the cached collection; empty when absent or unreadable."""
        try:
            payload = self._read_slot()
            if payload is None:
                return []
            return _invoice_list.validate_python(json.loads(payload))
        except (LocalStorageError, ValueError, ValidationError) as e:
            logger.error("Failed to load invoices from local cache", key=self.key, error=str(e))
            return []

    def replace_all(self, invoices: list[Invoice]) -> None:
        """Overwrite the cached collection. Failures are logged only."""
        try:
            payload = json.dumps([invoice.to_json_dict() for invoice in invoices])
            self._write_slot(payload)
        except (LocalStorageError, TypeError, ValueError) as e:
            logger.error("Failed to save invoices to local cache", key=self.key, error=str(e))
