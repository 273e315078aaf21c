"""
In-memory invoice cache (for tests and demo runs).
Stores the serialized slot exactly as the durable backend would.
"""
from typing import Dict, Optional

from .invoice_cache_base import InvoiceCacheBase


class InMemoryInvoiceCache(InvoiceCacheBase):
    def __init__(self):
        self._slots: Dict[str, str] = {}

    def _read_slot(self) -> Optional[str]:
        return self._slots.get(self.key)

    def _write_slot(self, payload: str) -> None:
        self._slots[self.key] = payload
