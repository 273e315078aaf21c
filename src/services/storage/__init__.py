from .invoice_cache_base import INVOICES_STORAGE_KEY, InvoiceCacheBase
from .invoice_cache import InMemoryInvoiceCache
from .invoice_cache_sqlite import SQLiteInvoiceCache

__all__ = [
    "INVOICES_STORAGE_KEY",
    "InvoiceCacheBase",
    "InMemoryInvoiceCache",
    "SQLiteInvoiceCache",
]
