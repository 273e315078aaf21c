"""
Tests for the local invoice cache backends.

Both backends must:
- round-trip the whole collection in order
- return an empty list for a missing or corrupt slot instead of raising
- keep a single slot under the fixed cache key
"""

import json
import sqlite3

import pytest

from src.core.exceptions import LocalStorageError
from src.services.storage import INVOICES_STORAGE_KEY, InMemoryInvoiceCache, SQLiteInvoiceCache


@pytest.fixture(params=["memory", "sqlite"])
def cache(request, db_path):
    if request.param == "memory":
        return InMemoryInvoiceCache()
    return SQLiteInvoiceCache(db_path)


def test_empty_cache_loads_empty_list(cache):
    assert cache.load() == []


def test_replace_all_then_load_round_trips_in_order(cache, sample_invoices):
    reordered = [sample_invoices[2], sample_invoices[0], sample_invoices[1]]

    cache.replace_all(reordered)

    assert cache.load() == reordered


def test_replace_all_overwrites_previous_snapshot(cache, sample_invoices):
    cache.replace_all(sample_invoices)
    cache.replace_all(sample_invoices[:1])

    assert [inv.id for inv in cache.load()] == ["inv-1"]


def test_sqlite_cache_persists_across_instances(db_path, sample_invoices):
    SQLiteInvoiceCache(db_path).replace_all(sample_invoices)

    assert SQLiteInvoiceCache(db_path).load() == sample_invoices


def test_sqlite_cache_uses_single_slot(db_path, sample_invoices):
    cache = SQLiteInvoiceCache(db_path)
    cache.replace_all(sample_invoices)
    cache.replace_all(sample_invoices)

    conn = sqlite3.connect(db_path)
    rows = conn.execute("SELECT key, value FROM kv_store").fetchall()
    conn.close()

    assert len(rows) == 1
    assert rows[0][0] == INVOICES_STORAGE_KEY
    stored = json.loads(rows[0][1])
    assert stored[0]["vendorName"] == "Acme Traders"
    assert stored[0]["lineItems"][0]["unitPrice"] == 100.0


def test_corrupt_slot_loads_empty_list(db_path):
    cache = SQLiteInvoiceCache(db_path)
    cache._write_slot("{not json")

    assert cache.load() == []


def test_slot_with_invalid_records_loads_empty_list():
    cache = InMemoryInvoiceCache()
    cache._write_slot(json.dumps([{"vendorName": "missing id"}]))

    assert cache.load() == []


class BrokenCache(InMemoryInvoiceCache):
    def _read_slot(self):
        raise LocalStorageError("read", "disk unavailable")

    def _write_slot(self, payload):
        raise LocalStorageError("write", "disk full")


def test_storage_failures_are_absorbed(sample_invoices):
    cache = BrokenCache()

    cache.replace_all(sample_invoices)  # must not raise
    assert cache.load() == []


def test_unwritable_sqlite_path_is_absorbed(tmp_path, sample_invoices):
    cache = SQLiteInvoiceCache(str(tmp_path / "missing-dir" / "cache.db"))

    cache.replace_all(sample_invoices)
    assert cache.load() == []
