"""
Live checks against the configured remote store and Gemini API.

Run with: pytest --run-integration
Requires REMOTE_STORE_URL and GEMINI_API_KEY in the environment or .env.
"""

import asyncio

import pytest

from src.core.config import settings
from src.services.extraction import build_extraction_pipeline
from src.services.remote_store import RemoteStoreClient


@pytest.mark.integration
def test_live_remote_store_lists_invoices():
    if not settings.remote_store_url:
        pytest.skip("REMOTE_STORE_URL not set")

    invoices = asyncio.run(RemoteStoreClient().list_invoices())

    assert isinstance(invoices, list)
    assert all(inv.id for inv in invoices)


@pytest.mark.integration
def test_live_extraction_of_payment_text():
    if not settings.gemini_api_key:
        pytest.skip("GEMINI_API_KEY not set")

    record = asyncio.run(build_extraction_pipeline().extract_record("Received 500 from Rohit Kumar today"))

    assert record.status == "parsed"
    assert record.vendor_name == "Rohit Kumar"
    assert record.total_amount == 500
