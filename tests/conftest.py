"""
Pytest configuration and shared fixtures.

Registers the `integration` marker (live remote store / live Gemini) and
provides sample records plus temporary cache paths.
"""

import os
import tempfile

import pytest

from src.models.invoice import Invoice, LineItem

REMOTE_URL = "https://sheet.example.com/exec"


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against the real remote store and Gemini API"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real remote services"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def db_path():
    """Temporary SQLite file, removed after the test"""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    if os.path.exists(path):
        os.remove(path)


def make_invoice(invoice_id: str, number: str | None = None, vendor: str = "Acme Traders", total: float = 100.0, **extra) -> Invoice:
    return Invoice(
        id=invoice_id,
        status=extra.pop("status", "saved"),
        vendor_name=vendor,
        invoice_number=number,
        invoice_date=extra.pop("invoice_date", "2024-05-20"),
        invoice_time=extra.pop("invoice_time", "10:15"),
        file_name=extra.pop("file_name", "receipt.png"),
        line_items=extra.pop("line_items", [LineItem(description="Service", quantity=1, unit_price=total, subtotal=total)]),
        total_amount=total,
        **extra,
    )


@pytest.fixture
def sample_invoices():
    return [
        make_invoice("inv-1", "1", vendor="Acme Traders", total=100.0),
        make_invoice("inv-2", "2", vendor="Blue Bottle Cafe", total=12.5),
        make_invoice("inv-3", "3", vendor="City Hardware", total=48.0),
    ]
