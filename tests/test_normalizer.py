"""
Tests for the field normalization rules.
"""

from datetime import datetime

import pytest

from src.models.invoice import ExtractedInvoice, ExtractedLineItem, Invoice, LineItem
from src.services.normalizer import (
    build_review_record,
    canonical_date,
    canonical_time,
    capitalize_words,
    elide_placeholder,
    generate_record_id,
    is_null_placeholder,
    next_invoice_number,
    normalize_record,
    recompute_total,
    update_line_item,
)

NOW = datetime(2024, 6, 1, 9, 7)


@pytest.mark.parametrize("value", [None, "", "  ", "null", "NULL", " Null "])
def test_null_placeholders(value):
    assert is_null_placeholder(value)
    assert elide_placeholder(value) is None


def test_real_values_are_not_placeholders():
    assert not is_null_placeholder("nullable corp")
    assert elide_placeholder("  INV-7 ") == "INV-7"


@pytest.mark.parametrize("raw,expected", [
    ("14:30", "14:30"),
    ("9:05", "09:05"),
    ("14:30:59", "14:30"),
    ("3:00 PM", "15:00"),
    ("12:15 am", "00:15"),
    ("paid at 7:45", "07:45"),
    ("25:00", None),
    ("noon", None),
    ("null", None),
])
def test_canonical_time(raw, expected):
    assert canonical_time(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("2024-06-01", "2024-06-01"),
    ("2024/06/01", "2024-06-01"),
    ("01/06/2024", "2024-06-01"),
    ("01.06.2024", "2024-06-01"),
    ("June 1, 2024", "2024-06-01"),
    ("2024-06-01T18:30:00.000Z", "2024-06-01"),
    ("sometime last week", None),
    ("null", None),
])
def test_canonical_date(raw, expected):
    assert canonical_date(raw) == expected


def test_capitalize_words_keeps_inner_letters():
    assert capitalize_words("rohit kumar") == "Rohit Kumar"
    assert capitalize_words("mcDonald's  drive thru") == "McDonald's Drive Thru"
    assert capitalize_words("null") is None


def test_line_item_subtotal_follows_edits():
    item = LineItem(description="Bolts", quantity=2, unit_price=1.25, subtotal=2.5)

    edited = update_line_item(item, quantity=7)
    assert edited.subtotal == pytest.approx(7 * 1.25, abs=1e-3)

    edited = update_line_item(edited, unit_price=0.333)
    assert edited.subtotal == pytest.approx(7 * 0.333, abs=1e-3)
    assert edited.description == "Bolts"
    # original untouched
    assert item.quantity == 2


def test_total_is_sum_of_subtotals_plus_tax():
    invoice = Invoice(
        id="a",
        line_items=[
            LineItem(description="A", quantity=2, unit_price=10, subtotal=20),
            LineItem(description="B", quantity=1, unit_price=5.5, subtotal=5.5),
        ],
        tax_amount=2.55,
        total_amount=0,
    )
    assert recompute_total(invoice).total_amount == pytest.approx(28.05, abs=1e-3)


def test_total_only_receipt_keeps_its_total():
    invoice = Invoice(id="a", line_items=[], total_amount=812.4, tax_amount=12)
    assert recompute_total(invoice).total_amount == 812.4


def test_next_invoice_number_skips_non_numeric():
    invoices = [Invoice(id=str(i), invoice_number=n) for i, n in enumerate(["3", "7", "x", "10"])]
    assert next_invoice_number(invoices) == "11"


def test_next_invoice_number_for_empty_collection():
    assert next_invoice_number([]) == "1"
    assert next_invoice_number([Invoice(id="a", invoice_number=None)]) == "1"


def test_normalize_record_elides_placeholders_and_defaults_time():
    invoice = Invoice(
        id="a",
        vendor_name="null",
        invoice_number="NULL",
        invoice_time="null",
        invoice_date="01/06/2024",
        line_items=[LineItem(description="X", quantity=3, unit_price=2, subtotal=999)],
        total_amount=1,
    )

    normalized = normalize_record(invoice, now=NOW)

    assert normalized.vendor_name is None
    assert normalized.invoice_number is None
    assert normalized.invoice_time == "09:07"
    assert normalized.invoice_date == "2024-06-01"
    assert normalized.line_items[0].subtotal == 6
    assert normalized.total_amount == 6


def test_build_review_record_from_extraction():
    extracted = ExtractedInvoice(
        vendor_name="blue bottle cafe",
        invoice_number="null",
        invoice_date="2024-06-01",
        invoice_time="8:45 PM",
        line_items=[
            ExtractedLineItem(description="Latte", quantity=2, unit_price=4.5, subtotal=9),
            ExtractedLineItem(description="Muffin", quantity=None, unit_price=None, subtotal=3.25),
        ],
        tax_amount=-1,
        total_amount=12.25,
    )

    record = build_review_record(extracted, file_name="cafe.jpg", now=NOW, record_id="parsed-1")

    assert record.id == "parsed-1"
    assert record.status == "parsed"
    assert record.vendor_name == "Blue Bottle Cafe"
    assert record.invoice_number is None
    assert record.invoice_time == "20:45"
    assert record.file_name == "cafe.jpg"
    assert record.tax_amount is None
    assert record.line_items[1].quantity == 1
    assert record.line_items[1].unit_price == 3.25
    assert record.total_amount == pytest.approx(12.25)


def test_build_review_record_defaults():
    extracted = ExtractedInvoice(vendor_name=None, invoice_date=None, line_items=None, total_amount=None)

    record = build_review_record(extracted, now=NOW)

    assert record.line_items == []
    assert record.invoice_time == "09:07"
    assert record.file_name == "Text/Voice Input"
    assert record.id.startswith("parsed-")


def test_generated_ids_carry_file_name():
    assert generate_record_id("scan.png").endswith("-scan.png")
