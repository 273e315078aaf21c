"""
Deterministic field rules applied to extraction output and to records
before they are persisted.

Every function here is pure: inputs are never mutated, pydantic models are
copied with `model_copy(update=...)`. Callers that need a stable clock pass
`now` explicitly.
"""

import re
import time
from datetime import datetime
from typing import Iterable, Optional

from loguru import logger

from ..models.invoice import ExtractedInvoice, Invoice, LineItem

NULL_PLACEHOLDER = "null"
TEXT_INPUT_FILE_NAME = "Text/Voice Input"

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
]

_ISO_TIMESTAMP = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ]")
_CLOCK = re.compile(r"(\d{1,2}):(\d{2})(?::\d{2})?\s*([AaPp][Mm])?")
_LEADING_INT = re.compile(r"^\s*(\d+)")


def is_null_placeholder(value) -> bool:
    """True for None, blank strings and the literal text "null" in any case."""
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped.lower() == NULL_PLACEHOLDER
    return False


def elide_placeholder(value: Optional[str]) -> Optional[str]:
    if is_null_placeholder(value):
        return None
    return value.strip()


def current_time_hhmm(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%H:%M")


def canonical_time(value: Optional[str]) -> Optional[str]:
    """
    Normalize a clock time to 24-hour HH:MM.

    Accepts "9:05", "14:30:00" and "3:00 PM". Returns None for placeholders
    and for text with no recognizable time.
    """
    if is_null_placeholder(value):
        return None
    match = _CLOCK.search(value)
    if not match:
        return None

    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        hour = hour % 12 + (12 if meridiem.lower() == "pm" else 0)
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def canonical_date(value: Optional[str]) -> Optional[str]:
    """Normalize a date to YYYY-MM-DD; unparseable text becomes None."""
    if is_null_placeholder(value):
        return None
    text = value.strip()

    iso = _ISO_TIMESTAMP.match(text)
    if iso:
        text = iso.group(1)

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue

    logger.warning("Could not parse date, dropping it", value=value)
    return None


def capitalize_words(name: Optional[str]) -> Optional[str]:
    """Upper-case the first letter of each word, leaving the rest untouched."""
    name = elide_placeholder(name)
    if name is None:
        return None
    return " ".join(word[:1].upper() + word[1:] for word in name.split())


def non_negative(value: Optional[float]) -> Optional[float]:
    if value is None or value < 0:
        return None
    return value


def update_line_item(
    item: LineItem,
    description: Optional[str] = None,
    quantity: Optional[float] = None,
    unit_price: Optional[float] = None,
) -> LineItem:
    """Apply an edit to a line item; the subtotal always follows quantity * unit price."""
    changes = {}
    if description is not None:
        changes["description"] = description
    if quantity is not None:
        changes["quantity"] = quantity
    if unit_price is not None:
        changes["unit_price"] = unit_price

    edited = LineItem.model_validate({**item.model_dump(), **changes})
    return edited.model_copy(update={"subtotal": edited.quantity * edited.unit_price})


def recompute_total(invoice: Invoice) -> Invoice:
    """
    Sum of line subtotals plus tax when line items exist.

    A record without line items keeps its total as-is; for total-only
    receipts it is the only source for the amount.
    """
    if not invoice.line_items:
        return invoice
    total = sum(item.subtotal for item in invoice.line_items) + (invoice.tax_amount or 0)
    return invoice.model_copy(update={"total_amount": total})


def next_invoice_number(invoices: Iterable[Invoice]) -> str:
    """
    One more than the largest numeric invoice number in the collection.

    Numbers are read the way a lenient integer parse would ("12", "12b");
    anything without leading digits ("INV-4", "x") is ignored.
    """
    highest = 0
    for invoice in invoices:
        if invoice.invoice_number is None:
            continue
        match = _LEADING_INT.match(invoice.invoice_number)
        if match:
            highest = max(highest, int(match.group(1)))
    return str(highest + 1)


def normalize_record(invoice: Invoice, now: Optional[datetime] = None) -> Invoice:
    """Canonical form of a record as it is written to the cache and sent remote."""
    line_items = [
        item.model_copy(update={"subtotal": item.quantity * item.unit_price})
        for item in invoice.line_items
    ]
    normalized = invoice.model_copy(update={
        "vendor_name": capitalize_words(invoice.vendor_name),
        "invoice_number": elide_placeholder(invoice.invoice_number),
        "invoice_date": canonical_date(invoice.invoice_date),
        "invoice_time": canonical_time(invoice.invoice_time) or current_time_hhmm(now),
        "line_items": line_items,
    })
    return recompute_total(normalized)


def _review_line_item(item) -> LineItem:
    quantity = non_negative(item.quantity)
    if quantity is None:
        quantity = 1
    unit_price = non_negative(item.unit_price)
    if unit_price is None:
        subtotal = non_negative(item.subtotal)
        unit_price = subtotal / quantity if subtotal is not None and quantity else 0
    return LineItem(
        description=(item.description or "").strip(),
        quantity=quantity,
        unit_price=unit_price,
        subtotal=quantity * unit_price,
    )


def generate_record_id(file_name: Optional[str] = None) -> str:
    record_id = f"parsed-{int(time.time() * 1000)}"
    if file_name:
        record_id = f"{record_id}-{file_name}"
    return record_id


def build_review_record(
    extracted: ExtractedInvoice,
    file_name: Optional[str] = None,
    now: Optional[datetime] = None,
    record_id: Optional[str] = None,
) -> Invoice:
    """
    Turn provider output into a review-ready record with status "parsed".

    Args:
        extracted: Validated provider output
        file_name: Source file name; None for typed or spoken input
        now: Clock used for the default time
        record_id: Explicit id; generated from the clock when omitted

    Returns:
        Invoice with placeholders elided, time defaulted, line items
        recomputed and the total reconciled with them.
    """
    invoice = Invoice(
        id=record_id or generate_record_id(file_name),
        status="parsed",
        vendor_name=capitalize_words(extracted.vendor_name),
        invoice_number=elide_placeholder(extracted.invoice_number),
        invoice_date=canonical_date(extracted.invoice_date),
        invoice_time=canonical_time(extracted.invoice_time) or current_time_hhmm(now),
        file_name=file_name or TEXT_INPUT_FILE_NAME,
        line_items=[_review_line_item(item) for item in extracted.line_items or []],
        tax_amount=non_negative(extracted.tax_amount),
        total_amount=non_negative(extracted.total_amount),
    )
    return recompute_total(invoice)
