"""
Client for the remote invoice store.

The store is a single HTTP endpoint (a spreadsheet-backed web app):
- POST with a tagged JSON payload creates, updates or deletes one record
- GET returns the full collection
Every successful answer is {"result": "success", "invoices": [...]}, and the
client hands that authoritative list back to the caller.
"""

import json
import re
from datetime import datetime
from typing import Literal, Optional

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ..core.config import settings
from ..core.exceptions import ConfigurationError, RemoteStoreError
from ..models.invoice import Invoice
from .normalizer import current_time_hhmm, is_null_placeholder

Action = Literal["create", "update", "delete"]

DEFAULT_FILE_NAME = "Manual Entry"

_TIME_PATTERN = re.compile(r"\d{1,2}:\d{2}")
_invoice_list = TypeAdapter(list[Invoice])


def time_for_sheet(value: Optional[str], now: Optional[datetime] = None) -> str:
    """First H:MM / HH:MM in `value`, or the current time when there is none."""
    if is_null_placeholder(value):
        return current_time_hhmm(now)
    match = _TIME_PATTERN.search(value)
    return match.group(0) if match else value


def build_payload(invoice: Invoice, action: Action = "create", now: Optional[datetime] = None) -> dict:
    """Map a record onto the store's column headers."""
    return {
        "Date": invoice.invoice_date or "",
        "Time": time_for_sheet(invoice.invoice_time, now),
        "Vendor Name": invoice.vendor_name or "",
        "Invoice Number": invoice.invoice_number or "",
        "Total Amount": invoice.total_amount or 0,
        "Line Items": json.dumps([item.model_dump(by_alias=True) for item in invoice.line_items]),
        "File Name": invoice.file_name or DEFAULT_FILE_NAME,
        "action": action,
        "id": invoice.id or invoice.invoice_number or "",
    }


class RemoteStoreClient:
    """
    Request/response client for the remote store.

    Transport failures and non-2xx answers raise RemoteStoreError. A 2xx
    answer that is not {"result": "success", "invoices": [...]} yields an
    empty list; callers treat that as "no authoritative state returned".
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.remote_store_url
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds

    def _require_url(self) -> str:
        if not self.url:
            raise ConfigurationError("REMOTE_STORE_URL", "syncing invoices with the remote store")
        return self.url

    async def create(self, invoice: Invoice) -> list[Invoice]:
        return await self.send(invoice, "create")

    async def update(self, invoice: Invoice) -> list[Invoice]:
        return await self.send(invoice, "update")

    async def delete(self, invoice_id: str) -> list[Invoice]:
        # The store only needs the id for deletes
        return await self.send(Invoice(id=invoice_id, invoice_number=invoice_id), "delete")

    async def send(self, invoice: Invoice, action: Action) -> list[Invoice]:
        url = self._require_url()
        payload = build_payload(invoice, action)
        logger.debug("Sending request to remote store", action=action, id=payload["id"])

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                r = await client.post(
                    url,
                    content=json.dumps(payload),
                    headers={"Content-Type": "text/plain;charset=utf-8"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Remote store {action} failed: {e}")
            raise RemoteStoreError(action, str(e)) from e

        return self._read_collection(r, action)

    async def list_invoices(self) -> list[Invoice]:
        url = self._require_url()
        logger.debug("Fetching invoices from remote store")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                r = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Remote store fetch failed: {e}")
            raise RemoteStoreError("list", str(e)) from e

        return self._read_collection(r, "list")

    def _read_collection(self, r: httpx.Response, action: str) -> list[Invoice]:
        if not r.is_success:
            raise RemoteStoreError(action, r.reason_phrase, status_code=r.status_code)

        try:
            body = r.json()
        except ValueError:
            logger.warning("Remote store returned a non-JSON body", action=action, http_status=r.status_code)
            return []

        if not isinstance(body, dict) or body.get("result") != "success" or not body.get("invoices"):
            logger.warning(
                "Remote store response was not a success with invoices",
                action=action,
                result=body.get("result") if isinstance(body, dict) else None,
            )
            return []

        try:
            invoices = _invoice_list.validate_python(body["invoices"])
        except ValidationError as e:
            logger.warning("Remote store returned malformed invoices", action=action, errors=e.error_count())
            return []

        logger.info("Remote store returned collection", action=action, count=len(invoices))
        return invoices
