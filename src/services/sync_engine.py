"""
Keeps the local invoice cache and the remote store consistent.

The local cache is the read model: the API serves from it and it is updated
first (optimistically) or from the remote store's answer. The remote store
is the authority: whenever it returns a non-empty collection, that
collection replaces local state.

Every mutating operation runs through `_apply_then_reconcile`:

    1. snapshot the cache (`before`)
    2. build the optimistic collection
    3. commit it locally right away (update/delete) or hold it (add)
    4. call the remote store
    5. success with rows  -> replace local state with them, all "saved"
    6. success, no rows   -> keep the optimistic collection
    7. failure            -> run the operation's compensation

Compensation differs per operation:
- add:    keep the record locally, then re-raise so the caller can warn
          that only the local save succeeded
- update: roll back to `before` and re-raise; a record split between an
          edited local copy and a stale remote copy is worse than a
          rejected edit
- delete: keep the local deletion and log a warning

Operations are not mutually excluded. Callers are expected to issue one
mutation at a time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from loguru import logger

from ..core.exceptions import InvoiceAIError, InvoiceNotFoundError, RemoteStoreError
from ..models.invoice import Invoice
from .normalizer import next_invoice_number, normalize_record
from .remote_store import RemoteStoreClient
from .storage.invoice_cache_base import InvoiceCacheBase


class Compensation(str, Enum):
    KEEP_LOCAL_AND_RAISE = "keep_local_and_raise"
    ROLLBACK = "rollback"
    KEEP_LOCAL = "keep_local"


@dataclass(frozen=True)
class SyncPolicy:
    compensation: Compensation
    # False: nothing is written locally until the remote call has finished
    commit_before_remote: bool


SYNC_POLICIES = {
    "create": SyncPolicy(Compensation.KEEP_LOCAL_AND_RAISE, commit_before_remote=False),
    "update": SyncPolicy(Compensation.ROLLBACK, commit_before_remote=True),
    "delete": SyncPolicy(Compensation.KEEP_LOCAL, commit_before_remote=True),
}


def mark_saved(invoices: list[Invoice]) -> list[Invoice]:
    return [invoice.model_copy(update={"status": "saved"}) for invoice in invoices]


class InvoiceSyncEngine:
    """
    Read model plus add/update/delete/refresh for the presentation layer.

    Usage:
        engine = InvoiceSyncEngine(SQLiteInvoiceCache("cache.db"), RemoteStoreClient())
        await engine.start()            # load cache, then pull remote
        await engine.add_invoice(record)
        engine.invoices                 # current collection
    """

    def __init__(self, cache: InvoiceCacheBase, remote: RemoteStoreClient):
        self.cache = cache
        self.remote = remote
        self._invoices: list[Invoice] = []
        self.loading = False

    @property
    def invoices(self) -> list[Invoice]:
        return list(self._invoices)

    def read_model(self) -> dict:
        return {
            "invoices": [invoice.to_json_dict() for invoice in self._invoices],
            "loading": self.loading,
        }

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return next((inv for inv in self._invoices if inv.id == invoice_id), None)

    def recent_vendors(self, limit: int = 10) -> list[str]:
        """Distinct vendor names, most recently added first."""
        seen = set()
        vendors = []
        for invoice in reversed(self._invoices):
            name = invoice.vendor_name
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            vendors.append(name)
            if len(vendors) >= limit:
                break
        return vendors

    def _snapshot(self) -> list[Invoice]:
        """
        Collection a mutation starts from.

        Cache writes can fail silently, so the in-memory read model is the
        reference; a lagging cache is only reported.
        """
        cached = self.cache.load()
        if cached != self._invoices:
            logger.warning(
                "Local cache out of step with loaded invoices, using loaded copy",
                cached=len(cached),
                loaded=len(self._invoices),
            )
        return list(self._invoices)

    def _commit(self, invoices: list[Invoice]) -> None:
        self.cache.replace_all(invoices)
        self._invoices = list(invoices)

    async def start(self) -> list[Invoice]:
        """Serve the cached collection immediately, then reconcile with the remote store."""
        self._invoices = self.cache.load()
        self.loading = True
        try:
            return await self.refresh()
        finally:
            self.loading = False

    async def refresh(self) -> list[Invoice]:
        """
        Replace local state with the remote collection when it has rows.

        A failed fetch keeps whatever is loaded so the read model is never
        emptied by a transient network problem.
        """
        try:
            remote = await self.remote.list_invoices()
        except RemoteStoreError as e:
            logger.warning("Refresh failed, keeping local invoices", error=str(e), count=len(self._invoices))
            return self.invoices

        if remote:
            self._commit(mark_saved(remote))
            logger.info("Local cache replaced with remote collection", count=len(remote))
        else:
            logger.info("Remote store returned no invoices, keeping local copy", count=len(self._invoices))
        return self.invoices

    async def add_invoice(self, invoice: Invoice) -> list[Invoice]:
        before = self._snapshot()
        record = normalize_record(invoice)
        if record.invoice_number is None:
            record = record.model_copy(update={"invoice_number": next_invoice_number(before)})
            logger.info("Assigned invoice number", id=record.id, invoice_number=record.invoice_number)
        record = record.model_copy(update={"status": "saved"})

        return await self._apply_then_reconcile(
            "create",
            before,
            [*before, record],
            lambda: self.remote.create(record),
            subject=record.id,
        )

    async def update_invoice(self, invoice: Invoice) -> list[Invoice]:
        before = self._snapshot()
        if not any(inv.id == invoice.id for inv in before):
            raise InvoiceNotFoundError(invoice.id)

        record = normalize_record(invoice).model_copy(update={"status": "saved"})
        return await self._apply_then_reconcile(
            "update",
            before,
            [record if inv.id == record.id else inv for inv in before],
            lambda: self.remote.update(record),
            subject=record.id,
        )

    async def delete_invoice(self, invoice_id: str) -> list[Invoice]:
        before = self._snapshot()
        return await self._apply_then_reconcile(
            "delete",
            before,
            [inv for inv in before if inv.id != invoice_id],
            lambda: self.remote.delete(invoice_id),
            subject=invoice_id,
        )

    async def _apply_then_reconcile(
        self,
        action: str,
        before: list[Invoice],
        optimistic: list[Invoice],
        remote_call: Callable[[], Awaitable[list[Invoice]]],
        subject: str,
    ) -> list[Invoice]:
        policy = SYNC_POLICIES[action]

        if policy.commit_before_remote:
            self._commit(optimistic)

        try:
            authoritative = await remote_call()
        except InvoiceAIError as e:
            return self._compensate(action, policy.compensation, before, optimistic, subject, e)

        if authoritative:
            self._commit(mark_saved(authoritative))
            logger.info(f"Invoice {action} synced", id=subject, count=len(authoritative))
        else:
            self._commit(optimistic)
            logger.warning(
                f"Remote store returned no collection after {action}, keeping local state",
                id=subject,
            )
        return self.invoices

    def _compensate(
        self,
        action: str,
        compensation: Compensation,
        before: list[Invoice],
        optimistic: list[Invoice],
        subject: str,
        error: InvoiceAIError,
    ) -> list[Invoice]:
        if compensation is Compensation.KEEP_LOCAL_AND_RAISE:
            self._commit(optimistic)
            logger.error(
                f"Failed to sync invoice {action}, the data is saved locally",
                id=subject,
                error=str(error),
            )
            raise error

        if compensation is Compensation.ROLLBACK:
            self._commit(before)
            logger.error(f"Invoice {action} rejected and reverted", id=subject, error=str(error))
            raise error

        logger.warning(
            f"Invoice {action} kept locally but not confirmed by the remote store",
            id=subject,
            error=str(error),
        )
        return self.invoices
