from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from loguru import logger
from ..deps import (
    ExtractResponse,
    InvoicesResponse,
    ReadModelResponse,
    SaveResponse,
    get_extraction_pipeline,
    get_sync_engine,
)
from ...core.config import settings
from ...core.exceptions import (
    ConfigurationError,
    ExtractionFailedError,
    InvoiceAIError,
    InvoiceNotFoundError,
    SafetyRejectedError,
    UnsupportedInputError,
)
from ...models.invoice import Invoice
from ...services.extraction import Attachment, InvoiceExtractionPipeline
from ...services.sync_engine import InvoiceSyncEngine

router = APIRouter(prefix="/invoices", tags=["invoices"])

ADD_SYNC_WARNING = (
    "The invoice was saved locally, but syncing with the remote store failed. "
    "The remote copy may be missing this invoice until it is saved again."
)
UPDATE_SYNC_FAILURE = (
    "The changes could not be saved to the remote store and were reverted. Please try again."
)


def _dump(invoices: list[Invoice]) -> list[dict]:
    return [invoice.to_json_dict() for invoice in invoices]


@router.get("", response_model=ReadModelResponse)
async def list_invoices(engine: InvoiceSyncEngine = Depends(get_sync_engine)):
    """Current read model: every cached invoice plus the initial-load flag."""
    return engine.read_model()


@router.post("/refresh", response_model=InvoicesResponse)
async def refresh_invoices(engine: InvoiceSyncEngine = Depends(get_sync_engine)):
    """Pull the remote collection; on network failure the local copy is kept."""
    return InvoicesResponse(invoices=_dump(await engine.refresh()))


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: str, engine: InvoiceSyncEngine = Depends(get_sync_engine)):
    invoice = engine.get_invoice(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice.to_json_dict()


@router.post("/extract", response_model=ExtractResponse)
async def extract(
    text: str | None = Form(None),
    files: list[UploadFile] | None = File(None),
    engine: InvoiceSyncEngine = Depends(get_sync_engine),
    pipeline: InvoiceExtractionPipeline = Depends(get_extraction_pipeline),
):
    """
    Extract review-ready invoice records.

    Accepts either:
    - a `text` form field (typed notes or a speech transcript)
    - one or more `files` (images, PDFs, .txt), each extracted on its own

    Sending both in one request is rejected. Nothing is saved here; the
    caller reviews the records and saves them through POST /invoices.
    """
    files = files or []
    has_text = bool(text and text.strip())

    if has_text and files:
        raise HTTPException(status_code=422, detail="Send either text or files, not both.")
    if not has_text and not files:
        raise HTTPException(status_code=422, detail="Please upload a file, type, or speak the invoice details.")

    hints = engine.recent_vendors(settings.recent_vendor_hints)

    if has_text:
        try:
            record = await pipeline.extract_record(text, hints)
        except SafetyRejectedError as e:
            raise HTTPException(status_code=422, detail=f"The AI provider declined this input: {e.reason}")
        except UnsupportedInputError as e:
            raise HTTPException(status_code=422, detail=e.message)
        except ExtractionFailedError as e:
            raise HTTPException(status_code=502, detail=e.message)
        return ExtractResponse(invoices=[record.to_json_dict()])

    records = []
    errors = []
    for upload in files:
        attachment = Attachment(
            file_name=upload.filename or "upload",
            mime_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        try:
            record = await pipeline.extract_record([attachment], hints, file_name=attachment.file_name)
        except (SafetyRejectedError, UnsupportedInputError, ExtractionFailedError) as e:
            logger.warning("Failed to parse file", file_name=attachment.file_name, error=e.message)
            errors.append({
                "file_name": attachment.file_name,
                "error": e.message,
                "kind": type(e).__name__,
            })
            continue
        records.append(record.to_json_dict())

    if not records:
        status_code = 422 if all(err["kind"] != "ExtractionFailedError" for err in errors) else 502
        detail = "; ".join(f"{err['file_name']}: {err['error']}" for err in errors)
        raise HTTPException(status_code=status_code, detail=detail)

    return ExtractResponse(invoices=records, errors=errors)


@router.post("", response_model=SaveResponse, status_code=201)
async def add_invoice(
    invoice: Invoice,
    response: Response,
    engine: InvoiceSyncEngine = Depends(get_sync_engine),
):
    """Save a reviewed record. A remote failure still keeps the record locally (202)."""
    try:
        invoices = await engine.add_invoice(invoice)
    except InvoiceAIError as e:
        logger.warning(f"Add kept locally only: {e.message}")
        response.status_code = 202
        return SaveResponse(invoices=_dump(engine.invoices), synced=False, warning=ADD_SYNC_WARNING)
    return SaveResponse(invoices=_dump(invoices))


@router.put("/{invoice_id}", response_model=InvoicesResponse)
async def update_invoice(
    invoice_id: str,
    invoice: Invoice,
    engine: InvoiceSyncEngine = Depends(get_sync_engine),
):
    """Save edits to a saved record. A remote failure reverts the edit (502)."""
    invoice = invoice.model_copy(update={"id": invoice_id})
    try:
        invoices = await engine.update_invoice(invoice)
    except InvoiceNotFoundError:
        raise HTTPException(status_code=404, detail="Invoice not found")
    except ConfigurationError:
        # Already rolled back; the app-level handler answers 503
        raise
    except InvoiceAIError:
        raise HTTPException(status_code=502, detail=UPDATE_SYNC_FAILURE)
    return InvoicesResponse(invoices=_dump(invoices))


@router.delete("/{invoice_id}", response_model=InvoicesResponse)
async def delete_invoice(invoice_id: str, engine: InvoiceSyncEngine = Depends(get_sync_engine)):
    """Delete by id. The local deletion stands even if the remote store fails."""
    return InvoicesResponse(invoices=_dump(await engine.delete_invoice(invoice_id)))
