from fastapi import Request
from pydantic import BaseModel
from ..services.extraction import InvoiceExtractionPipeline, build_extraction_pipeline
from ..services.sync_engine import InvoiceSyncEngine


class ReadModelResponse(BaseModel):
    invoices: list[dict]
    loading: bool = False


class InvoicesResponse(BaseModel):
    invoices: list[dict]


class SaveResponse(BaseModel):
    invoices: list[dict]
    synced: bool = True
    warning: str | None = None  # Set when the record was only saved locally


class ExtractResponse(BaseModel):
    invoices: list[dict]  # Review-ready records with status "parsed"
    errors: list[dict] = []  # Per-file failures when several files were sent


def get_sync_engine(request: Request) -> InvoiceSyncEngine:
    return request.app.state.sync_engine


def get_extraction_pipeline() -> InvoiceExtractionPipeline:
    # Built per request so settings changes (keys, model order) apply immediately
    return build_extraction_pipeline()
