"""
Invoice extraction pipeline.

Builds one provider request from the user's input (typed or transcribed
text, or file attachments), then walks an ordered chain of providers until
one returns JSON that validates against the invoice schema.
"""

import base64
import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, Sequence, Union

from loguru import logger
from pydantic import ValidationError

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    ConfigurationError,
    ExtractionFailedError,
    ProviderError,
    SafetyRejectedError,
    SchemaError,
    UnsupportedInputError,
)
from ..models.invoice import ExtractedInvoice, Invoice
from .normalizer import build_review_record
from .providers import ExtractionProvider, GeminiProvider

INLINE_MIME_PREFIXES = ("image/",)
INLINE_MIME_TYPES = {"application/pdf"}
TEXT_MIME_TYPES = {"text/plain"}

INVOICE_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "vendorName": {"type": "STRING", "nullable": True, "description": "The name of the vendor or company issuing the invoice."},
        "invoiceNumber": {"type": "STRING", "nullable": True, "description": "The unique identifier for the invoice."},
        "invoiceDate": {"type": "STRING", "nullable": True, "description": "The date the invoice was issued, in YYYY-MM-DD format."},
        "invoiceTime": {"type": "STRING", "nullable": True, "description": "The time the invoice was issued or payment was made, in HH:MM (24-hour) format if available."},
        "lineItems": {
            "type": "ARRAY",
            "description": "A list of all items or services being billed.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "description": {"type": "STRING", "description": "Description of the item or service."},
                    "quantity": {"type": "NUMBER", "nullable": True, "description": "The quantity of the item."},
                    "unitPrice": {"type": "NUMBER", "nullable": True, "description": "The price per unit of the item."},
                    "subtotal": {"type": "NUMBER", "nullable": True, "description": "The total price for this line item (quantity * unitPrice)."},
                },
                "required": ["description", "quantity", "unitPrice", "subtotal"],
            },
        },
        "taxAmount": {"type": "NUMBER", "nullable": True, "description": "The total amount of tax charged."},
        "totalAmount": {"type": "NUMBER", "nullable": True, "description": "The final total amount due for the invoice."},
    },
    "required": ["vendorName", "invoiceDate", "lineItems", "totalAmount"],
}


@dataclass(frozen=True)
class Attachment:
    """An uploaded file: image, PDF or plain text."""
    file_name: str
    mime_type: str
    data: bytes


ExtractionInput = Union[str, Sequence[Attachment]]


def build_instructions(today: date, recent_vendors: Sequence[str] = ()) -> str:
    """The single instruction block sent after the user's content."""
    vendor_hint = ", ".join(recent_vendors) if recent_vendors else "none yet"
    return f"""
You are an intelligent invoice processing assistant.
Analyze the invoice data above and extract the information into the structured JSON format defined by the schema.
The data might be messy text from an OCR scan, a user's typed notes, or spoken words. Do your best to interpret it.

OUTPUT FIELDS:
- vendorName, invoiceNumber, invoiceDate (YYYY-MM-DD), invoiceTime (HH:MM, 24-hour)
- lineItems: ordered list, each with description, quantity, unitPrice, subtotal
- taxAmount, totalAmount

SPECIAL INSTRUCTIONS:
- If a value is not found, use null.
- The current date is {today.isoformat()}. Resolve relative dates such as "today" or "yesterday" against it and standardize dates to YYYY-MM-DD.
- If a time of payment is mentioned (e.g., "at 3:00 PM", "paid 14:30"), format it as HH:MM (24-hour). Otherwise use null for invoiceTime.
- Vendors the user has recorded recently: {vendor_hint}. Prefer one of these spellings when the input clearly refers to the same vendor.
- If the input says "paid to [Name]", "received from [Name]" or "sent to [Name]", that name is the vendorName. For example, in "Rs 3000 received from Rohit kumar", the vendorName is "Rohit Kumar".
- Capitalize the first letter of every word of the vendorName.
- If no specific line items are found but a total amount is clear (like on a simple payment receipt), create a single line item with description "Payment", quantity 1, and the total amount as both unitPrice and subtotal.
- If an invoice number is not explicitly mentioned, set invoiceNumber to null. Do not invent one.
- CRITICAL: All financial numbers (quantity, unitPrice, subtotal, taxAmount, totalAmount) MUST be positive numbers. If a value is unclear, zero-confidence or appears negative, return null for that field instead.
""".strip()


def parse_structured_response(provider: str, text: str) -> ExtractedInvoice:
    """
    Validate a provider's JSON answer.

    Raises:
        SchemaError: empty text, malformed JSON, or a schema violation
    """
    text = (text or "").strip()
    if text.startswith("```"):
        text = text.strip("`").removeprefix("json").strip()
    if not text:
        raise SchemaError(provider, "empty response")

    try:
        data = json.loads(text)
    except ValueError as e:
        raise SchemaError(provider, f"malformed JSON: {e}")

    if not isinstance(data, dict) or not data:
        raise SchemaError(provider, "response is not a JSON object")

    try:
        return ExtractedInvoice.model_validate(data)
    except ValidationError as e:
        raise SchemaError(provider, f"schema violation: {e.error_count()} error(s)")


class InvoiceExtractionPipeline:
    """
    Prioritized provider chain for invoice extraction.

    The provider order is fixed at construction and never changes; the
    pipeline keeps no other state between calls.

    Args:
        providers: Providers in priority order (best quality first)
        retry_on_safety: Keep walking the chain after a safety rejection.
            Off by default: another provider rarely reverses a policy decision.
        clock: Source of "now" for relative dates and the default time
    """

    def __init__(
        self,
        providers: Sequence[ExtractionProvider],
        retry_on_safety: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.providers = tuple(providers)
        self.retry_on_safety = retry_on_safety
        self.clock = clock

    def build_parts(self, content: ExtractionInput, recent_vendors: Sequence[str] = ()) -> list[dict]:
        parts: list[dict] = []

        if isinstance(content, str):
            if not content.strip():
                raise UnsupportedInputError("Please upload a file, type, or speak the invoice details.")
            parts.append({"text": content})
        else:
            attachments = list(content)
            if not attachments:
                raise UnsupportedInputError("Please upload a file, type, or speak the invoice details.")
            if not all(isinstance(a, Attachment) for a in attachments):
                raise UnsupportedInputError("Text and files cannot be extracted in the same request.")
            for attachment in attachments:
                part = self._attachment_part(attachment)
                if part is not None:
                    parts.append(part)
            if not parts:
                raise UnsupportedInputError(
                    "No valid file content to parse. Please upload images, PDFs or .txt files."
                )

        parts.append({"text": build_instructions(self.clock().date(), recent_vendors)})
        return parts

    def _attachment_part(self, attachment: Attachment) -> Optional[dict]:
        mime_type = (attachment.mime_type or "").split(";")[0].strip().lower()
        if mime_type.startswith(INLINE_MIME_PREFIXES) or mime_type in INLINE_MIME_TYPES:
            return {
                "inlineData": {
                    "mimeType": mime_type,
                    "data": base64.b64encode(attachment.data).decode("ascii"),
                }
            }
        if mime_type in TEXT_MIME_TYPES:
            text = attachment.data.decode("utf-8", errors="replace")
            return {"text": f"\n\n--- File Content: {attachment.file_name} ---\n{text}"}

        logger.warning("Skipping unsupported attachment", file_name=attachment.file_name, mime_type=mime_type)
        return None

    async def extract(self, content: ExtractionInput, recent_vendors: Sequence[str] = ()) -> ExtractedInvoice:
        """
        Run the provider chain and return the first valid structured result.

        Raises:
            UnsupportedInputError: nothing in the input can be sent
            ConfigurationError: a provider has no credential
            SafetyRejectedError: the chain ended on a content-policy rejection
            ExtractionFailedError: every provider failed otherwise
        """
        if not self.providers:
            raise ConfigurationError("EXTRACTION_MODELS", "AI invoice extraction")

        parts = self.build_parts(content, recent_vendors)
        errors: list[ProviderError] = []

        for provider in self.providers:
            try:
                text = await provider.generate(parts, INVOICE_RESPONSE_SCHEMA)
                result = parse_structured_response(provider.name, text)
            except SafetyRejectedError as e:
                errors.append(e)
                logger.warning("Extraction provider declined on safety grounds", provider=provider.name, reason=e.reason)
                if not self.retry_on_safety:
                    break
                continue
            except ProviderError as e:
                errors.append(e)
                logger.warning("Extraction provider failed, trying next", provider=provider.name, reason=e.reason)
                continue

            logger.info("Invoice extracted", provider=provider.name, attempts=len(errors) + 1)
            return result

        last = errors[-1] if errors else None
        if isinstance(last, SafetyRejectedError):
            raise last
        logger.error("All extraction providers failed", providers=[e.provider for e in errors])
        raise ExtractionFailedError(errors)

    async def extract_record(
        self,
        content: ExtractionInput,
        recent_vendors: Sequence[str] = (),
        file_name: Optional[str] = None,
    ) -> Invoice:
        """Extract and normalize into a review-ready record (status "parsed")."""
        extracted = await self.extract(content, recent_vendors)
        return build_review_record(extracted, file_name=file_name, now=self.clock())


def build_extraction_pipeline(config: Settings = None) -> InvoiceExtractionPipeline:
    """Pipeline over the configured Gemini model chain."""
    config = config or default_settings
    if not config.gemini_api_key:
        raise ConfigurationError("GEMINI_API_KEY", "AI invoice extraction")

    providers = [
        GeminiProvider(
            model,
            api_key=config.gemini_api_key,
            base_url=config.gemini_base_url,
            timeout=config.http_timeout_seconds,
        )
        for model in config.model_chain()
    ]
    return InvoiceExtractionPipeline(providers, retry_on_safety=config.extraction_retry_on_safety)
