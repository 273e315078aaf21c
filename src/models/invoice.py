import json
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Field names are snake_case in Python and camelCase on every JSON boundary
# (cache slot, remote store rows, HTTP API, provider schema).
_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class LineItem(BaseModel):
    model_config = _CAMEL

    description: str = ""
    quantity: float = Field(default=1, ge=0)
    unit_price: float = Field(default=0, ge=0)
    subtotal: float = 0

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, value):
        return "" if value is None else str(value)


class Invoice(BaseModel):
    """
    An invoice or receipt record.

    status is "parsed" while the record comes out of extraction and is under
    review, and "saved" once the sync engine has committed it.
    """

    model_config = _CAMEL

    id: str
    status: Literal["parsed", "saved"] = "parsed"
    vendor_name: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    invoice_time: str | None = None
    file_name: str | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    tax_amount: float | None = None
    total_amount: float | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("invoice_number", mode="before")
    @classmethod
    def _invoice_number_text(cls, value):
        # Spreadsheet-backed stores hand numeric cells back as numbers
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _blank_to_none(value)

    @field_validator("vendor_name", "invoice_date", "invoice_time", "file_name", mode="before")
    @classmethod
    def _optional_text(cls, value):
        value = _blank_to_none(value)
        if value is not None and not isinstance(value, str):
            return str(value)
        return value

    @field_validator("tax_amount", "total_amount", mode="before")
    @classmethod
    def _optional_amount(cls, value):
        return _blank_to_none(value)

    @field_validator("line_items", mode="before")
    @classmethod
    def _decode_line_items(cls, value):
        # The remote store keeps line items as a JSON-encoded string column
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            try:
                value = json.loads(value)
            except ValueError:
                return []
            return value if isinstance(value, list) else []
        return value

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ExtractedLineItem(BaseModel):
    model_config = _CAMEL

    description: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    subtotal: float | None = None


class ExtractedInvoice(BaseModel):
    """
    Structured provider output before normalization.

    vendorName, invoiceDate, lineItems and totalAmount must be present in the
    provider's JSON (they may be null); the rest are optional.
    """

    model_config = _CAMEL

    vendor_name: str | None
    invoice_number: str | None = None
    invoice_date: str | None
    invoice_time: str | None = None
    line_items: list[ExtractedLineItem] | None
    tax_amount: float | None = None
    total_amount: float | None

    @field_validator("invoice_number", mode="before")
    @classmethod
    def _invoice_number_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        return value
