"""
Exceptions raised across the extraction and sync layers.

Hierarchy:
    InvoiceAIError (base)
    ├── ConfigurationError
    ├── LocalStorageError
    ├── RemoteStoreError
    ├── InvoiceNotFoundError
    ├── UnsupportedInputError
    ├── ProviderError
    │   ├── ProviderTransportError
    │   ├── SchemaError
    │   └── SafetyRejectedError
    └── ExtractionFailedError

SafetyRejectedError is a ProviderError when a single provider declines and is
also what the pipeline raises when the chain ends on a safety rejection, so
callers can catch it on its own.
"""


class InvoiceAIError(Exception):
    """
    Base exception for the service.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(InvoiceAIError):
    """Raised when a required endpoint or credential is not configured."""

    def __init__(self, setting: str, purpose: str):
        message = f"{setting} is not configured. Set {setting} in the environment or .env file to enable {purpose}."
        details = {"setting": setting}
        super().__init__(message, details)


class LocalStorageError(InvoiceAIError):
    """Raised by cache backends; absorbed by the cache's public methods."""

    def __init__(self, operation: str, reason: str = None):
        message = f"Local cache {operation} failed"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, details)


class RemoteStoreError(InvoiceAIError):
    """Remote store unreachable or answered with a non-2xx status."""

    def __init__(self, action: str, reason: str = None, status_code: int = None):
        message = f"Remote store {action} request failed"
        details = {"action": action, "reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, details)


class InvoiceNotFoundError(InvoiceAIError):
    """Raised when an operation targets an id that is not in the collection."""

    def __init__(self, invoice_id: str):
        message = f"Invoice not found: {invoice_id}"
        details = {"id": invoice_id}
        super().__init__(message, details)


class UnsupportedInputError(InvoiceAIError):
    """Raised when extraction input has nothing a provider can read."""

    def __init__(self, reason: str):
        super().__init__(reason)


class ProviderError(InvoiceAIError):
    """A single extraction provider failed."""

    def __init__(self, provider: str, reason: str = None):
        message = f"Extraction provider '{provider}' failed"
        details = {"provider": provider, "reason": reason}
        self.provider = provider
        self.reason = reason
        super().__init__(message, details)


class ProviderTransportError(ProviderError):
    """Provider unreachable or answered with a non-2xx status."""
    pass


class SchemaError(ProviderError):
    """Provider response was empty, not JSON, or did not match the schema."""
    pass


class SafetyRejectedError(ProviderError):
    """Provider declined the request on content-policy grounds."""
    pass


class ExtractionFailedError(InvoiceAIError):
    """
    Every provider in the chain failed.

    Attributes:
        errors: Per-provider errors, in the order the providers were tried.
    """

    def __init__(self, errors: list):
        self.errors = list(errors)
        last = self.errors[-1] if self.errors else None
        reason = last.reason if isinstance(last, ProviderError) else str(last) if last else "no providers configured"
        message = (
            "Failed to parse the invoice. The AI model could not process the request. "
            "Please check your input and try again."
        )
        details = {
            "last_error": reason,
            "providers": [e.provider for e in self.errors if isinstance(e, ProviderError)],
        }
        super().__init__(message, details)


__all__ = [
    "InvoiceAIError",
    "ConfigurationError",
    "LocalStorageError",
    "RemoteStoreError",
    "InvoiceNotFoundError",
    "UnsupportedInputError",
    "ProviderError",
    "ProviderTransportError",
    "SchemaError",
    "SafetyRejectedError",
    "ExtractionFailedError",
]
