"""
Extraction providers: AI services that turn content parts into JSON text
constrained by a response schema.

Content parts use the generateContent shape:
    {"text": "..."}
    {"inlineData": {"mimeType": "image/png", "data": "<base64>"}}
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
from loguru import logger

from ..core.config import settings
from ..core.exceptions import (
    ConfigurationError,
    ProviderTransportError,
    SafetyRejectedError,
    SchemaError,
)

# finishReason values that mean the model stopped on policy grounds
SAFETY_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "IMAGE_SAFETY"}


class ExtractionProvider(ABC):
    """
    Abstract base class for extraction providers.

    Implementations must raise:
    - ProviderTransportError when the service cannot be reached or answers non-2xx
    - SafetyRejectedError when the service declines on content-policy grounds
    - SchemaError when the answer carries no text
    """

    name: str

    @abstractmethod
    async def generate(self, parts: list[dict], response_schema: dict) -> str:
        """
        Run one structured-generation request.

        Args:
            parts: Ordered content parts (attachments, text, instructions)
            response_schema: Schema the JSON answer must follow

        Returns:
            The raw JSON text of the answer
        """
        pass


class GeminiProvider(ExtractionProvider):
    """One Gemini model reached through the generateContent REST API."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model
        self.name = model
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, parts: list[dict], response_schema: dict) -> str:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY", "AI invoice extraction")

        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
                "temperature": 0,
            },
        }

        logger.debug("Calling extraction model", model=self.model, parts=len(parts))
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(
                    self.endpoint,
                    json=body,
                    headers={"x-goog-api-key": self.api_key},
                )
        except httpx.HTTPError as e:
            raise ProviderTransportError(self.name, str(e)) from e

        if not r.is_success:
            raise ProviderTransportError(self.name, f"HTTP {r.status_code}: {_error_message(r)}")

        try:
            data = r.json()
        except ValueError:
            raise SchemaError(self.name, "response body is not JSON")

        return self._response_text(data)

    def _response_text(self, data) -> str:
        if not isinstance(data, dict):
            raise SchemaError(self.name, "response is not a JSON object")

        feedback = data.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            raise SafetyRejectedError(self.name, f"request blocked: {feedback['blockReason']}")

        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise SchemaError(self.name, "response has no candidates")

        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise SchemaError(self.name, "response is not a JSON object")
        finish_reason = candidate.get("finishReason")
        if finish_reason in SAFETY_FINISH_REASONS:
            raise SafetyRejectedError(self.name, f"response blocked: {finish_reason}")

        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            parts = []
        text = "".join(
            part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        if not text.strip():
            raise SchemaError(self.name, f"empty response (finishReason={finish_reason})")
        return text


def _error_message(r: httpx.Response) -> str:
    try:
        return r.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return r.reason_phrase
