from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("invoiceai-sync", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Remote store (single endpoint: POST create/update/delete, GET list)
    remote_store_url: str | None = Field(default=None, alias="REMOTE_STORE_URL")

    # Extraction provider (Gemini generateContent REST API)
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_base_url: str = Field("https://generativelanguage.googleapis.com/v1beta", alias="GEMINI_BASE_URL")

    # Comma-separated, best quality first
    extraction_models: str = Field("gemini-2.5-pro,gemini-2.5-flash,gemini-2.0-flash", alias="EXTRACTION_MODELS")
    extraction_retry_on_safety: bool = Field(False, alias="EXTRACTION_RETRY_ON_SAFETY")
    recent_vendor_hints: int = Field(10, alias="RECENT_VENDOR_HINTS")

    # Local cache
    cache_db_path: str = Field("invoices_cache.db", alias="CACHE_DB_PATH")

    # None = no client-side timeout
    http_timeout_seconds: float | None = Field(default=None, alias="HTTP_TIMEOUT_SECONDS")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def model_chain(self) -> tuple[str, ...]:
        """Ordered, immutable list of extraction models."""
        return tuple(m.strip() for m in self.extraction_models.split(",") if m.strip())

settings = Settings()
