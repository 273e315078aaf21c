from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from ..core.logging import setup_logging
from ..core.config import settings
from ..core.exceptions import ConfigurationError
from ..services.remote_store import RemoteStoreClient
from ..services.storage import SQLiteInvoiceCache
from ..services.sync_engine import InvoiceSyncEngine
from .routers import health, invoice

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = InvoiceSyncEngine(
        cache=SQLiteInvoiceCache(settings.cache_db_path),
        remote=RemoteStoreClient(),
    )
    app.state.sync_engine = engine

    # Serve the cached copy even when the remote store is not configured yet
    try:
        await engine.start()
    except ConfigurationError as e:
        engine.loading = False
        logger.error(f"Starting with local invoices only: {e.message}")

    logger.info("Invoice service ready", invoices=len(engine.invoices), env=settings.app_env)
    yield


app = FastAPI(title="InvoiceAI Sync", lifespan=lifespan)


# Add custom exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    logger.error(exc.message)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.message},
    )


# CORS_ORIGINS can be set in .env as comma-separated list
# Example: CORS_ORIGINS=http://localhost:3000,https://your-frontend.com
allowed_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(invoice.router)
