from fastapi import APIRouter, Request
from ...core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    engine = getattr(request.app.state, "sync_engine", None)
    return {
        "status": "ok",
        "app": settings.app_name,
        "env": settings.app_env,
        "remote_store_configured": bool(settings.remote_store_url),
        "extraction_configured": bool(settings.gemini_api_key),
        "cached_invoices": len(engine.invoices) if engine else 0,
    }
