"""Health check endpoints."""

from fastapi import APIRouter, Request

from tokenswallet.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "tokenswallet"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Health check with configuration and backend info."""
    settings = get_settings()
    store = getattr(request.app.state, "secret_store", None)
    backends = getattr(request.app.state, "backends", {})
    return {
        "status": "healthy",
        "service": "tokenswallet",
        "version": "0.1.0",
        "secret_store": store.store_type.value if store else None,
        "chains": sorted(chain.value for chain in backends),
        "config": settings.get_safe_dict(),
    }
