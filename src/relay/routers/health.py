"""Health and version endpoints."""

from fastapi import APIRouter, Depends

from .. import __version__
from ..config import Settings
from ..dependencies import get_settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/healthz")
async def healthz(settings: Settings = Depends(get_settings)):
    """Liveness probe."""
    return {"ok": True, "service": settings.service_name}


@router.get("/version")
async def version():
    return {"version": __version__}
