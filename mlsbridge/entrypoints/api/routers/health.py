# mlsbridge/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..deps import require_api_key
from ....config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    def _redact(v: str | None) -> str | None:
        if not v:
            return v
        if len(v) <= 8:
            return "***"
        return v[:4] + "***" + v[-4:]

    return {
        "ENV": settings.ENV,
        "MLS_DB_URL": settings.MLS_DB_URL,
        "MLS_PROVIDER": settings.MLS_PROVIDER,
        "MLS_ENVIRONMENT": settings.MLS_ENVIRONMENT,
        "MLS_API_URL": settings.MLS_API_URL,
        "MLS_LOGIN_URL": settings.MLS_LOGIN_URL,
        "MLS_CLIENT_ID": _redact(settings.MLS_CLIENT_ID),
        "MLS_CLIENT_SECRET_SET": bool(settings.MLS_CLIENT_SECRET),
        "MLS_REQUESTS_PER_MINUTE": settings.MLS_REQUESTS_PER_MINUTE,
        "SYNC_ENABLED": settings.SYNC_ENABLED,
        "SYNC_INTERVAL_MINUTES": settings.SYNC_INTERVAL_MINUTES,
        "GEOCODER_URL": settings.GEOCODER_URL,
    }
