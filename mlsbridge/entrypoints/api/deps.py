# mlsbridge/entrypoints/api/deps.py
from __future__ import annotations

from fastapi import Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ...config import settings
from ...domain.errors import PROPERTY_NOT_FOUND, MLSError, MLSErrorType, MLSIntegrationError
from ...service_layer.integration import MLSIntegration

_STATUS_BY_TYPE: dict[MLSErrorType, int] = {
    MLSErrorType.validation: 400,
    MLSErrorType.authentication: 401,
    MLSErrorType.quota_exceeded: 403,
    MLSErrorType.rate_limit: 429,
    MLSErrorType.network: 503,
    MLSErrorType.timeout: 503,
    MLSErrorType.service_unavailable: 503,
}


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


def get_integration(request: Request) -> MLSIntegration:
    integration = getattr(request.app.state, "integration", None)
    if integration is None:
        raise HTTPException(status_code=503, detail="MLS integration is not configured")
    return integration


def error_status(err: MLSError) -> int:
    if err.code == PROPERTY_NOT_FOUND:
        return 404
    return _STATUS_BY_TYPE.get(err.type, 502)


async def mls_error_handler(request: Request, exc: MLSIntegrationError) -> JSONResponse:
    # registered for MLSIntegrationError, raised by Result.unwrap() in the routers
    err = exc.error
    headers = {}
    if err.type == MLSErrorType.rate_limit and err.retry_after is not None:
        headers["Retry-After"] = str(max(1, round(err.retry_after)))
    return JSONResponse(status_code=error_status(err), content={"error": jsonable_encoder(err.to_dict())}, headers=headers)
