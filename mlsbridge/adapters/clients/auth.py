# mlsbridge/adapters/clients/auth.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import httpx

from ...config import MLSCredentials
from ...domain.errors import MLSError, MLSErrorType, MLSIntegrationError, Result
from .http_resilience import RetryingRequestExecutor
from .rate_limiter import RateLimiter, rate_limit_error

log = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_S = 3600
REFRESH_SKEW_S = 30.0


class Authenticator(Protocol):
    async def ensure_valid_token(self) -> Result[None]: ...

    def auth_headers(self) -> dict[str, str]: ...

    def invalidate(self) -> None: ...

    @property
    def auth_status(self) -> str: ...


@dataclass
class _Token:
    access_token: str
    expires_at: float  # epoch seconds


def _auth_failure(code: str, message: str, *, details: Any = None, endpoint: str | None = None) -> MLSError:
    return MLSError(
        type=MLSErrorType.authentication,
        code=code,
        message=message,
        retryable=False,
        endpoint=endpoint,
        details=details,
    )


class AuthManager:
    """OAuth2 client-credentials token lifecycle (optionally with username/password)."""

    def __init__(
        self,
        credentials: MLSCredentials,
        executor: RetryingRequestExecutor,
        *,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        refresh_skew_s: float = REFRESH_SKEW_S,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.credentials = credentials
        self._executor = executor
        self._timeout = httpx.Timeout(timeout_s)
        self._transport = transport
        self._clock = clock
        self._skew = refresh_skew_s
        self._rate_limiter = rate_limiter
        self._token: _Token | None = None
        self._last_error: MLSError | None = None
        self._lock = asyncio.Lock()

    @property
    def token_expiry(self) -> float | None:
        return self._token.expires_at if self._token else None

    def is_token_valid(self) -> bool:
        return self._token is not None and self._clock() < self._token.expires_at - self._skew

    @property
    def auth_status(self) -> str:
        if self.is_token_valid():
            return "valid"
        if self._last_error is not None:
            return "invalid"
        return "expired"

    def invalidate(self) -> None:
        self._token = None

    def auth_headers(self) -> dict[str, str]:
        if self._token is None:
            raise MLSIntegrationError(_auth_failure("NO_TOKEN", "No access token; call ensure_valid_token first"))
        return {"Authorization": f"Bearer {self._token.access_token}"}

    async def ensure_valid_token(self) -> Result[None]:
        if self.is_token_valid():
            return Result.success()
        async with self._lock:
            # another waiter may have refreshed while we queued
            if self.is_token_valid():
                return Result.success()
            return await self._authenticate()

    async def _request_token(self) -> dict[str, Any]:
        c = self.credentials
        data = {
            "grant_type": "client_credentials",
            "client_id": c.client_id,
            "client_secret": c.client_secret,
        }
        if c.username and c.password:
            data["username"] = c.username
            data["password"] = c.password

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                c.token_url,
                headers={"accept": "application/json", "content-type": "application/x-www-form-urlencoded"},
                data=data,
            )
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, dict):
            raise MLSIntegrationError(_auth_failure("TOKEN_MISSING", "Token response is not an object"))
        return payload

    async def _authenticate(self) -> Result[None]:
        if not (self.credentials.client_id and self.credentials.client_secret):
            self._last_error = _auth_failure("NOT_CONFIGURED", "MLS client credentials are not configured")
            return Result.failure(self._last_error)

        # token requests share the data-call budget
        if self._rate_limiter is not None:
            decision = self._rate_limiter.check_limit()
            if not decision.allowed:
                return Result.failure(rate_limit_error(decision, self._clock()))

        result = await self._executor.execute("authenticate", self.credentials.token_url, self._request_token)
        if not result.ok:
            err = result.error
            self._last_error = err if err.type == MLSErrorType.authentication else _auth_failure(
                "AUTHENTICATION_FAILED",
                f"Token request failed: {err.message}",
                details=err.to_dict(),
                endpoint=err.endpoint,
            )
            self._token = None
            return Result.failure(self._last_error)

        payload = result.value or {}
        token = payload.get("access_token") or payload.get("accessToken")
        if not token:
            self._last_error = _auth_failure("TOKEN_MISSING", "Token response has no access token")
            return Result.failure(self._last_error)

        expires_in = payload.get("expires_in") or payload.get("expiresIn") or DEFAULT_EXPIRES_IN_S
        try:
            expires_in = float(expires_in)
        except (TypeError, ValueError):
            expires_in = float(DEFAULT_EXPIRES_IN_S)

        self._token = _Token(access_token=str(token), expires_at=self._clock() + expires_in)
        self._last_error = None
        log.info("MLS authentication succeeded; token valid for %ss", int(expires_in))
        return Result.success()


class ApiKeyAuth:
    """Static header auth for RapidAPI-style backends; there is no token to refresh."""

    def __init__(self, api_key: str, api_host: str | None = None) -> None:
        self._api_key = api_key
        self._api_host = api_host

    @property
    def auth_status(self) -> str:
        return "valid" if self._api_key else "invalid"

    async def ensure_valid_token(self) -> Result[None]:
        if not self._api_key:
            return Result.failure(_auth_failure("NOT_CONFIGURED", "API key is not configured"))
        return Result.success()

    def auth_headers(self) -> dict[str, str]:
        headers = {"X-RapidAPI-Key": self._api_key}
        if self._api_host:
            headers["X-RapidAPI-Host"] = self._api_host
        return headers

    def invalidate(self) -> None:
        return None
