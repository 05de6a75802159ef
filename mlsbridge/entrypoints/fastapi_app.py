# mlsbridge/entrypoints/fastapi_app.py
from __future__ import annotations

import logging

from fastapi import FastAPI

from ..config import Settings, settings as default_settings
from ..domain.errors import MLSIntegrationError
from ..service_layer.integration import MLSIntegration, build_integration
from .api.deps import mls_error_handler
from .api.routers import health, mls, sync

log = logging.getLogger(__name__)


def create_app(
    integration: MLSIntegration | None = None,
    *,
    settings: Settings | None = None,
    create_tables: bool = True,
) -> FastAPI:
    s = settings or default_settings
    app = FastAPI(title="MLS Bridge - listings integration and sync")
    app.state.integration = integration or build_integration(s)

    @app.on_event("startup")
    async def _startup() -> None:
        if create_tables:
            # deferred: the engine is built from MLS_DB_URL on import
            from ..db import engine
            from ..models import Base

            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        if s.SYNC_ENABLED:
            app.state.integration.sync.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.integration.shutdown()

    app.add_exception_handler(MLSIntegrationError, mls_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(mls.router)
    app.include_router(sync.router)

    return app
