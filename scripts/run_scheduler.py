# scripts/run_scheduler.py
from __future__ import annotations

import asyncio
import logging

from mlsbridge.config import settings
from mlsbridge.db import engine
from mlsbridge.models import Base
from mlsbridge.service_layer.integration import build_integration


def _quiet_logging() -> None:
    # Root defaults
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    # Quiet the usual offenders
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


async def main() -> None:
    _quiet_logging()
    log = logging.getLogger(__name__)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    integration = build_integration(settings)
    await integration.initialize()

    integration.sync.start()
    integration.sync.schedule_incremental_sync()
    log.info("Sync engine running (every %s min)", settings.SYNC_INTERVAL_MINUTES)

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await integration.shutdown()
        log.info("Sync engine stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
