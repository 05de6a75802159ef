# scripts/init_db.py
import asyncio

from mlsbridge.adapters.repos.properties import SqlAlchemyPropertyStore
from mlsbridge.config import settings
from mlsbridge.db import async_session_maker, engine
from mlsbridge.models import Base


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    n = await SqlAlchemyPropertyStore(async_session_maker).count()
    print(f"{settings.MLS_DB_URL}: listings table ready, {n} synced listings.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
