# mlsbridge/jobs/scheduler.py
from __future__ import annotations

from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler


def build_scheduler(
    *,
    incremental_sync: Callable[[], Awaitable[Any]],
    cache_sweep: Callable[[], Awaitable[Any]],
    sync_interval_minutes: int = 15,
    sweep_interval_minutes: int = 5,
) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # steady-state freshness (rolling watermark incremental sync)
    sched.add_job(
        incremental_sync,
        "interval",
        minutes=sync_interval_minutes,
        id="mls_incremental_sync",
        max_instances=1,
        coalesce=True,
    )

    # proactive eviction so the cache does not grow between reads
    sched.add_job(
        cache_sweep,
        "interval",
        minutes=sweep_interval_minutes,
        id="mls_cache_sweep",
        max_instances=1,
        coalesce=True,
    )

    return sched
