# mlsbridge/service_layer/sync_engine.py
from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..adapters.cache import ResponseCache, store_property
from ..adapters.clients.mls_client import MLSClient
from ..adapters.repos.properties import PropertyStore
from ..domain.normalize import validate_property
from ..domain.parsing import to_datetime
from ..domain.types import Property, SearchCriteria, SearchResult, SortField
from ..jobs.scheduler import build_scheduler

log = logging.getLogger(__name__)


class SyncJobType(str, Enum):
    full = "full"
    incremental = "incremental"
    property = "property"
    search = "search"


class SyncJobStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


@dataclass
class SyncJob:
    id: str
    type: SyncJobType
    created_at: datetime
    status: SyncJobStatus = SyncJobStatus.pending
    criteria: SearchCriteria | None = None
    since: datetime | None = None
    property_ids: list[str] = field(default_factory=list)

    started_at: datetime | None = None
    finished_at: datetime | None = None
    records_processed: int = 0
    records_added: int = 0
    records_updated: int = 0
    records_failed: int = 0
    records_skipped: int = 0
    pages_fetched: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "since": self.since.isoformat() if self.since else None,
            "property_ids": list(self.property_ids),
            "records_processed": self.records_processed,
            "records_added": self.records_added,
            "records_updated": self.records_updated,
            "records_failed": self.records_failed,
            "records_skipped": self.records_skipped,
            "pages_fetched": self.pages_fetched,
            "error": self.error,
        }


@dataclass(frozen=True)
class SyncSettings:
    batch_size: int = 100
    page_pause_s: float = 1.0
    incremental_limit: int = 500
    interval_minutes: int = 15
    watermark_minutes: int = 15
    sweep_interval_minutes: int = 5
    max_pages: int = 1000
    recent_jobs: int = 50


class SyncEngine:
    """
    Background synchronization: one FIFO queue drained by a single worker
    task, plus APScheduler timers for the rolling incremental sync and the
    cache sweep (see `start`).
    """

    def __init__(
        self,
        client: MLSClient,
        store: PropertyStore,
        *,
        settings: SyncSettings | None = None,
        cache: ResponseCache | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings or SyncSettings()
        self.cache = cache or client.cache
        self._clock = clock
        self._sleep = sleep

        self._queue: deque[SyncJob] = deque()
        self._jobs: dict[str, SyncJob] = {}
        self._recent: deque[SyncJob] = deque(maxlen=self.settings.recent_jobs)
        self._current: SyncJob | None = None
        self._worker: asyncio.Task[None] | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._seq = itertools.count(1)
        self.last_sync: datetime | None = None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    # ----- lifecycle -----

    def start(self) -> None:
        if self._scheduler is not None:
            return
        s = self.settings
        self._scheduler = build_scheduler(
            incremental_sync=self.tick,
            cache_sweep=self.sweep_cache,
            sync_interval_minutes=s.interval_minutes,
            sweep_interval_minutes=s.sweep_interval_minutes,
        )
        self._scheduler.start()
        log.info("Sync engine started (incremental every %s min)", s.interval_minutes)

    async def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        log.info("Sync engine stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    # ----- scheduling -----

    def _enqueue(self, job_type: SyncJobType, **params: Any) -> str:
        now = self._now()
        job = SyncJob(
            id=f"{job_type.value}_{int(now.timestamp() * 1000)}_{next(self._seq)}",
            type=job_type,
            created_at=now,
            **params,
        )
        self._jobs[job.id] = job
        self._queue.append(job)
        log.info("Scheduled %s sync job %s", job_type.value, job.id)
        self._kick()
        return job.id

    def _kick(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # drained on the next wait_idle()/tick()
        self._worker = loop.create_task(self._drain())

    def schedule_full_sync(self, criteria: SearchCriteria | None = None) -> str:
        return self._enqueue(SyncJobType.full, criteria=criteria)

    def schedule_incremental_sync(self, since: datetime | None = None) -> str:
        # naive values are read as UTC, matching the provider filter
        since = to_datetime(since) or (self._now() - timedelta(hours=1))
        return self._enqueue(SyncJobType.incremental, since=since)

    def schedule_property_sync(self, listing_ids: Sequence[str]) -> str:
        ids = [i.strip() for i in listing_ids if i and i.strip()]
        if not ids:
            raise ValueError("listing_ids must not be empty")
        return self._enqueue(SyncJobType.property, property_ids=ids)

    def schedule_search_sync(self, criteria: SearchCriteria) -> str:
        return self._enqueue(SyncJobType.search, criteria=criteria)

    async def tick(self) -> str:
        """Timer body: incremental sync over a rolling watermark."""
        since = self._now() - timedelta(minutes=self.settings.watermark_minutes)
        return self.schedule_incremental_sync(since)

    async def sweep_cache(self) -> int:
        return self.cache.cleanup()

    async def wait_idle(self) -> None:
        if self._queue and (self._worker is None or self._worker.done()):
            self._kick()
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    # ----- worker -----

    async def _drain(self) -> None:
        while self._queue:
            job = self._queue.popleft()
            await self._run_job(job)

    async def _run_job(self, job: SyncJob) -> None:
        self._current = job
        job.status = SyncJobStatus.running
        job.started_at = self._now()
        log.info("Sync job %s started", job.id)
        try:
            if job.type == SyncJobType.full:
                await self._run_full(job)
            elif job.type == SyncJobType.incremental:
                await self._run_incremental(job)
            elif job.type == SyncJobType.property:
                await self._run_property(job)
            else:
                await self._run_search(job)
        except asyncio.CancelledError:
            self._finish_job_fail(job, "cancelled")
            raise
        except Exception as e:
            self._finish_job_fail(job, str(e))
        else:
            self._finish_job_success(job)
        finally:
            self._current = None

    def _finish_job_success(self, job: SyncJob) -> None:
        job.status = SyncJobStatus.completed
        job.finished_at = self._now()
        self.last_sync = job.finished_at
        self.client.mark_synced(job.finished_at)
        self._retire(job)
        log.info(
            "Sync job %s completed: processed=%s added=%s updated=%s failed=%s",
            job.id,
            job.records_processed,
            job.records_added,
            job.records_updated,
            job.records_failed,
        )

    def _retire(self, job: SyncJob) -> None:
        """Move a finished job into the bounded recent list; evicted jobs leave the index."""
        if len(self._recent) == self._recent.maxlen:
            evicted = self._recent[0] if self._recent else job
            self._jobs.pop(evicted.id, None)
        self._recent.append(job)

    def _finish_job_fail(self, job: SyncJob, error: str) -> None:
        job.status = SyncJobStatus.failed
        job.finished_at = self._now()
        job.error = error
        self._retire(job)
        log.error("Sync job %s failed: %s", job.id, error)

    async def _search_page(self, criteria: SearchCriteria) -> SearchResult:
        result = await self.client.search_properties(criteria, use_cache=False)
        return result.unwrap()

    async def _run_full(self, job: SyncJob) -> None:
        s = self.settings
        base = job.criteria or SearchCriteria()
        offset = 0
        while True:
            criteria = base.model_copy(
                update={
                    "limit": s.batch_size,
                    "offset": offset,
                    "sort_by": SortField.modification_timestamp,
                    "sort_order": "desc",
                }
            )
            page = await self._search_page(criteria)
            job.pages_fetched += 1
            await self._process_batch(job, page.properties)

            if not page.has_more:
                break
            if page.next_offset is None or page.next_offset <= offset:
                log.warning("Sync job %s: provider cursor did not advance at offset %s; stopping", job.id, offset)
                break
            if job.pages_fetched >= s.max_pages:
                log.warning(
                    "Sync job %s: stopped after %s pages (total_count=%s); results truncated",
                    job.id,
                    job.pages_fetched,
                    page.total_count,
                )
                break

            offset = page.next_offset
            await self._sleep(s.page_pause_s)

    async def _run_incremental(self, job: SyncJob) -> None:
        since = job.since or (self._now() - timedelta(hours=1))
        criteria = SearchCriteria(
            modified_since=since,
            limit=self.settings.incremental_limit,
            sort_by=SortField.modification_timestamp,
            sort_order="desc",
        )
        page = await self._search_page(criteria)
        job.pages_fetched = 1

        fresh = [p for p in page.properties if p.modification_timestamp >= since]
        job.records_skipped += len(page.properties) - len(fresh)
        await self._process_batch(job, fresh)

    async def _run_property(self, job: SyncJob) -> None:
        last_error: str | None = None
        for listing_id in job.property_ids:
            result = await self.client.get_property(listing_id, use_cache=False)
            if not result.ok:
                last_error = f"{listing_id}: {result.error.code} {result.error.message}"
                log.warning("Sync job %s: could not fetch %s (%s)", job.id, listing_id, result.error.code)
                job.records_failed += 1
                continue
            await self._process_record(job, result.value)

        if job.property_ids and job.records_failed == len(job.property_ids):
            raise RuntimeError(f"all {len(job.property_ids)} listings failed; last error: {last_error}")

    async def _run_search(self, job: SyncJob) -> None:
        page = await self._search_page(job.criteria or SearchCriteria())
        job.pages_fetched = 1
        await self._process_batch(job, page.properties)

    async def _process_batch(self, job: SyncJob, properties: Sequence[Property]) -> None:
        for prop in properties:
            await self._process_record(job, prop)

    async def _process_record(self, job: SyncJob, prop: Property) -> None:
        """validate -> classify new/updated -> cache with status TTL -> store"""
        try:
            ok, valid, errors = validate_property(prop)
            if not ok or valid is None:
                raise ValueError("; ".join(errors))
            is_new = store_property(self.cache, valid, self.client.policy)
            await self.store.upsert(valid, is_new)
        except Exception as e:
            job.records_failed += 1
            log.warning("Sync job %s: skipped %s: %s", job.id, prop.listing_id, e)
            return

        job.records_processed += 1
        if is_new:
            job.records_added += 1
        else:
            job.records_updated += 1

    # ----- observability -----

    def get_job(self, job_id: str) -> SyncJob | None:
        return self._jobs.get(job_id)

    def get_recent_jobs(self, limit: int = 10) -> list[SyncJob]:
        return list(reversed(self._recent))[:limit]

    def get_sync_status(self) -> dict[str, Any]:
        now = self._now()
        hour_ago = now - timedelta(hours=1)
        recent_failures = [
            j for j in self._recent if j.status == SyncJobStatus.failed and j.finished_at and j.finished_at >= hour_ago
        ]
        return {
            "is_running": self.is_running,
            "worker_active": self._worker is not None and not self._worker.done(),
            "current_job": self._current.to_dict() if self._current else None,
            "queue_length": len(self._queue),
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "recent_jobs": [j.to_dict() for j in self.get_recent_jobs()],
            "errors": [j.error for j in recent_failures if j.error],
            "api_status": "degraded" if recent_failures else "healthy",
        }

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def clear_cache(self, pattern: str | None = None) -> int:
        return self.cache.invalidate(pattern)

    async def refresh_property(self, listing_id: str) -> Property | None:
        """Out-of-band refresh of one listing through the same write path."""
        result = await self.client.get_property(listing_id, use_cache=False)
        if not result.ok:
            log.warning("refresh_property %s failed: %s", listing_id, result.error.code)
            return None
        is_new = store_property(self.cache, result.value, self.client.policy)
        await self.store.upsert(result.value, is_new)
        return result.value
