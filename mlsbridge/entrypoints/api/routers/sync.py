# mlsbridge/entrypoints/api/routers/sync.py
from __future__ import annotations

import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_integration, require_api_key
from ....schemas import FullSyncIn, IncrementalSyncIn, JobScheduled, PropertySyncIn
from ....service_layer.integration import MLSIntegration

router = APIRouter(tags=["sync"], dependencies=[Depends(require_api_key)])


@router.post("/sync/full", response_model=JobScheduled, status_code=202)
async def sync_full(
    body: FullSyncIn | None = None,
    integration: MLSIntegration = Depends(get_integration),
) -> JobScheduled:
    criteria = body.criteria if body else None
    return JobScheduled(job_id=integration.sync.schedule_full_sync(criteria))


@router.post("/sync/incremental", response_model=JobScheduled, status_code=202)
async def sync_incremental(
    body: IncrementalSyncIn | None = None,
    integration: MLSIntegration = Depends(get_integration),
) -> JobScheduled:
    since = body.since if body else None
    return JobScheduled(job_id=integration.sync.schedule_incremental_sync(since))


@router.post("/sync/properties", response_model=JobScheduled, status_code=202)
async def sync_properties(
    body: PropertySyncIn,
    integration: MLSIntegration = Depends(get_integration),
) -> JobScheduled:
    try:
        job_id = integration.sync.schedule_property_sync(body.listing_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JobScheduled(job_id=job_id)


@router.get("/sync/status")
def sync_status(integration: MLSIntegration = Depends(get_integration)) -> dict[str, Any]:
    return integration.sync.get_sync_status()


@router.get("/sync/jobs/{job_id}")
def sync_job(job_id: str, integration: MLSIntegration = Depends(get_integration)) -> dict[str, Any]:
    job = integration.sync.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")
    return job.to_dict()


@router.get("/cache/stats")
def cache_stats(integration: MLSIntegration = Depends(get_integration)) -> dict[str, Any]:
    return {
        "cache": integration.sync.get_cache_stats(),
        "errors": integration.client.classifier.error_stats(),
    }


@router.delete("/cache")
def clear_cache(
    pattern: str | None = Query(None, description="Regex over cache keys; omit to clear everything"),
    integration: MLSIntegration = Depends(get_integration),
) -> dict[str, int]:
    try:
        removed = integration.sync.clear_cache(pattern)
    except re.error as e:
        raise HTTPException(status_code=400, detail=f"Invalid pattern: {e}")
    return {"removed": removed}
