# mlsbridge/service_layer/integration.py
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..adapters.clients.error_classifier import ErrorClassifier
from ..adapters.clients.geocoding import FixedGeocoder, Geocoder, HttpGeocoder
from ..adapters.clients.mls_client import MLSClient
from ..adapters.repos.properties import PropertyStore, SqlAlchemyPropertyStore
from ..config import MLSConfig, Settings
from ..domain.normalize import PropertyNormalizer
from .property_service import PropertyService, ServiceArea
from .sync_engine import SyncEngine, SyncSettings

log = logging.getLogger(__name__)


@dataclass
class MLSIntegration:
    """Everything the HTTP layer and scripts need, wired once per process."""

    config: MLSConfig
    client: MLSClient
    properties: PropertyService
    sync: SyncEngine

    async def initialize(self) -> None:
        result = await self.client.initialize()
        if not result.ok:
            log.warning("MLS initialize failed: %s (%s)", result.error.message, result.error.code)

    async def shutdown(self) -> None:
        await self.sync.stop()


def sync_settings_from(s: Settings) -> SyncSettings:
    return SyncSettings(
        batch_size=s.SYNC_BATCH_SIZE,
        page_pause_s=s.SYNC_PAGE_PAUSE_S,
        incremental_limit=s.SYNC_INCREMENTAL_LIMIT,
        interval_minutes=s.SYNC_INTERVAL_MINUTES,
        watermark_minutes=s.SYNC_INTERVAL_MINUTES,
        sweep_interval_minutes=s.CACHE_SWEEP_INTERVAL_MINUTES,
        max_pages=s.SYNC_MAX_PAGES,
        recent_jobs=s.SYNC_RECENT_JOBS,
    )


def _geocoder_from(s: Settings, transport: httpx.AsyncBaseTransport | None) -> Geocoder:
    if s.GEOCODER_URL:
        return HttpGeocoder(
            s.GEOCODER_URL,
            user_agent=s.GEOCODER_USER_AGENT,
            timeout_s=s.HTTP_TIMEOUT_S,
            transport=transport,
        )
    return FixedGeocoder(s.DEFAULT_LATITUDE, s.DEFAULT_LONGITUDE)


def build_integration(
    s: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    store: PropertyStore | None = None,
    geocoder: Geocoder | None = None,
) -> MLSIntegration:
    config = MLSConfig.from_settings(s)
    client = MLSClient(
        config,
        classifier=ErrorClassifier(alert_threshold=s.ERROR_ALERT_THRESHOLD),
        normalizer=PropertyNormalizer(default_state=s.DEFAULT_STATE),
        geocoder=geocoder or _geocoder_from(s, transport),
        transport=transport,
    )
    if store is None:
        # deferred: importing db builds the engine from MLS_DB_URL
        from ..db import async_session_maker

        store = SqlAlchemyPropertyStore(async_session_maker)

    area = ServiceArea(
        default_city=s.DEFAULT_CITY,
        default_state=s.DEFAULT_STATE,
        valid_postal_prefixes=tuple(s.VALID_POSTAL_PREFIXES),
    )
    return MLSIntegration(
        config=config,
        client=client,
        properties=PropertyService(client, area=area),
        sync=SyncEngine(client, store, settings=sync_settings_from(s)),
    )
