# mlsbridge/config.py
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    MLS_DB_URL: str = "sqlite+aiosqlite:///./mls.db"

    # --- Minimal B2B Auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Listings provider ---
    MLS_PROVIDER: str = "RESO"  # CMLS|RESO|BRIDGE|SPARK|TRESTLE|RAPIDAPI
    MLS_ENVIRONMENT: str = "sandbox"  # sandbox|production
    MLS_CLIENT_ID: str = ""
    MLS_CLIENT_SECRET: str = ""
    MLS_USERNAME: str | None = None
    MLS_PASSWORD: str | None = None
    MLS_LOGIN_URL: str | None = None
    MLS_API_URL: str = "https://api.mls.example.com/reso/odata"
    MLS_API_HOST: str | None = None  # RapidAPI only

    MLS_REQUESTS_PER_MINUTE: int = 60
    MLS_REQUESTS_PER_HOUR: int = 1000
    MLS_REQUESTS_PER_DAY: int = 10000

    MLS_PROPERTY_CACHE_TTL: int = 300
    MLS_SEARCH_CACHE_TTL: int = 180
    MLS_PHOTOS_CACHE_TTL: int = 1800

    # --- HTTP resilience ---
    HTTP_TIMEOUT_S: float = 30.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_BACKOFF_BASE_S: float = 1.0
    HTTP_BACKOFF_CAP_S: float = 30.0
    ERROR_ALERT_THRESHOLD: int = 10

    # --- Sync engine tuning ---
    SYNC_ENABLED: bool = False
    SYNC_INTERVAL_MINUTES: int = 15
    SYNC_BATCH_SIZE: int = 100
    SYNC_PAGE_PAUSE_S: float = 1.0
    SYNC_INCREMENTAL_LIMIT: int = 500
    SYNC_MAX_PAGES: int = 1000
    SYNC_RECENT_JOBS: int = 50
    CACHE_SWEEP_INTERVAL_MINUTES: int = 5

    # --- Service area ---
    DEFAULT_CITY: str = "Columbus"
    DEFAULT_STATE: str = "OH"
    VALID_POSTAL_PREFIXES: list[str] = ["432"]

    # --- Geocoding (market analysis) ---
    GEOCODER_URL: str | None = None
    GEOCODER_USER_AGENT: str = "mlsbridge/0.1 (+local dev)"
    DEFAULT_LATITUDE: float = 39.9612
    DEFAULT_LONGITUDE: float = -82.9988


class MLSCredentials(BaseModel):
    client_id: str
    client_secret: str
    username: str | None = None
    password: str | None = None
    login_url: str | None = None
    api_url: str
    api_host: str | None = None

    @property
    def token_url(self) -> str:
        return self.login_url or f"{self.api_url.rstrip('/')}/Token"


class RateLimitConfig(BaseModel):
    requests_per_minute: int = Field(60, ge=1, le=1000)
    requests_per_hour: int = Field(1000, ge=1, le=10000)
    requests_per_day: int = Field(10000, ge=1, le=100000)


class CacheConfig(BaseModel):
    property_cache_ttl: int = Field(300, ge=60, le=86400)
    search_cache_ttl: int = Field(180, ge=30, le=3600)
    photos_cache_ttl: int = Field(1800, ge=300, le=604800)


class MLSConfig(BaseModel):
    """Validated provider configuration handed to the MLS client."""

    provider: Literal["CMLS", "RESO", "BRIDGE", "SPARK", "TRESTLE", "RAPIDAPI"] = "RESO"
    environment: Literal["sandbox", "production"] = "sandbox"
    credentials: MLSCredentials
    rate_limiting: RateLimitConfig = Field(default_factory=RateLimitConfig)
    caching: CacheConfig = Field(default_factory=CacheConfig)
    timeout_s: float = Field(30.0, gt=0)
    max_retries: int = Field(3, ge=0, le=10)
    backoff_base_s: float = Field(1.0, ge=0)
    backoff_cap_s: float = Field(30.0, ge=0)

    @classmethod
    def from_settings(cls, s: Settings) -> "MLSConfig":
        return cls(
            provider=s.MLS_PROVIDER.upper(),
            environment=s.MLS_ENVIRONMENT.lower(),
            credentials=MLSCredentials(
                client_id=s.MLS_CLIENT_ID,
                client_secret=s.MLS_CLIENT_SECRET,
                username=s.MLS_USERNAME,
                password=s.MLS_PASSWORD,
                login_url=s.MLS_LOGIN_URL,
                api_url=s.MLS_API_URL,
                api_host=s.MLS_API_HOST,
            ),
            rate_limiting=RateLimitConfig(
                requests_per_minute=s.MLS_REQUESTS_PER_MINUTE,
                requests_per_hour=s.MLS_REQUESTS_PER_HOUR,
                requests_per_day=s.MLS_REQUESTS_PER_DAY,
            ),
            caching=CacheConfig(
                property_cache_ttl=s.MLS_PROPERTY_CACHE_TTL,
                search_cache_ttl=s.MLS_SEARCH_CACHE_TTL,
                photos_cache_ttl=s.MLS_PHOTOS_CACHE_TTL,
            ),
            timeout_s=s.HTTP_TIMEOUT_S,
            max_retries=s.HTTP_MAX_RETRIES,
            backoff_base_s=s.HTTP_BACKOFF_BASE_S,
            backoff_cap_s=s.HTTP_BACKOFF_CAP_S,
        )


settings = Settings()
