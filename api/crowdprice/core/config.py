from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from crowdprice.services.observations import DELETED_USER_ID


class Settings(BaseSettings):
    app_name: str = "crowdprice-api"
    app_version: str = "0.1.0"
    environment: str = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    repository_backend: Literal["postgres", "memory"] = "postgres"
    duplicate_window_hours: int = Field(default=24, gt=0)
    deleted_user_id: str = DELETED_USER_ID
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "crowdprice-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    otel_excluded_urls: str = "healthz,readyz"
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="CP_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
