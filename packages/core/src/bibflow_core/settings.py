from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_env_file() -> str | None:
    cwd = Path.cwd().resolve()
    for base in (cwd, *cwd.parents):
        candidate = base / ".env"
        if candidate.exists():
            return str(candidate)
    return None


def split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_resolve_env_file() or ".env",
        env_file_encoding="utf-8",
        env_prefix="BIBFLOW_",
        extra="ignore",
    )

    environment: str = Field(default="local")
    database_url: str = Field(default="sqlite+pysqlite:///./bibflow.db")
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_background_enrichment: bool = Field(default=False)

    # Sources
    enabled_sources: str | None = Field(default=None)
    contact_email: str | None = Field(default=None)
    ads_api_key: str | None = Field(default=None)
    semantic_scholar_api_key: str | None = Field(default=None)
    pubmed_api_key: str | None = Field(default=None)
    http_timeout_seconds: float = Field(default=30.0, gt=0.0)
    http_max_retries: int = Field(default=3, ge=1)
    http_backoff_seconds: float = Field(default=1.0, ge=0.0)
    search_max_results: int = Field(default=50, ge=1, le=200)
    dedup_max_year_gap: int | None = Field(default=1, ge=0)

    # Enrichment
    enrichment_source_priority: str = Field(default="ads,openalex,semanticscholar")
    enrichment_item_delay_seconds: float = Field(default=0.1, ge=0.0)
    enrichment_idle_delay_seconds: float = Field(default=1.0, gt=0.0)
    enrichment_interactive_staleness_days: float = Field(default=1.0, ge=0.0)
    enrichment_background_staleness_days: float = Field(default=7.0, ge=0.0)
    enrichment_sweep_interval_seconds: float = Field(default=3600.0, gt=0.0)
    enrichment_sweep_limit: int = Field(default=100, ge=1)
    enrichment_max_failed_retries: int = Field(default=3, ge=0)
    enrichment_retry_max_attempts: int = Field(default=3, ge=1, le=10)
    enrichment_retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)
    enrichment_retry_max_delay_seconds: float = Field(default=30.0, ge=0.0)
    enrichment_retry_jitter_factor: float = Field(default=0.1, ge=0.0, le=1.0)

    @property
    def enabled_source_ids(self) -> list[str] | None:
        ids = split_csv(self.enabled_sources)
        return ids or None

    @property
    def enrichment_priority_ids(self) -> list[str]:
        return split_csv(self.enrichment_source_priority)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
