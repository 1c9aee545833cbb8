from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from bibflow_connectors import (
    FuzzyMatchPolicy,
    SourceManager,
    SourcePlugin,
    StaticCredentialProvider,
    build_sources,
)
from bibflow_core.settings import Settings
from bibflow_enrichment.retry import RetryPolicy
from bibflow_enrichment.service import EnrichmentService

logger = logging.getLogger(__name__)


def credentials_from_settings(settings: Settings) -> StaticCredentialProvider:
    return StaticCredentialProvider(
        api_keys={
            "ads": settings.ads_api_key,
            "semanticscholar": settings.semantic_scholar_api_key,
            "pubmed": settings.pubmed_api_key,
        },
        email=settings.contact_email,
    )


@dataclass
class Runtime:
    """Search and enrichment components sharing one set of sources."""

    manager: SourceManager
    enrichment: EnrichmentService
    retry_policy: RetryPolicy
    settings: Settings

    async def aclose(self) -> None:
        if self.enrichment.is_running:
            await self.enrichment.stop_background_sync()
        await self.manager.aclose()


def build_runtime(settings: Settings, sources: Sequence[SourcePlugin] | None = None) -> Runtime:
    """
    Wire sources, the search manager and the enrichment service from settings.

    Args:
        settings: Application settings
        sources: Pre-built sources; built from ``settings`` when omitted

    Returns:
        Runtime whose manager and enrichment service share the same sources
    """
    if sources is None:
        built: Sequence[SourcePlugin] = build_sources(
            credentials_from_settings(settings),
            enabled=settings.enabled_source_ids,
            timeout_seconds=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
            backoff_seconds=settings.http_backoff_seconds,
        )
    else:
        built = list(sources)

    manager = SourceManager(built, dedup_policy=FuzzyMatchPolicy(max_year_gap=settings.dedup_max_year_gap))
    enrichment = EnrichmentService.from_sources(
        built,
        source_priority=settings.enrichment_priority_ids,
        item_delay=settings.enrichment_item_delay_seconds,
        idle_delay=settings.enrichment_idle_delay_seconds,
    )
    logger.info(
        "runtime_built",
        extra={
            "sources": manager.source_ids,
            "enrichment_sources": [p.metadata.id for p in enrichment.ordered_plugins()],
        },
    )
    return Runtime(
        manager=manager,
        enrichment=enrichment,
        retry_policy=RetryPolicy.from_settings(settings),
        settings=settings,
    )
