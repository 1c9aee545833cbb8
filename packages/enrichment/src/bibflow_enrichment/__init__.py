"""
Background and on-demand enrichment for bibflow.

Provides:
- Priority queue of enrichment requests
- Enrichment service with ordered provider fallback and a background loop
- Failed request tracking and retry policy
- Coordinator linking stored records to the service
"""

from __future__ import annotations

from bibflow_enrichment.coordinator import (
    EnrichmentCoordinator,
    RecordStoreProtocol,
    StoredRecord,
)
from bibflow_enrichment.queue import EnrichmentPriority, EnrichmentQueue, EnrichmentRequest
from bibflow_enrichment.retry import RetryPolicy
from bibflow_enrichment.runtime import Runtime, build_runtime, credentials_from_settings
from bibflow_enrichment.service import DEFAULT_SOURCE_PRIORITY, EnrichmentService
from bibflow_enrichment.tracker import FailedRequest, FailedRequestTracker

__all__ = [
    "DEFAULT_SOURCE_PRIORITY",
    "EnrichmentCoordinator",
    "EnrichmentPriority",
    "EnrichmentQueue",
    "EnrichmentRequest",
    "EnrichmentService",
    "FailedRequest",
    "FailedRequestTracker",
    "RecordStoreProtocol",
    "RetryPolicy",
    "Runtime",
    "StoredRecord",
    "build_runtime",
    "credentials_from_settings",
]
