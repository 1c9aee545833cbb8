"""
Glue between stored publications and the enrichment service.

The coordinator decides which records are stale, queues them, and writes
background results back to the record store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

from bibflow_connectors import BibTeXEntry, EnrichmentResult, Identifiers, IdentifierType
from bibflow_enrichment.queue import EnrichmentPriority, EnrichmentRequest
from bibflow_enrichment.service import EnrichmentService

if TYPE_CHECKING:
    from bibflow_core.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_INTERACTIVE_STALENESS = timedelta(days=1)
DEFAULT_BACKGROUND_STALENESS = timedelta(days=7)


class StoredRecord(Protocol):
    @property
    def id(self) -> Hashable: ...

    @property
    def identifiers(self) -> Identifiers: ...

    @property
    def enriched_at(self) -> datetime | None: ...


class RecordStoreProtocol(Protocol):
    def create_from_entry(self, entry: BibTeXEntry, container_id: UUID | None = None) -> Any: ...

    def find_by_identifier(self, id_type: IdentifierType, value: str) -> Any | None: ...

    def fetch_all(self) -> Sequence[Any]: ...

    def records_needing_enrichment(self, older_than: datetime, limit: int = 100) -> Sequence[Any]: ...

    def save_enrichment_result(self, target_id: Hashable, result: EnrichmentResult) -> Any: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrichmentCoordinator:
    """
    Queues stale records for enrichment and persists the results.

    Interactive and library requests use the short staleness window;
    background sweeps use the long one.

    Args:
        service: Enrichment service that owns the queue and background loop
        store: Where records are read from and results saved to
        interactive_staleness: Re-enrich interactive/library records older than this
        background_staleness: Re-enrich records found by sweeps older than this
        max_failed_retries: Failed requests are re-queued by sweeps until they
            have failed this many times
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        service: EnrichmentService,
        store: RecordStoreProtocol,
        *,
        interactive_staleness: timedelta = DEFAULT_INTERACTIVE_STALENESS,
        background_staleness: timedelta = DEFAULT_BACKGROUND_STALENESS,
        max_failed_retries: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.service = service
        self.store = store
        self.interactive_staleness = interactive_staleness
        self.background_staleness = background_staleness
        self.max_failed_retries = max_failed_retries
        self._clock = clock
        self._started = False

    @classmethod
    def from_settings(
        cls,
        service: EnrichmentService,
        store: RecordStoreProtocol,
        settings: Settings,
    ) -> EnrichmentCoordinator:
        return cls(
            service,
            store,
            interactive_staleness=timedelta(days=settings.enrichment_interactive_staleness_days),
            background_staleness=timedelta(days=settings.enrichment_background_staleness_days),
            max_failed_retries=settings.enrichment_max_failed_retries,
        )

    @property
    def is_running(self) -> bool:
        return self._started and self.service.is_running

    def staleness_for(self, priority: EnrichmentPriority) -> timedelta:
        if priority == EnrichmentPriority.BACKGROUND_SYNC:
            return self.background_staleness
        return self.interactive_staleness

    def needs_enrichment(self, record: StoredRecord, priority: EnrichmentPriority) -> bool:
        if not record.identifiers:
            return False
        enriched_at = record.enriched_at
        if enriched_at is None:
            return True
        if enriched_at.tzinfo is None:
            enriched_at = enriched_at.replace(tzinfo=timezone.utc)
        return self._clock() - enriched_at >= self.staleness_for(priority)

    def queue_record(
        self,
        record: StoredRecord,
        priority: EnrichmentPriority = EnrichmentPriority.LIBRARY_PAPER,
    ) -> EnrichmentRequest | None:
        """
        Queue one record unless it has no identifiers or is still fresh.

        Returns:
            The queued request, or ``None`` when the record was skipped
        """
        if not self.needs_enrichment(record, priority):
            logger.debug(
                "enrichment_skipped",
                extra={"target_id": str(record.id), "has_identifiers": bool(record.identifiers)},
            )
            return None
        return self.service.queue_for_enrichment(record.id, record.identifiers, priority)

    def queue_records(
        self,
        records: Iterable[StoredRecord],
        priority: EnrichmentPriority = EnrichmentPriority.LIBRARY_PAPER,
    ) -> int:
        return sum(1 for record in records if self.queue_record(record, priority) is not None)

    def queue_stale_records(self, limit: int = 100) -> int:
        """
        Sweep the store for stale records and re-queue retryable failures.

        Targets already waiting in the queue are not queued twice.

        Returns:
            Number of requests added to the queue
        """
        pending = {request.target_id for request in self.service.queue.pending()}
        queued = 0

        cutoff = self._clock() - self.background_staleness
        for record in self.store.records_needing_enrichment(cutoff, limit):
            if record.id in pending:
                continue
            if self.queue_record(record, EnrichmentPriority.BACKGROUND_SYNC) is not None:
                pending.add(record.id)
                queued += 1

        for request in self.service.tracker.requests_for_retry(self.max_failed_retries):
            if request.target_id in pending:
                continue
            self.service.queue_for_enrichment(request.target_id, request.identifiers, request.priority)
            pending.add(request.target_id)
            queued += 1

        logger.info("stale_sweep_complete", extra={"queued": queued, "depth": self.service.queue_depth()})
        return queued

    async def trigger_immediate_check(self, limit: int = 100) -> int:
        """Run a stale sweep now; the sweep itself is synchronous storage work."""
        return await asyncio.to_thread(self.queue_stale_records, limit)

    async def start(self) -> None:
        if self._started:
            return
        self.service.set_on_enrichment_complete(self._save_result)
        await self.service.start_background_sync()
        self._started = True
        logger.info("enrichment_coordinator_started")

    async def stop(self, timeout: float | None = None) -> None:
        if not self._started:
            return
        await self.service.stop_background_sync(timeout)
        self.service.set_on_enrichment_complete(None)
        self._started = False
        logger.info("enrichment_coordinator_stopped")

    async def _save_result(self, target_id: Hashable, result: EnrichmentResult) -> None:
        await asyncio.to_thread(self.store.save_enrichment_result, target_id, result)
