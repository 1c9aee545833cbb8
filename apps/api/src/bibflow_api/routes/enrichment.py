from __future__ import annotations

import asyncio
import logging
import math

from fastapi import APIRouter, HTTPException, Request

from bibflow_api.schemas.api import (
    EnrichmentOut,
    EnrichmentStatusOut,
    EnrichRequest,
    QueueRequest,
    QueueResponse,
    SweepResponse,
)
from bibflow_connectors import (
    ConnectorError,
    NoIdentifierError,
    NoSourceAvailableError,
    NotFoundError,
    RateLimitError,
)
from bibflow_enrichment import EnrichmentPriority

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrichment", tags=["enrichment"])


def _http_error(e: ConnectorError) -> HTTPException:
    if isinstance(e, NoIdentifierError):
        return HTTPException(status_code=400, detail=str(e) or "no identifiers supplied")
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e) or "work not found")
    if isinstance(e, RateLimitError):
        headers = {"Retry-After": str(math.ceil(e.retry_after))} if e.retry_after is not None else None
        return HTTPException(status_code=429, detail=str(e), headers=headers)
    if isinstance(e, NoSourceAvailableError):
        return HTTPException(status_code=503, detail=str(e) or "no enrichment source available")
    return HTTPException(status_code=502, detail=str(e))


@router.post("/enrich", response_model=EnrichmentOut)
async def enrich(request: Request, body: EnrichRequest) -> EnrichmentOut:
    runtime = request.app.state.runtime
    try:
        if body.retry:
            result = await runtime.enrichment.enrich_with_retry(body.identifiers, runtime.retry_policy)
        else:
            result = await runtime.enrichment.enrich_now(body.identifiers)
    except ConnectorError as e:
        logger.info("enrich_request_failed", extra={"error_type": type(e).__name__, "error": str(e)})
        raise _http_error(e) from e
    return EnrichmentOut.from_result(result)


@router.post("/queue", response_model=QueueResponse)
async def queue(request: Request, body: QueueRequest) -> QueueResponse:
    coordinator = request.app.state.coordinator
    store = request.app.state.record_store
    priority = EnrichmentPriority[body.priority.upper()]

    records = []
    for publication_id in body.publication_ids:
        record = await asyncio.to_thread(store.get, publication_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"publication not found: {publication_id}")
        records.append(record)

    queued = coordinator.queue_records(records, priority)
    return QueueResponse(
        queued=queued,
        skipped=len(records) - queued,
        queue_depth=coordinator.service.queue_depth(),
    )


@router.post("/sweep", response_model=SweepResponse)
async def sweep(request: Request) -> SweepResponse:
    coordinator = request.app.state.coordinator
    settings = request.app.state.settings
    queued = await coordinator.trigger_immediate_check(settings.enrichment_sweep_limit)
    return SweepResponse(queued=queued, queue_depth=coordinator.service.queue_depth())


@router.get("/status", response_model=EnrichmentStatusOut)
def status(request: Request) -> EnrichmentStatusOut:
    service = request.app.state.runtime.enrichment
    return EnrichmentStatusOut(
        running=service.is_running,
        queue_depth=service.queue_depth(),
        failures=service.tracker.failure_count,
        sources=[plugin.metadata.id for plugin in service.ordered_plugins()],
    )
