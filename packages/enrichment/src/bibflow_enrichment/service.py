"""
Enrichment orchestration.

Provides:
- On-demand enrichment with ordered provider fallback
- Queueing of background enrichment requests
- The background loop that drains the queue
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any, Union

from bibflow_connectors import (
    ConnectorError,
    EnrichmentCapability,
    EnrichmentData,
    EnrichmentPlugin,
    EnrichmentResult,
    Identifiers,
    NetworkError,
    NoIdentifierError,
    NoSourceAvailableError,
    RateLimitError,
    SearchResult,
    SourceCapability,
    coerce_identifiers,
    supports,
)
from bibflow_enrichment.queue import EnrichmentPriority, EnrichmentQueue, EnrichmentRequest
from bibflow_enrichment.retry import RetryPolicy
from bibflow_enrichment.tracker import FailedRequestTracker
from bibflow_observability import bound

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_PRIORITY = ("ads", "openalex", "semanticscholar")
DEFAULT_ITEM_DELAY_SECONDS = 0.1
DEFAULT_IDLE_DELAY_SECONDS = 1.0

CompletionCallback = Callable[[Hashable, EnrichmentResult], Union[Awaitable[None], None]]

_RETRYABLE_ERRORS = (RateLimitError, NetworkError)


class EnrichmentService:
    """
    Fetches citation data for known works.

    ``enrich_now`` tries enrichment-capable plugins in the configured
    priority order. A rate-limited provider fails the whole call rather
    than falling back to the next one.

    The background loop dequeues one request at a time and hands each
    successful result to the completion callback; this service never
    touches storage itself.
    """

    def __init__(
        self,
        plugins: Iterable[EnrichmentPlugin] = (),
        *,
        source_priority: Sequence[str] = DEFAULT_SOURCE_PRIORITY,
        queue: EnrichmentQueue | None = None,
        tracker: FailedRequestTracker | None = None,
        on_enrichment_complete: CompletionCallback | None = None,
        item_delay: float = DEFAULT_ITEM_DELAY_SECONDS,
        idle_delay: float = DEFAULT_IDLE_DELAY_SECONDS,
    ):
        """
        Initialize enrichment service.

        Args:
            plugins: Enrichment-capable sources
            source_priority: Provider ids in preference order; unlisted providers go last
            queue: Pending request queue
            tracker: Where background failures are recorded
            on_enrichment_complete: Called with (target_id, result) after each
                successful background enrichment
            item_delay: Pause after each processed request
            idle_delay: Pause when the queue is empty
        """
        self._plugins: dict[str, EnrichmentPlugin] = {}
        for plugin in plugins:
            self.register(plugin)
        self.source_priority = list(source_priority)
        self.queue = queue or EnrichmentQueue()
        self.tracker = tracker or FailedRequestTracker()
        self.on_enrichment_complete = on_enrichment_complete
        self.item_delay = item_delay
        self.idle_delay = idle_delay

        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @classmethod
    def from_sources(cls, sources: Iterable[object], **kwargs: Any) -> EnrichmentService:
        """Build a service from every source that implements enrichment."""
        plugins = [s for s in sources if supports(s, SourceCapability.ENRICHMENT)]
        return cls(plugins, **kwargs)  # type: ignore[arg-type]

    def register(self, plugin: EnrichmentPlugin) -> None:
        self._plugins[plugin.metadata.id] = plugin

    def set_on_enrichment_complete(self, callback: CompletionCallback | None) -> None:
        self.on_enrichment_complete = callback

    @property
    def registered_plugins(self) -> list[EnrichmentPlugin]:
        return list(self._plugins.values())

    def plugin_for(self, source_id: str) -> EnrichmentPlugin | None:
        return self._plugins.get(source_id)

    def plugins_supporting(self, capability: EnrichmentCapability) -> list[EnrichmentPlugin]:
        return [p for p in self.ordered_plugins() if capability in p.enrichment_capabilities]

    def ordered_plugins(self) -> list[EnrichmentPlugin]:
        """Plugins in configured priority order; unlisted ones keep registration order."""
        rank = {source_id: i for i, source_id in enumerate(self.source_priority)}
        unlisted = len(rank)
        return sorted(self._plugins.values(), key=lambda p: rank.get(p.metadata.id, unlisted))

    # On-demand enrichment

    async def enrich_now(
        self,
        identifiers: Mapping[Any, str],
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        """
        Enrich a work using the first provider that succeeds.

        Args:
            identifiers: Known identifiers for the work
            existing_data: Previously fetched data to merge into

        Returns:
            Result from the first successful provider

        Raises:
            NoIdentifierError: If ``identifiers`` is empty
            RateLimitError: If a provider signals throttling; later providers are not tried
            NoSourceAvailableError: If no provider can handle the identifiers
            ConnectorError: The last provider error when every tried provider failed
        """
        ids: Identifiers = coerce_identifiers(identifiers)
        if not ids:
            raise NoIdentifierError("No identifiers to enrich with")

        last_error: BaseException | None = None
        for plugin in self.ordered_plugins():
            source_id = plugin.metadata.id
            if not plugin.can_enrich(ids):
                logger.debug("enrichment_skip_source", extra={"source": source_id})
                continue
            try:
                result = await plugin.enrich(ids, existing_data)
            except asyncio.CancelledError:
                raise
            except RateLimitError as e:
                logger.warning(
                    "enrichment_rate_limited",
                    extra={"source": source_id, "retry_after": e.retry_after},
                )
                raise
            except Exception as e:
                logger.warning(
                    "enrichment_source_failed",
                    extra={"source": source_id, "error": str(e), "error_type": type(e).__name__},
                )
                last_error = e
                continue

            logger.info(
                "enrichment_succeeded",
                extra={"source": source_id, "citation_count": result.data.citation_count},
            )
            return result

        if last_error is None:
            raise NoSourceAvailableError(
                f"No enrichment source can handle identifiers: {sorted(k.value for k in ids)}"
            )
        if isinstance(last_error, ConnectorError):
            raise last_error
        raise NoSourceAvailableError(f"All enrichment sources failed: {last_error}") from last_error

    async def enrich_search_result(
        self,
        result: SearchResult,
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        return await self.enrich_now(result.identifiers, existing_data)

    async def enrich_with_retry(
        self,
        identifiers: Mapping[Any, str],
        policy: RetryPolicy | None = None,
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        """
        ``enrich_now`` with bounded retries for rate limits and network errors.

        Any other error is raised immediately.
        """
        policy = policy or RetryPolicy()
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await self.enrich_now(identifiers, existing_data)
            except _RETRYABLE_ERRORS as e:
                if attempt >= policy.max_attempts:
                    raise
                retry_after = e.retry_after if isinstance(e, RateLimitError) else None
                delay = policy.delay_for(attempt, retry_after)
                logger.info(
                    "enrichment_retry",
                    extra={
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "sleep_seconds": round(delay, 3),
                        "error_type": type(e).__name__,
                    },
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    # Queueing

    def queue_for_enrichment(
        self,
        target_id: Hashable,
        identifiers: Mapping[Any, str],
        priority: EnrichmentPriority = EnrichmentPriority.LIBRARY_PAPER,
    ) -> EnrichmentRequest:
        """
        Enqueue background enrichment.

        Staleness checks are the caller's job; this always enqueues.
        """
        request = EnrichmentRequest(target_id=target_id, identifiers=coerce_identifiers(identifiers), priority=priority)
        self.queue.enqueue(request)
        logger.debug(
            "enrichment_queued",
            extra={"target_id": str(target_id), "priority": priority.name, "depth": self.queue.count},
        )
        return request

    def queue_depth(self) -> int:
        return self.queue.count

    async def process_next_queued(self) -> tuple[Hashable, EnrichmentResult | BaseException] | None:
        """Process one queued request outside the background loop."""
        request = self.queue.dequeue()
        if request is None:
            return None
        outcome = await self._process(request)
        return (request.target_id, outcome)

    async def _process(self, request: EnrichmentRequest) -> EnrichmentResult | BaseException:
        with bound(target_id=str(request.target_id)):
            try:
                result = await self.enrich_now(request.identifiers)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failure = self.tracker.record_failure(request, e)
                logger.warning(
                    "enrichment_request_failed",
                    extra={
                        "error": str(e),
                        "error_type": type(e).__name__,
                        "retry_count": failure.retry_count,
                    },
                )
                return e

            self.tracker.clear_failure(request.target_id)
            await self._notify(request.target_id, result)
            return result

    async def _notify(self, target_id: Hashable, result: EnrichmentResult) -> None:
        callback = self.on_enrichment_complete
        if callback is None:
            return
        try:
            outcome = callback(target_id, result)
            if inspect.isawaitable(outcome):
                await outcome
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("enrichment_callback_failed", extra={"target_id": str(target_id)})

    # Background loop

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start_background_sync(self) -> None:
        """Start the background loop. No-op if it is already running."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(self._stop_event), name="enrichment-background-sync")

    async def stop_background_sync(self, timeout: float | None = None) -> None:
        """
        Stop the background loop and wait for it to exit.

        An in-flight request is allowed to finish; no further request is
        dequeued. If ``timeout`` elapses first the loop is cancelled.
        No-op if the loop is not running.
        """
        task = self._task
        if task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.warning("enrichment_sync_stop_timeout", extra={"timeout_seconds": timeout})
            task.cancel()
            await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.error("enrichment_sync_crashed", exc_info=task.exception())
        if self._task is task:
            self._task = None
            self._stop_event = None

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        processed = 0
        logger.info("enrichment_sync_started")
        while not stop_event.is_set():
            request = self.queue.dequeue()
            if request is None:
                await _wait_or_stop(stop_event, self.idle_delay)
                continue
            await self._process(request)
            processed += 1
            await _wait_or_stop(stop_event, self.item_delay)
        logger.info("enrichment_sync_stopped", extra={"processed": processed})


async def _wait_or_stop(stop_event: asyncio.Event, delay: float) -> None:
    """Sleep for ``delay`` seconds, returning early once ``stop_event`` is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass
