"""
Concurrent search across registered sources.

Provides:
- Fan-out to a selected subset of sources
- Per-source failure isolation
- Registration-order reassembly of results
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from bibflow_connectors.base import (
    DEFAULT_MAX_RESULTS,
    InvalidRequestError,
    SourceCapability,
    SourcePlugin,
    supports,
)
from bibflow_connectors.dedup import DeduplicationService, FuzzyMatchPolicy, UnifiedResult
from bibflow_connectors.models import SearchResult, SourceMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchOptions:
    """
    Per-call search options.

    Attributes:
        source_ids: Sources to query; all registered sources when ``None``
        max_results: Per-source result cap
    """

    source_ids: Sequence[str] | None = None
    max_results: int = DEFAULT_MAX_RESULTS


class SourceManager:
    """
    Holds the constructed sources for its lifetime and fans queries out to them.

    A failing source never fails the overall search: the error is logged
    and that source contributes zero results.
    """

    def __init__(self, sources: Iterable[SourcePlugin] = (), dedup_policy: FuzzyMatchPolicy | None = None):
        self._sources: dict[str, SourcePlugin] = {}
        self.dedup_policy = dedup_policy
        for source in sources:
            self.register(source)

    def register(self, source: SourcePlugin) -> None:
        source_id = source.metadata.id
        if source_id in self._sources:
            raise ValueError(f"Source already registered: {source_id}")
        self._sources[source_id] = source
        logger.info("source_registered", extra={"source": source_id})

    @property
    def source_ids(self) -> list[str]:
        return list(self._sources)

    def get(self, source_id: str) -> SourcePlugin | None:
        return self._sources.get(source_id)

    def available_sources(self) -> list[SourceMetadata]:
        return [source.metadata for source in self._sources.values()]

    def sources_supporting(self, capability: SourceCapability) -> list[SourcePlugin]:
        return [source for source in self._sources.values() if supports(source, capability)]

    def _select(self, source_ids: Sequence[str] | None) -> list[SourcePlugin]:
        if source_ids is None:
            return list(self._sources.values())
        unknown = [sid for sid in source_ids if sid not in self._sources]
        if unknown:
            raise InvalidRequestError(f"Unknown source(s): {', '.join(unknown)}")
        wanted = set(source_ids)
        # Registration order, not caller order
        return [source for sid, source in self._sources.items() if sid in wanted]

    async def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        """
        Search the selected sources concurrently.

        Args:
            query: Free text or provider query string
            options: Source selection and result cap

        Returns:
            Results from every successful source, concatenated in
            registration order
        """
        options = options or SearchOptions()
        if not query or not query.strip():
            raise InvalidRequestError("Query must not be empty")
        selected = self._select(options.source_ids)

        started = time.perf_counter()
        batches = await asyncio.gather(
            *(self._search_one(source, query, options.max_results) for source in selected)
        )
        results = [result for batch in batches for result in batch]
        logger.info(
            "search_complete",
            extra={
                "query": query,
                "sources": [source.metadata.id for source in selected],
                "total_results": len(results),
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return results

    async def _search_one(self, source: SourcePlugin, query: str, max_results: int) -> list[SearchResult]:
        source_id = source.metadata.id
        try:
            results = await source.search(query, max_results=max_results)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "source_search_failed",
                extra={"source": source_id, "error": str(e), "error_type": type(e).__name__},
            )
            return []
        logger.info("source_search_complete", extra={"source": source_id, "results": len(results)})
        return results[:max_results]

    def deduplication_service(self) -> DeduplicationService:
        return DeduplicationService.for_sources(self._sources.values(), policy=self.dedup_policy)

    async def search_deduplicated(self, query: str, options: SearchOptions | None = None) -> list[UnifiedResult]:
        results = await self.search(query, options)
        return self.deduplication_service().deduplicate(results)

    async def aclose(self) -> None:
        for source in self._sources.values():
            close = getattr(source, "aclose", None)
            if close is not None:
                await close()
