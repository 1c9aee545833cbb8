from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from bibflow_api.schemas.api import SearchResponse, SearchResultOut, SourceOut
from bibflow_connectors import InvalidRequestError, SearchOptions, capabilities_of
from bibflow_core.settings import split_csv

router = APIRouter(tags=["sources"])


@router.get("/sources", response_model=list[SourceOut])
def list_sources(request: Request) -> list[SourceOut]:
    manager = request.app.state.runtime.manager
    return [
        SourceOut.build(source.metadata, [c.value for c in capabilities_of(source)])
        for source in (manager.get(source_id) for source_id in manager.source_ids)
    ]


@router.get("/search", response_model=SearchResponse)
async def search(
    request: Request,
    q: str = Query(min_length=1),
    sources: str | None = Query(default=None, description="Comma-separated source ids"),
    max_results: int | None = Query(default=None, ge=1, le=200),
    deduplicate: bool = True,
) -> SearchResponse:
    runtime = request.app.state.runtime
    options = SearchOptions(
        source_ids=split_csv(sources) or None,
        max_results=max_results or runtime.settings.search_max_results,
    )
    try:
        if deduplicate:
            unified = await runtime.manager.search_deduplicated(q, options)
            results = [SearchResultOut.from_unified(u) for u in unified]
        else:
            raw = await runtime.manager.search(q, options)
            results = [SearchResultOut.from_result(r) for r in raw]
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return SearchResponse(query=q, deduplicated=deduplicate, total=len(results), results=results)
