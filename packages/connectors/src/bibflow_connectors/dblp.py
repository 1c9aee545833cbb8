"""
DBLP source for computer science bibliography.

API: https://dblp.org/faq/How+to+use+the+dblp+search+API.html
No published rate limit and no key required.
"""

from __future__ import annotations

from typing import Any

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, NotFoundError
from bibflow_connectors.models import (
    BibTeXEntry,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
)


class DBLPSource(BaseSource):
    """Source for the DBLP publication search API."""

    BASE_URL = "https://dblp.org"

    metadata = SourceMetadata(
        id="dblp",
        name="DBLP",
        description="Computer science bibliography",
        rate_limit=RateLimit.unlimited(),
        deduplication_priority=70,
    )

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        data = await self._get_json(
            f"{self.BASE_URL}/search/publ/api",
            params={"q": query, "format": "json", "h": min(max_results, 1000)},
        )
        # DBLP omits "hit" entirely when nothing matches
        hits = ((data or {}).get("result") or {}).get("hits") or {}
        results = [r for r in (self._parse_hit(hit) for hit in hits.get("hit") or []) if r]
        return results[:max_results]

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        if not result.bibtex_url:
            raise NotFoundError("No BibTeX URL")
        response = await self._request("GET", result.bibtex_url)
        return self._parse_single_bibtex(response.text, detail=result.id)

    def _parse_hit(self, hit: dict[str, Any]) -> SearchResult | None:
        info = hit.get("info")
        if not isinstance(info, dict) or not info.get("key"):
            return None
        key = info["key"]
        year = info.get("year")
        ee = info.get("ee")
        if isinstance(ee, list):
            ee = ee[0] if ee else None

        pdf_links: tuple[PDFLink, ...] = ()
        if ee:
            pdf_links = (PDFLink(url=ee, kind=PDFLinkKind.PUBLISHER, source_id=self.id),)

        return SearchResult(
            id=key,
            source_id=self.id,
            title=(info.get("title") or "Untitled").rstrip("."),
            authors=_authors(info),
            year=int(year) if isinstance(year, str) and year.isdigit() else None,
            venue=_venue(info.get("venue")),
            doi=info.get("doi"),
            pdf_links=pdf_links,
            web_url=f"{self.BASE_URL}/rec/{key}",
            bibtex_url=f"{self.BASE_URL}/rec/{key}.bib",
        )


def _authors(info: dict[str, Any]) -> tuple[str, ...]:
    author_data = (info.get("authors") or {}).get("author")
    # A single author comes back as a dict, several as a list
    if isinstance(author_data, dict):
        author_data = [author_data]
    if not isinstance(author_data, list):
        return ()
    return tuple(a["text"] for a in author_data if isinstance(a, dict) and a.get("text"))


def _venue(venue: Any) -> str | None:
    if isinstance(venue, list):
        return venue[0] if venue else None
    return venue
