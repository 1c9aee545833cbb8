"""
INSPIRE HEP source for high-energy physics literature.

API: https://github.com/inspirehep/rest-api-doc
Rate limit: 15 requests per 5 seconds, no key required.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, NotFoundError, ParseError
from bibflow_connectors.models import (
    BibTeXEntry,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
)

SEARCH_FIELDS = ",".join(
    [
        "titles",
        "authors.full_name",
        "publication_info",
        "arxiv_eprints",
        "dois",
        "abstracts",
        "documents",
        "control_number",
    ]
)
LITERATURE_URL = "https://inspirehep.net/literature"


def extract_record_id(value: str) -> str | None:
    """INSPIRE record ids are numeric; accept a bare id or a literature URL."""
    value = value.strip()
    if value.isdigit():
        return value
    last = urlparse(value).path.rstrip("/").rsplit("/", 1)[-1]
    return last if last.isdigit() else None


class INSPIRESource(BaseSource):
    """
    Source for the INSPIRE HEP literature API.

    Features:
    - Free, no API key required
    - BibTeX and RIS through the literature endpoint's ``format`` parameter
    - Ranks ahead of ADS when deduplicating
    """

    BASE_URL = "https://inspirehep.net/api"

    # One rate-limit window
    default_retry_after = 5.0

    metadata = SourceMetadata(
        id="inspire",
        name="INSPIRE HEP",
        description="High Energy Physics literature database",
        rate_limit=RateLimit(15, 5),
        deduplication_priority=25,
    )

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        data = await self._get_json(
            f"{self.BASE_URL}/literature",
            params={
                "q": query,
                "size": min(max_results, 100),
                "sort": "mostrecent",
                "fields": SEARCH_FIELDS,
            },
            headers={"Accept": "application/json"},
        )
        hits = (data.get("hits") or {}).get("hits") if isinstance(data, dict) else None
        if not isinstance(hits, list):
            raise ParseError("Invalid INSPIRE response")
        return [r for r in (self._parse_hit(hit) for hit in hits) if r][:max_results]

    async def _export(self, result: SearchResult, export_format: str, accept: str) -> str:
        recid = extract_record_id(result.id)
        if recid is None:
            raise NotFoundError("No INSPIRE record id")
        response = await self._request(
            "GET",
            f"{self.BASE_URL}/literature",
            params={"q": f"recid:{recid}", "format": export_format},
            headers={"Accept": accept},
        )
        return response.text

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        text = await self._export(result, "bibtex", "application/x-bibtex")
        return self._parse_single_bibtex(text, detail=result.id)

    async def fetch_ris(self, result: SearchResult) -> str:
        text = (await self._export(result, "ris", "application/x-research-info-systems")).strip()
        if not text:
            raise ParseError(f"No RIS record for {result.id}")
        return text

    def normalize(self, entry: BibTeXEntry) -> BibTeXEntry:
        eprint = entry.get("eprint")
        if eprint and not entry.get("inspireurl"):
            return entry.with_fields(inspireurl=f"https://inspirehep.net/arxiv/{eprint}")
        return entry

    def _parse_hit(self, hit: dict[str, Any]) -> SearchResult | None:
        metadata = hit.get("metadata")
        if not isinstance(metadata, dict) or not isinstance(metadata.get("control_number"), int):
            return None
        recid = str(metadata["control_number"])

        pub_info = _first(metadata.get("publication_info")) or {}
        year = pub_info.get("year")
        doi = (_first(metadata.get("dois")) or {}).get("value")
        arxiv_id = (_first(metadata.get("arxiv_eprints")) or {}).get("value")

        return SearchResult(
            id=recid,
            source_id=self.id,
            title=(_first(metadata.get("titles")) or {}).get("title") or "Untitled",
            authors=tuple(
                a["full_name"] for a in metadata.get("authors") or [] if isinstance(a, dict) and a.get("full_name")
            ),
            year=year if isinstance(year, int) else None,
            venue=pub_info.get("journal_title"),
            abstract=(_first(metadata.get("abstracts")) or {}).get("value"),
            doi=doi,
            arxiv_id=arxiv_id,
            pdf_links=self._pdf_links(metadata, arxiv_id=arxiv_id, doi=doi),
            web_url=f"{LITERATURE_URL}/{recid}",
            bibtex_url=f"{self.BASE_URL}/literature?q=recid:{recid}&format=bibtex",
        )

    def _pdf_links(self, metadata: dict[str, Any], *, arxiv_id: str | None, doi: str | None) -> tuple[PDFLink, ...]:
        """arXiv first, then PDFs attached to the record, then the DOI resolver."""
        links: list[PDFLink] = []
        if arxiv_id:
            links.append(PDFLink(url=f"https://arxiv.org/pdf/{arxiv_id}.pdf", kind=PDFLinkKind.PREPRINT, source_id=self.id))
        for document in metadata.get("documents") or []:
            url = document.get("url") if isinstance(document, dict) else None
            if url and url.endswith(".pdf") and all(link.url != url for link in links):
                links.append(PDFLink(url=url, kind=PDFLinkKind.AUTHOR, source_id=self.id))
        if doi:
            links.append(PDFLink(url=f"https://doi.org/{doi}", kind=PDFLinkKind.PUBLISHER, source_id=self.id))
        return tuple(links)


def _first(value: Any) -> dict[str, Any] | None:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return None
