"""
Crossref source for DOI registry metadata.

API: https://api.crossref.org/
Rate limit: 50 req/s in the polite pool; include a mailto if possible.
"""

from __future__ import annotations

import re
from typing import Any

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, NotFoundError, ParseError
from bibflow_connectors.models import (
    BibTeXEntry,
    CredentialRequirement,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
)

_SELECT_FIELDS = "DOI,title,author,published-print,published-online,issued,container-title,abstract,link,type"


class CrossrefSource(BaseSource):
    """
    Source for the Crossref works API.

    Features:
    - DOI-first metadata
    - BibTeX and RIS through doi.org content negotiation
    """

    BASE_URL = "https://api.crossref.org"
    DOI_URL = "https://doi.org"

    metadata = SourceMetadata(
        id="crossref",
        name="Crossref",
        description="DOI registration agency with metadata for scholarly content",
        rate_limit=RateLimit(50, 1),
        credential_requirement=CredentialRequirement.EMAIL_OPTIONAL,
        deduplication_priority=10,
    )

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        params: dict[str, str | int] = {
            "query": query,
            "rows": min(max_results, 100),
            "select": _SELECT_FIELDS,
        }
        email = self.credentials.email(self.id)
        if email:
            params["mailto"] = email

        data = await self._get_json(
            f"{self.BASE_URL}/works",
            params=params,
            headers={"Accept": "application/json"},
        )
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("items"), list):
            raise ParseError("Invalid Crossref response")

        results = [r for r in (self._parse_item(item) for item in message["items"]) if r]
        return results[:max_results]

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        doi = self._require_doi(result)
        response = await self._request(
            "GET",
            f"{self.DOI_URL}/{doi}",
            headers={"Accept": "application/x-bibtex"},
        )
        return self._parse_single_bibtex(response.text, detail=doi)

    async def fetch_ris(self, result: SearchResult) -> str:
        doi = self._require_doi(result)
        response = await self._request(
            "GET",
            f"{self.DOI_URL}/{doi}",
            headers={"Accept": "application/x-research-info-systems"},
        )
        text = response.text.strip()
        if not text:
            raise ParseError(f"No RIS record for {doi}")
        return text

    def _require_doi(self, result: SearchResult) -> str:
        if not result.doi:
            raise NotFoundError("No DOI available")
        return result.doi

    def _parse_item(self, item: dict[str, Any]) -> SearchResult | None:
        doi = item.get("DOI")
        if not doi:
            return None

        titles = item.get("title") or []
        title = titles[0] if titles else "Untitled"

        authors = []
        for author in item.get("author") or []:
            given = (author.get("given") or "").strip()
            family = (author.get("family") or "").strip()
            if not family:
                continue
            authors.append(f"{given} {family}" if given else family)

        abstract = item.get("abstract")
        if abstract:
            abstract = re.sub(r"<[^>]+>", "", abstract).strip()

        container = item.get("container-title") or []
        venue = container[0] if container else None

        pdf_links = tuple(
            PDFLink(url=link["URL"], kind=PDFLinkKind.PUBLISHER, source_id=self.id)
            for link in item.get("link") or []
            if link.get("content-type") == "application/pdf" and link.get("URL")
        )[:1]

        return SearchResult(
            id=doi,
            source_id=self.id,
            title=title,
            authors=tuple(authors),
            year=_extract_year(item),
            venue=venue,
            abstract=abstract or None,
            doi=doi,
            pdf_links=pdf_links,
            web_url=f"{self.DOI_URL}/{doi}",
            bibtex_url=f"{self.DOI_URL}/{doi}",
        )


def _extract_year(item: dict[str, Any]) -> int | None:
    """Extract publication year from Crossref date fields."""
    for key in ("published-print", "published-online", "issued", "created"):
        date_parts = (item.get(key) or {}).get("date-parts")
        if date_parts and isinstance(date_parts, list) and date_parts[0]:
            year = date_parts[0][0]
            if isinstance(year, int):
                return year
    return None
