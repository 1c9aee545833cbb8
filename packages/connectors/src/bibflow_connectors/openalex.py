"""
OpenAlex source for open scholarly metadata.

API: https://docs.openalex.org/
Rate limit: 100,000 requests/day; polite pool with a mailto.
"""

from __future__ import annotations

from typing import Any

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, NotFoundError, ParseError
from bibflow_connectors.bibtex import build_entry
from bibflow_connectors.models import (
    BibTeXEntry,
    CredentialRequirement,
    EnrichmentCapability,
    EnrichmentData,
    EnrichmentResult,
    Identifiers,
    IdentifierType,
    OpenAccessStatus,
    PaperStub,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
    coerce_identifiers,
    normalize_doi,
)

OPENALEX_PREFIX = "https://openalex.org/"
MAX_REFERENCE_STUBS = 100

_SEARCH_SELECT = (
    "id,doi,title,authorships,publication_year,primary_location,abstract_inverted_index,open_access,ids"
)


def reconstruct_abstract(inverted_index: dict[str, list[int]] | None) -> str | None:
    """Rebuild abstract text from OpenAlex's word -> positions index."""
    if not inverted_index:
        return None
    words: list[tuple[int, str]] = []
    for word, positions in inverted_index.items():
        for position in positions:
            words.append((position, word))
    words.sort(key=lambda pair: pair[0])
    return " ".join(word for _, word in words)


def _short_id(openalex_id: str) -> str:
    return openalex_id.replace(OPENALEX_PREFIX, "")


def _pmid(raw: str | None) -> str | None:
    if not raw:
        return None
    return raw.rstrip("/").rsplit("/", 1)[-1]


def _venue(work: dict[str, Any]) -> str | None:
    source = (work.get("primary_location") or {}).get("source") or {}
    return source.get("display_name")


class OpenAlexSource(BaseSource):
    """
    Source for OpenAlex works.

    Features:
    - Free, no API key required
    - Abstracts via inverted index
    - Citation counts, references and open access status for enrichment
    """

    BASE_URL = "https://api.openalex.org"

    metadata = SourceMetadata(
        id="openalex",
        name="OpenAlex",
        description="Open catalog of the world's scholarly works",
        rate_limit=RateLimit(100_000, 86_400),
        credential_requirement=CredentialRequirement.EMAIL_OPTIONAL,
        deduplication_priority=50,
    )

    enrichment_capabilities = frozenset(
        {
            EnrichmentCapability.CITATION_COUNT,
            EnrichmentCapability.REFERENCES,
            EnrichmentCapability.ABSTRACT,
            EnrichmentCapability.PDF_URL,
            EnrichmentCapability.OPEN_ACCESS,
            EnrichmentCapability.VENUE,
        }
    )

    def _params(self, **params: Any) -> dict[str, Any]:
        email = self.credentials.email(self.id)
        if email:
            params["mailto"] = email
        return params

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        data = await self._get_json(
            f"{self.BASE_URL}/works",
            params=self._params(search=query, **{"per-page": min(max_results, 200)}, select=_SEARCH_SELECT),
        )
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise ParseError("Invalid OpenAlex response")
        results = [r for r in (self._parse_work(work) for work in data["results"]) if r]
        return results[:max_results]

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        if result.doi:
            response = await self._request(
                "GET",
                f"https://doi.org/{result.doi}",
                headers={"Accept": "application/x-bibtex"},
            )
            return self._parse_single_bibtex(response.text, detail=result.doi)
        return build_entry(
            entry_type="article",
            authors=result.authors,
            title=result.title,
            year=result.year,
            journal=result.venue,
            abstract=result.abstract,
            url=result.web_url,
        )

    async def resolve_identifier(self, id_type: IdentifierType, value: str) -> Identifiers:
        work = await self._fetch_work({id_type: value})
        resolved = self._identifiers_of(work)
        resolved.setdefault(id_type, value)
        return resolved

    def can_enrich(self, identifiers: Identifiers) -> bool:
        return IdentifierType.DOI in identifiers or IdentifierType.PMID in identifiers

    async def enrich(
        self,
        identifiers: Identifiers,
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        work = await self._fetch_work(identifiers)
        data = self._parse_enrichment(work)
        resolved = dict(identifiers)
        for id_type, value in self._identifiers_of(work).items():
            resolved.setdefault(id_type, value)
        return EnrichmentResult(data=data.merging(existing_data), resolved_identifiers=resolved)

    async def _fetch_work(self, identifiers: Identifiers) -> dict[str, Any]:
        if identifiers.get(IdentifierType.DOI):
            key = f"https://doi.org/{normalize_doi(identifiers[IdentifierType.DOI])}"
        elif identifiers.get(IdentifierType.PMID):
            key = f"pmid:{identifiers[IdentifierType.PMID]}"
        else:
            raise NotFoundError("OpenAlex lookups need a DOI or PMID")
        work = await self._get_json(f"{self.BASE_URL}/works/{key}", params=self._params())
        if not isinstance(work, dict) or "id" not in work:
            raise ParseError("Invalid OpenAlex work response")
        return work

    def _identifiers_of(self, work: dict[str, Any]) -> Identifiers:
        ids = work.get("ids") or {}
        doi = work.get("doi") or ids.get("doi")
        return coerce_identifiers(
            {
                IdentifierType.DOI: normalize_doi(doi) if doi else None,
                IdentifierType.PMID: _pmid(ids.get("pmid")),
            }
        )

    def _parse_work(self, work: dict[str, Any]) -> SearchResult | None:
        openalex_id = work.get("id")
        if not openalex_id:
            return None

        authors = tuple(
            (authorship.get("author") or {}).get("display_name")
            for authorship in work.get("authorships") or []
            if (authorship.get("author") or {}).get("display_name")
        )
        ids = self._identifiers_of(work)

        pdf_links: tuple[PDFLink, ...] = ()
        oa_url = (work.get("open_access") or {}).get("oa_url")
        if oa_url:
            pdf_links = (PDFLink(url=oa_url, kind=PDFLinkKind.PUBLISHER, source_id=self.id),)

        return SearchResult(
            id=_short_id(openalex_id),
            source_id=self.id,
            title=work.get("title") or "Untitled",
            authors=authors,
            year=work.get("publication_year"),
            venue=_venue(work),
            abstract=reconstruct_abstract(work.get("abstract_inverted_index")),
            doi=ids.get(IdentifierType.DOI),
            pmid=ids.get(IdentifierType.PMID),
            pdf_links=pdf_links,
            web_url=openalex_id,
        )

    def _parse_enrichment(self, work: dict[str, Any]) -> EnrichmentData:
        referenced = work.get("referenced_works")
        references = None
        if isinstance(referenced, list):
            # OpenAlex only returns ids here; titles would need one call per work
            references = tuple(
                PaperStub(id=_short_id(work_id), title="Referenced Work")
                for work_id in referenced[:MAX_REFERENCE_STUBS]
            )

        open_access = work.get("open_access")
        status = None
        pdf_urls = None
        if isinstance(open_access, dict):
            if open_access.get("is_oa"):
                try:
                    status = OpenAccessStatus(open_access.get("oa_status"))
                except ValueError:
                    status = OpenAccessStatus.UNKNOWN
            else:
                status = OpenAccessStatus.CLOSED
            if open_access.get("oa_url"):
                pdf_urls = (open_access["oa_url"],)

        return EnrichmentData(
            citation_count=work.get("cited_by_count"),
            reference_count=len(referenced) if isinstance(referenced, list) else None,
            references=references,
            abstract=reconstruct_abstract(work.get("abstract_inverted_index")),
            pdf_urls=pdf_urls,
            venue=_venue(work),
            open_access_status=status,
            source_id=self.id,
            source_record_id=_short_id(work["id"]),
        )
