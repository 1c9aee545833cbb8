"""
Semantic Scholar source.

API: https://api.semanticscholar.org/api-docs/graph
Rate limit: 100 req/s with a key; the shared unauthenticated pool is much tighter.
"""

from __future__ import annotations

from typing import Any

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, NotFoundError, ParseError
from bibflow_connectors.bibtex import build_entry
from bibflow_connectors.models import (
    AuthorStats,
    BibTeXEntry,
    CredentialRequirement,
    EnrichmentCapability,
    EnrichmentData,
    EnrichmentResult,
    Identifiers,
    IdentifierType,
    PaperStub,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
    coerce_identifiers,
    normalize_arxiv_id,
)

SEARCH_FIELDS = "paperId,title,authors,year,venue,abstract,externalIds,openAccessPdf,url"

_STUB_FIELDS = ("paperId", "title", "authors", "year", "venue", "externalIds", "citationCount", "openAccessPdf")
ENRICHMENT_FIELDS = ",".join(
    [
        "paperId",
        "title",
        "abstract",
        "year",
        "venue",
        "externalIds",
        "citationCount",
        "referenceCount",
        "openAccessPdf",
        "references",
        *(f"references.{f}" for f in _STUB_FIELDS),
        "citations",
        *(f"citations.{f}" for f in _STUB_FIELDS),
        "authors",
        "authors.authorId",
        "authors.name",
        "authors.hIndex",
        "authors.citationCount",
        "authors.paperCount",
        "authors.affiliations",
    ]
)

_EXTERNAL_ID_KEYS = {
    "DOI": IdentifierType.DOI,
    "ArXiv": IdentifierType.ARXIV,
    "PubMed": IdentifierType.PMID,
}

# S2 path prefixes, in lookup preference order
_PAPER_ID_PREFIXES = (
    (IdentifierType.DOI, "DOI"),
    (IdentifierType.ARXIV, "ARXIV"),
    (IdentifierType.PMID, "PMID"),
)


def paper_id_for(identifiers: Identifiers) -> str | None:
    """Build an S2 paper reference such as ``DOI:10.1/x`` or ``ARXIV:2401.12345``."""
    for id_type, prefix in _PAPER_ID_PREFIXES:
        value = identifiers.get(id_type)
        if value:
            if id_type == IdentifierType.ARXIV:
                value = normalize_arxiv_id(value)
            return f"{prefix}:{value}"
    return None


def _external_ids(paper: dict[str, Any]) -> Identifiers:
    external = paper.get("externalIds") or {}
    return coerce_identifiers({id_type: external.get(key) for key, id_type in _EXTERNAL_ID_KEYS.items()})


def _author_names(paper: dict[str, Any]) -> tuple[str, ...]:
    return tuple(a["name"] for a in paper.get("authors") or [] if a.get("name"))


class SemanticScholarSource(BaseSource):
    """
    Source for the Semantic Scholar Academic Graph.

    Features:
    - API key optional (sent as ``x-api-key``)
    - Full reference and citation lists for enrichment
    - Recommendations for similar works
    """

    BASE_URL = "https://api.semanticscholar.org/graph/v1"
    RECOMMENDATIONS_URL = "https://api.semanticscholar.org/recommendations/v1"

    metadata = SourceMetadata(
        id="semanticscholar",
        name="Semantic Scholar",
        description="AI-powered research tool with citation context",
        rate_limit=RateLimit(100, 1),
        credential_requirement=CredentialRequirement.API_KEY_OPTIONAL,
        registration_url="https://www.semanticscholar.org/product/api#api-key-form",
        deduplication_priority=40,
    )

    enrichment_capabilities = frozenset(
        {
            EnrichmentCapability.CITATION_COUNT,
            EnrichmentCapability.REFERENCES,
            EnrichmentCapability.CITATIONS,
            EnrichmentCapability.ABSTRACT,
            EnrichmentCapability.PDF_URL,
            EnrichmentCapability.AUTHOR_STATS,
        }
    )

    def _headers(self) -> dict[str, str]:
        api_key = self.credentials.api_key(self.id)
        return {"x-api-key": api_key} if api_key else {}

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        data = await self._get_json(
            f"{self.BASE_URL}/paper/search",
            params={"query": query, "fields": SEARCH_FIELDS, "limit": min(max_results, 100)},
            headers=self._headers(),
        )
        if not isinstance(data, dict):
            raise ParseError("Invalid Semantic Scholar response")
        # An empty result page omits "data" entirely
        papers = data.get("data", [])
        if not isinstance(papers, list):
            raise ParseError("Invalid Semantic Scholar response")
        results = [r for r in (self._parse_paper(p) for p in papers) if r]
        return results[:max_results]

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        return build_entry(
            entry_type="article",
            authors=result.authors,
            title=result.title,
            year=result.year,
            journal=result.venue,
            abstract=result.abstract,
            doi=result.doi,
            eprint=result.arxiv_id,
            archiveprefix="arXiv" if result.arxiv_id else None,
            url=result.web_url,
        )

    async def resolve_identifier(self, id_type: IdentifierType, value: str) -> Identifiers:
        paper_id = paper_id_for({id_type: value})
        if paper_id is None:
            raise NotFoundError(f"Semantic Scholar cannot look up {id_type.value} identifiers")
        paper = await self._get_json(
            f"{self.BASE_URL}/paper/{paper_id}",
            params={"fields": "paperId,externalIds"},
            headers=self._headers(),
        )
        resolved = _external_ids(paper)
        resolved.setdefault(id_type, value)
        return resolved

    async def fetch_similar(self, result: SearchResult, max_results: int = 20) -> list[SearchResult]:
        paper_id = result.id if result.source_id == self.id else paper_id_for(result.identifiers)
        if not paper_id:
            raise NotFoundError("No identifier to find similar works for")
        data = await self._get_json(
            f"{self.RECOMMENDATIONS_URL}/papers/forpaper/{paper_id}",
            params={"fields": SEARCH_FIELDS, "limit": max_results},
            headers=self._headers(),
        )
        papers = data.get("recommendedPapers", []) if isinstance(data, dict) else None
        if not isinstance(papers, list):
            raise ParseError("Invalid Semantic Scholar recommendations response")
        return [r for r in (self._parse_paper(p) for p in papers) if r][:max_results]

    def can_enrich(self, identifiers: Identifiers) -> bool:
        return paper_id_for(identifiers) is not None

    async def enrich(
        self,
        identifiers: Identifiers,
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        paper_id = paper_id_for(identifiers)
        if paper_id is None:
            raise NotFoundError("Semantic Scholar needs a DOI, arXiv id or PMID")
        paper = await self._get_json(
            f"{self.BASE_URL}/paper/{paper_id}",
            params={"fields": ENRICHMENT_FIELDS},
            headers=self._headers(),
        )
        if not isinstance(paper, dict):
            raise ParseError("Invalid Semantic Scholar paper response")

        resolved = dict(identifiers)
        for id_type, value in _external_ids(paper).items():
            resolved.setdefault(id_type, value)
        data = self._parse_enrichment(paper)
        return EnrichmentResult(data=data.merging(existing_data), resolved_identifiers=resolved)

    def _parse_paper(self, paper: dict[str, Any]) -> SearchResult | None:
        paper_id = paper.get("paperId")
        title = paper.get("title")
        if not paper_id or not title:
            return None
        ids = _external_ids(paper)

        pdf_links: tuple[PDFLink, ...] = ()
        pdf_url = (paper.get("openAccessPdf") or {}).get("url")
        if pdf_url:
            kind = PDFLinkKind.PREPRINT if "arxiv.org" in pdf_url else PDFLinkKind.PUBLISHER
            pdf_links = (PDFLink(url=pdf_url, kind=kind, source_id=self.id),)

        return SearchResult(
            id=paper_id,
            source_id=self.id,
            title=title,
            authors=_author_names(paper),
            year=paper.get("year"),
            venue=paper.get("venue") or None,
            abstract=paper.get("abstract"),
            doi=ids.get(IdentifierType.DOI),
            arxiv_id=ids.get(IdentifierType.ARXIV),
            pmid=ids.get(IdentifierType.PMID),
            pdf_links=pdf_links,
            web_url=paper.get("url"),
        )

    def _parse_enrichment(self, paper: dict[str, Any]) -> EnrichmentData:
        pdf_url = (paper.get("openAccessPdf") or {}).get("url")
        references = paper.get("references")
        citations = paper.get("citations")
        authors = paper.get("authors")
        return EnrichmentData(
            citation_count=paper.get("citationCount"),
            reference_count=paper.get("referenceCount"),
            references=_stubs(references) if isinstance(references, list) else None,
            citations=_stubs(citations) if isinstance(citations, list) else None,
            abstract=paper.get("abstract"),
            pdf_urls=(pdf_url,) if pdf_url else None,
            venue=paper.get("venue") or None,
            author_stats=_author_stats(authors) if isinstance(authors, list) else None,
            source_id=self.id,
            source_record_id=paper.get("paperId"),
        )


def _stubs(papers: list[dict[str, Any]]) -> tuple[PaperStub, ...]:
    stubs = []
    for paper in papers:
        if not paper.get("paperId") or not paper.get("title"):
            continue
        ids = _external_ids(paper)
        open_access = paper.get("openAccessPdf")
        stubs.append(
            PaperStub(
                id=paper["paperId"],
                title=paper["title"],
                authors=_author_names(paper),
                year=paper.get("year"),
                venue=paper.get("venue") or None,
                doi=ids.get(IdentifierType.DOI),
                arxiv_id=ids.get(IdentifierType.ARXIV),
                citation_count=paper.get("citationCount"),
                is_open_access=bool(open_access.get("url")) if isinstance(open_access, dict) else None,
            )
        )
    return tuple(stubs)


def _author_stats(authors: list[dict[str, Any]]) -> tuple[AuthorStats, ...]:
    stats = []
    for author in authors:
        if not author.get("authorId") or not author.get("name"):
            continue
        affiliations = [a["name"] if isinstance(a, dict) else str(a) for a in author.get("affiliations") or []]
        stats.append(
            AuthorStats(
                author_id=author["authorId"],
                name=author["name"],
                h_index=author.get("hIndex"),
                citation_count=author.get("citationCount"),
                paper_count=author.get("paperCount"),
                affiliations=tuple(affiliations) or None,
            )
        )
    return tuple(stats)
