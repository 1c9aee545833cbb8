"""
NASA Astrophysics Data System source.

API: https://ui.adsabs.harvard.edu/help/api/
Rate limit: 5,000 requests/day per token.
Requires an API token from https://ui.adsabs.harvard.edu/user/settings/token
"""

from __future__ import annotations

import re
from typing import Any

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, NotFoundError, ParseError
from bibflow_connectors.models import (
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

SEARCH_FIELDS = "bibcode,title,author,year,pub,abstract,doi,identifier,doctype"
ENRICHMENT_FIELDS = "bibcode,doi,identifier,citation_count,abstract,reference,pub"
ABS_URL = "https://ui.adsabs.harvard.edu/abs"
LINK_GATEWAY_URL = "https://ui.adsabs.harvard.edu/link_gateway"
MAX_REFERENCE_STUBS = 100

_NEW_STYLE_ARXIV = re.compile(r"^\d{4}\.\d{4,5}")


def extract_arxiv_id(doc: dict[str, Any]) -> str | None:
    """ADS lists arXiv ids among ``identifier`` values as ``arXiv:2301.12345``."""
    for identifier in doc.get("identifier") or []:
        if identifier.startswith("arXiv:"):
            return identifier[len("arXiv:"):]
        if _NEW_STYLE_ARXIV.match(identifier):
            return identifier
    return None


def _year(value: Any) -> int | None:
    try:
        return int(str(value)[:4])
    except (TypeError, ValueError):
        return None


class ADSSource(BaseSource):
    """
    Source for NASA ADS.

    Features:
    - Bibcode-native search with the ADS query language
    - BibTeX and RIS through the export service
    - Similar and co-read works
    - Citation counts and references for enrichment
    """

    BASE_URL = "https://api.adsabs.harvard.edu/v1"

    metadata = SourceMetadata(
        id="ads",
        name="NASA ADS",
        description="Astrophysics Data System for astronomy and physics",
        rate_limit=RateLimit(5000, 86_400),
        credential_requirement=CredentialRequirement.API_KEY,
        registration_url="https://ui.adsabs.harvard.edu/user/settings/token",
        deduplication_priority=30,
    )

    enrichment_capabilities = frozenset(
        {
            EnrichmentCapability.CITATION_COUNT,
            EnrichmentCapability.REFERENCES,
            EnrichmentCapability.ABSTRACT,
            EnrichmentCapability.VENUE,
        }
    )

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._require_api_key()}"}

    async def _query(self, q: str, *, fields: str, rows: int, sort: str | None = "score desc") -> list[dict[str, Any]]:
        params: dict[str, str | int] = {"q": q, "fl": fields, "rows": rows}
        if sort:
            params["sort"] = sort
        headers = self._auth_headers()
        data = await self._get_json(f"{self.BASE_URL}/search/query", params=params, headers=headers)
        docs = (data.get("response") or {}).get("docs") if isinstance(data, dict) else None
        if not isinstance(docs, list):
            raise ParseError("Invalid ADS response")
        return docs

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        docs = await self._query(query, fields=SEARCH_FIELDS, rows=max_results)
        return [r for r in (self._parse_doc(doc) for doc in docs) if r][:max_results]

    async def _export(self, result: SearchResult, export_format: str) -> str:
        headers = self._auth_headers()
        if not result.bibcode:
            raise NotFoundError("No bibcode")
        response = await self._request(
            "POST",
            f"{self.BASE_URL}/export/{export_format}",
            json={"bibcode": [result.bibcode]},
            headers=headers,
        )
        payload = self._json(response)
        exported = payload.get("export") if isinstance(payload, dict) else None
        if not isinstance(exported, str):
            raise ParseError(f"Invalid ADS {export_format} export response")
        return exported

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        exported = await self._export(result, "bibtex")
        return self._parse_single_bibtex(exported, detail=result.bibcode or result.id)

    async def fetch_ris(self, result: SearchResult) -> str:
        return (await self._export(result, "ris")).strip()

    def normalize(self, entry: BibTeXEntry) -> BibTeXEntry:
        bibcode = entry.get("bibcode")
        if bibcode and not entry.get("adsurl"):
            return entry.with_fields(adsurl=f"{ABS_URL}/{bibcode}")
        return entry

    async def resolve_identifier(self, id_type: IdentifierType, value: str) -> Identifiers:
        docs = await self._query(_lookup_query({id_type: value}), fields="bibcode,doi,identifier", rows=1, sort=None)
        if not docs:
            raise NotFoundError(f"ADS has no record for {id_type.value}:{value}")
        resolved = _doc_identifiers(docs[0])
        resolved.setdefault(id_type, value)
        return resolved

    async def fetch_similar(self, result: SearchResult, max_results: int = 20) -> list[SearchResult]:
        return await self._operator_search("similar", result, max_results)

    async def fetch_coreads(self, result: SearchResult, max_results: int = 20) -> list[SearchResult]:
        return await self._operator_search("trending", result, max_results)

    async def _operator_search(self, operator: str, result: SearchResult, max_results: int) -> list[SearchResult]:
        if not result.bibcode:
            raise NotFoundError("No bibcode")
        docs = await self._query(f'{operator}(bibcode:"{result.bibcode}")', fields=SEARCH_FIELDS, rows=max_results)
        return [r for r in (self._parse_doc(doc) for doc in docs) if r and r.bibcode != result.bibcode]

    def can_enrich(self, identifiers: Identifiers) -> bool:
        return any(
            id_type in identifiers
            for id_type in (IdentifierType.BIBCODE, IdentifierType.DOI, IdentifierType.ARXIV)
        )

    async def enrich(
        self,
        identifiers: Identifiers,
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        docs = await self._query(_lookup_query(identifiers), fields=ENRICHMENT_FIELDS, rows=1, sort=None)
        if not docs:
            raise NotFoundError("ADS returned no documents")
        doc = docs[0]

        references = doc.get("reference")
        data = EnrichmentData(
            citation_count=doc.get("citation_count"),
            reference_count=len(references) if isinstance(references, list) else None,
            references=(
                tuple(PaperStub(id=bibcode, title=bibcode) for bibcode in references[:MAX_REFERENCE_STUBS])
                if isinstance(references, list)
                else None
            ),
            abstract=doc.get("abstract"),
            venue=doc.get("pub"),
            source_id=self.id,
            source_record_id=doc.get("bibcode"),
        )

        resolved = dict(identifiers)
        for id_type, value in _doc_identifiers(doc).items():
            resolved.setdefault(id_type, value)
        return EnrichmentResult(data=data.merging(existing_data), resolved_identifiers=resolved)

    def _parse_doc(self, doc: dict[str, Any]) -> SearchResult | None:
        bibcode = doc.get("bibcode")
        if not bibcode:
            return None
        titles = doc.get("title") or []
        dois = doc.get("doi") or []
        arxiv_id = extract_arxiv_id(doc)

        # arXiv copies are free and reliable; otherwise go through the ADS gateway
        if arxiv_id:
            pdf_link = PDFLink(
                url=f"https://arxiv.org/pdf/{arxiv_id}.pdf",
                kind=PDFLinkKind.PREPRINT,
                source_id=self.id,
            )
        elif not dois:
            # Pre-DOI literature is usually only available as an ADS scan
            pdf_link = PDFLink(
                url=f"{LINK_GATEWAY_URL}/{bibcode}/ADS_PDF",
                kind=PDFLinkKind.ADS_SCAN,
                source_id=self.id,
            )
        else:
            pdf_link = PDFLink(
                url=f"{LINK_GATEWAY_URL}/{bibcode}/PUB_PDF",
                kind=PDFLinkKind.PUBLISHER,
                source_id=self.id,
            )

        return SearchResult(
            id=bibcode,
            source_id=self.id,
            title=titles[0] if titles else "Untitled",
            authors=tuple(doc.get("author") or ()),
            year=_year(doc.get("year")),
            venue=doc.get("pub"),
            abstract=doc.get("abstract"),
            doi=dois[0] if dois else None,
            arxiv_id=arxiv_id,
            bibcode=bibcode,
            pdf_links=(pdf_link,),
            web_url=f"{ABS_URL}/{bibcode}",
            bibtex_url=f"{ABS_URL}/{bibcode}/exportcitation",
        )


def _lookup_query(identifiers: Identifiers) -> str:
    if identifiers.get(IdentifierType.BIBCODE):
        return f'bibcode:"{identifiers[IdentifierType.BIBCODE]}"'
    if identifiers.get(IdentifierType.DOI):
        return f'doi:"{identifiers[IdentifierType.DOI]}"'
    if identifiers.get(IdentifierType.ARXIV):
        return f"arXiv:{normalize_arxiv_id(identifiers[IdentifierType.ARXIV])}"
    raise NotFoundError("ADS lookups need a bibcode, DOI or arXiv id")


def _doc_identifiers(doc: dict[str, Any]) -> Identifiers:
    dois = doc.get("doi") or []
    return coerce_identifiers(
        {
            IdentifierType.BIBCODE: doc.get("bibcode"),
            IdentifierType.DOI: dois[0] if dois else None,
            IdentifierType.ARXIV: extract_arxiv_id(doc),
        }
    )
