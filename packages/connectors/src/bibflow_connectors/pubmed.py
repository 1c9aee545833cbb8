"""
PubMed source for biomedical literature.

API: https://eutils.ncbi.nlm.nih.gov/entrez/eutils/
Rate limit: 3 requests/second without API key, 10 with one (per NCBI guidelines).
"""

from __future__ import annotations

import re
from typing import Any

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, ParseError
from bibflow_connectors.bibtex import build_entry
from bibflow_connectors.models import (
    BibTeXEntry,
    CredentialRequirement,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
)


class PubMedSource(BaseSource):
    """
    Source for NCBI PubMed E-utilities.

    Features:
    - PubMed ID canonicalization
    - DOI and PMC links extracted from esummary article ids
    """

    BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    TOOL = "bibflow"

    @property
    def metadata(self) -> SourceMetadata:
        has_key = bool(self.credentials.api_key("pubmed"))
        return SourceMetadata(
            id="pubmed",
            name="PubMed",
            description="NCBI index of biomedical and life sciences literature",
            rate_limit=RateLimit(10 if has_key else 3, 1),
            credential_requirement=CredentialRequirement.API_KEY_OPTIONAL,
            registration_url="https://www.ncbi.nlm.nih.gov/account/settings/",
            deduplication_priority=20,
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        params["tool"] = self.TOOL
        email = self.credentials.email(self.id)
        if email:
            params["email"] = email
        api_key = self.credentials.api_key(self.id)
        if api_key:
            params["api_key"] = api_key
        return params

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        data = await self._get_json(
            f"{self.BASE_URL}/esearch.fcgi",
            params=self._params(db="pubmed", term=query, retmax=min(max_results, 200), retmode="json", sort="relevance"),
        )
        if not isinstance(data, dict) or not isinstance(data.get("esearchresult"), dict):
            raise ParseError("Invalid PubMed esearch response")
        ids = data["esearchresult"].get("idlist") or []
        if not ids:
            return []
        return (await self._summarize(ids))[:max_results]

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
            pmid=result.pmid,
            url=result.web_url,
        )

    async def _summarize(self, ids: list[str]) -> list[SearchResult]:
        data = await self._get_json(
            f"{self.BASE_URL}/esummary.fcgi",
            params=self._params(db="pubmed", id=",".join(ids), retmode="json"),
        )
        if not isinstance(data, dict) or not isinstance(data.get("result"), dict):
            raise ParseError("Invalid PubMed esummary response")
        result = data["result"]

        results: list[SearchResult] = []
        for uid in result.get("uids", []):
            parsed = self._parse_summary(uid, result.get(uid) or {})
            if parsed:
                results.append(parsed)
        return results

    def _parse_summary(self, uid: str, doc: dict[str, Any]) -> SearchResult | None:
        title = (doc.get("title") or "").strip().rstrip(".")
        if not title:
            return None

        article_ids = {
            aid.get("idtype"): aid.get("value")
            for aid in doc.get("articleids") or []
            if aid.get("idtype") and aid.get("value")
        }
        pdf_links: tuple[PDFLink, ...] = ()
        pmcid = article_ids.get("pmc")
        if pmcid:
            pdf_links = (
                PDFLink(
                    url=f"https://www.ncbi.nlm.nih.gov/pmc/articles/{pmcid}/pdf/",
                    kind=PDFLinkKind.PUBLISHER,
                    source_id=self.id,
                ),
            )

        return SearchResult(
            id=uid,
            source_id=self.id,
            title=title,
            authors=tuple(a["name"] for a in doc.get("authors") or [] if a.get("name")),
            year=_parse_year(doc.get("pubdate", "")),
            venue=doc.get("fulljournalname") or doc.get("source"),
            doi=article_ids.get("doi"),
            pmid=uid,
            pdf_links=pdf_links,
            web_url=f"https://pubmed.ncbi.nlm.nih.gov/{uid}/",
        )


def _parse_year(pubdate: str) -> int | None:
    match = re.search(r"(19|20)\d{2}", pubdate or "")
    if match:
        return int(match.group(0))
    return None
