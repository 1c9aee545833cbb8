"""
arXiv source for preprint retrieval.

API: https://arxiv.org/help/api/
Rate limit: 1 request per 3 seconds (recommended)
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

from bibflow_connectors.base import DEFAULT_MAX_RESULTS, BaseSource, ParseError
from bibflow_connectors.bibtex import build_entry
from bibflow_connectors.models import (
    BibTeXEntry,
    PDFLink,
    PDFLinkKind,
    RateLimit,
    SearchResult,
    SourceMetadata,
)

NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
}

NEW_STYLE_ID = re.compile(r"\d{4}\.\d{4,5}(v\d+)?")
OLD_STYLE_ID = re.compile(r"[a-z-]+(\.[A-Z]{2})?/\d{7}(v\d+)?")
FIELD_PREFIX = re.compile(r"\b(?:ti|au|abs|co|jr|cat|rn|id|all):", re.IGNORECASE)


def extract_arxiv_id(text: str) -> str | None:
    """Pull an arXiv identifier out of an abs/pdf URL or free text."""
    match = NEW_STYLE_ID.search(text) or OLD_STYLE_ID.search(text)
    return match.group(0) if match else None


def search_query(query: str) -> str:
    """Pass fielded queries (``au:smith AND ti:lensing``) through; search all fields otherwise."""
    query = query.strip()
    if FIELD_PREFIX.search(query):
        return query
    return f"all:{query}"


class ArXivSource(BaseSource):
    """
    Source for the arXiv API.

    Features:
    - Free, no API key required
    - BibTeX is constructed locally since arXiv has no export endpoint
    """

    BASE_URL = "https://export.arxiv.org/api/query"

    metadata = SourceMetadata(
        id="arxiv",
        name="arXiv",
        description="Open-access preprint server for physics, math, CS, and more",
        rate_limit=RateLimit(1, 3),
        deduplication_priority=60,
    )

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        params = {
            "search_query": search_query(query),
            "start": 0,
            "max_results": max_results,
            "sortBy": "relevance",
            "sortOrder": "descending",
        }
        response = await self._request("GET", self.BASE_URL, params=params)
        return self._parse_feed(response.text)[:max_results]

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        entry = build_entry(
            entry_type="article",
            authors=result.authors,
            title=result.title,
            year=result.year,
            abstract=result.abstract,
            eprint=result.arxiv_id,
            url=result.web_url,
            doi=result.doi,
        )
        return self.normalize(entry)

    def normalize(self, entry: BibTeXEntry) -> BibTeXEntry:
        arxiv_id = _entry_arxiv_id(entry)
        if not arxiv_id:
            return entry
        updates = {"eprint": arxiv_id, "archiveprefix": "arXiv"}
        if "/" in arxiv_id:
            # Old-style ids carry the category: hep-th/9901001
            updates["primaryclass"] = arxiv_id.split("/", 1)[0]
        if all(entry.get(k) == v for k, v in updates.items()):
            return entry
        return entry.with_fields(**updates)

    def _parse_feed(self, xml_text: str) -> list[SearchResult]:
        """Parse arXiv Atom feed XML."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ParseError(f"Invalid arXiv feed: {e}") from e

        results = []
        for entry in root.findall("atom:entry", NS):
            result = self._parse_entry(entry)
            if result:
                results.append(result)
        return results

    def _parse_entry(self, entry: ET.Element) -> SearchResult | None:
        entry_id = _text(entry, "atom:id")
        title = _text(entry, "atom:title")
        if not entry_id or not title:
            return None

        arxiv_id = extract_arxiv_id(entry_id)
        authors = tuple(
            name.text.strip()
            for name in entry.findall("atom:author/atom:name", NS)
            if name.text and name.text.strip()
        )

        published = _text(entry, "atom:published") or ""
        year = int(published[:4]) if published[:4].isdigit() else None

        web_url = None
        pdf_links: list[PDFLink] = []
        for link in entry.findall("atom:link", NS):
            href = link.get("href")
            if not href:
                continue
            if link.get("type") == "application/pdf" or link.get("title") == "pdf":
                pdf_links.append(PDFLink(url=href, kind=PDFLinkKind.PREPRINT, source_id=self.id))
            elif link.get("rel", "alternate") == "alternate":
                web_url = href

        return SearchResult(
            id=arxiv_id or entry_id,
            source_id=self.id,
            title=" ".join(title.split()),
            authors=authors,
            year=year,
            venue="arXiv",
            abstract=_text(entry, "atom:summary"),
            doi=_text(entry, "arxiv:doi"),
            arxiv_id=arxiv_id,
            pdf_links=tuple(pdf_links[:1]),
            web_url=web_url,
        )


def _text(element: ET.Element, path: str) -> str | None:
    child = element.find(path, NS)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _entry_arxiv_id(entry: BibTeXEntry) -> str | None:
    for key in ("eprint", "arxivid"):
        value = (entry.get(key) or "").strip()
        if value.lower().startswith("arxiv:"):
            value = value[len("arxiv:"):]
        if value:
            return value
    url = entry.get("url")
    if url and "arxiv.org" in url:
        return extract_arxiv_id(url)
    return None
