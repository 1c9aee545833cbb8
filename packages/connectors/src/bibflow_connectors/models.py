"""
Value types shared by every source plugin.

Provides:
- Identifier types and normalization
- Search results and PDF links
- BibTeX entries
- Source metadata (rate limits, credentials, dedup priority)
- Enrichment payloads
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping


class IdentifierType(str, Enum):
    """Identifier schemes used to link records across providers."""

    DOI = "doi"
    ARXIV = "arxiv"
    PMID = "pmid"
    BIBCODE = "bibcode"


Identifiers = dict[IdentifierType, str]

_DOI_PREFIXES = ("https://doi.org/", "http://doi.org/", "https://dx.doi.org/", "http://dx.doi.org/", "doi:")
_ARXIV_VERSION = re.compile(r"v\d+$")


def normalize_doi(value: str) -> str:
    doi = value.strip()
    lowered = doi.lower()
    for prefix in _DOI_PREFIXES:
        if lowered.startswith(prefix):
            doi = doi[len(prefix):]
            break
    return doi.strip().lower()


def normalize_arxiv_id(value: str) -> str:
    """Strip an ``arXiv:`` prefix and any trailing version suffix (``v2``)."""
    arxiv_id = value.strip().lower()
    if arxiv_id.startswith("arxiv:"):
        arxiv_id = arxiv_id[len("arxiv:"):]
    return _ARXIV_VERSION.sub("", arxiv_id).strip()


def normalize_identifier(id_type: IdentifierType, value: str) -> str:
    """
    Normalize an identifier value for equality comparison.

    Args:
        id_type: Identifier scheme
        value: Raw value as returned by a provider

    Returns:
        Lowercased value with scheme-specific prefixes removed
    """
    if id_type == IdentifierType.DOI:
        return normalize_doi(value)
    if id_type == IdentifierType.ARXIV:
        return normalize_arxiv_id(value)
    return value.strip().lower()


def coerce_identifiers(raw: Mapping[str | IdentifierType, str | None]) -> Identifiers:
    """Build an identifier mapping from loosely typed keys, dropping empty values."""
    identifiers: Identifiers = {}
    for key, value in raw.items():
        if not value or not str(value).strip():
            continue
        identifiers[IdentifierType(key)] = str(value).strip()
    return identifiers


class PDFLinkKind(str, Enum):
    """Where a PDF link points."""

    PREPRINT = "preprint"
    AUTHOR = "author"
    PUBLISHER = "publisher"
    ADS_SCAN = "ads_scan"


@dataclass(frozen=True)
class PDFLink:
    url: str
    kind: PDFLinkKind
    source_id: str | None = None


@dataclass(frozen=True)
class SearchResult:
    """One provider's view of a candidate work."""

    id: str
    source_id: str
    title: str
    authors: tuple[str, ...] = ()
    year: int | None = None
    venue: str | None = None
    abstract: str | None = None

    # Identifiers
    doi: str | None = None
    arxiv_id: str | None = None
    pmid: str | None = None
    bibcode: str | None = None

    # Links
    pdf_links: tuple[PDFLink, ...] = ()
    web_url: str | None = None
    bibtex_url: str | None = None

    @property
    def identifiers(self) -> Identifiers:
        """All non-empty identifiers carried by this result."""
        return coerce_identifiers(
            {
                IdentifierType.DOI: self.doi,
                IdentifierType.ARXIV: self.arxiv_id,
                IdentifierType.PMID: self.pmid,
                IdentifierType.BIBCODE: self.bibcode,
            }
        )

    @property
    def primary_identifier(self) -> tuple[IdentifierType, str] | None:
        """
        Best identifier for lookups.

        Priority: DOI > arXiv > bibcode > PMID
        """
        for id_type in (IdentifierType.DOI, IdentifierType.ARXIV, IdentifierType.BIBCODE, IdentifierType.PMID):
            value = self.identifiers.get(id_type)
            if value:
                return (id_type, value)
        return None

    @property
    def first_author_surname(self) -> str | None:
        if not self.authors:
            return None
        return author_surname(self.authors[0])


def author_surname(name: str) -> str | None:
    """
    Extract a surname from a display name.

    Handles both "Last, First" and "First Last".
    """
    name = name.strip()
    if not name:
        return None
    if "," in name:
        surname = name.split(",", 1)[0].strip()
    else:
        surname = name.split()[-1]
    return surname or None


@dataclass(frozen=True)
class BibTeXEntry:
    """A parsed citation record."""

    cite_key: str
    entry_type: str
    fields: Mapping[str, str] = field(default_factory=dict)
    raw: str | None = None

    def get(self, name: str) -> str | None:
        return self.fields.get(name.lower())

    def with_fields(self, **updates: str) -> BibTeXEntry:
        merged = dict(self.fields)
        merged.update({k.lower(): v for k, v in updates.items()})
        return replace(self, fields=merged, raw=None)


@dataclass(frozen=True)
class RateLimit:
    """Request budget for one provider: at most N requests per interval."""

    requests_per_interval: int
    interval_seconds: float

    def __post_init__(self) -> None:
        if self.requests_per_interval < 0:
            raise ValueError("requests_per_interval must be non-negative")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be non-negative")

    @classmethod
    def unlimited(cls) -> RateLimit:
        return cls(requests_per_interval=0, interval_seconds=0)

    @property
    def is_unlimited(self) -> bool:
        return self.requests_per_interval == 0 or self.interval_seconds == 0


class CredentialRequirement(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    API_KEY_OPTIONAL = "api_key_optional"
    EMAIL_OPTIONAL = "email_optional"
    OAUTH = "oauth"


@dataclass(frozen=True)
class SourceMetadata:
    """Static description of a provider."""

    id: str
    name: str
    rate_limit: RateLimit
    credential_requirement: CredentialRequirement = CredentialRequirement.NONE
    description: str | None = None
    registration_url: str | None = None
    deduplication_priority: int = 100


# Enrichment payloads


class OpenAccessStatus(str, Enum):
    GOLD = "gold"
    GREEN = "green"
    BRONZE = "bronze"
    HYBRID = "hybrid"
    CLOSED = "closed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PaperStub:
    """Lightweight reference to a citing or cited work."""

    id: str
    title: str
    authors: tuple[str, ...] = ()
    year: int | None = None
    venue: str | None = None
    doi: str | None = None
    arxiv_id: str | None = None
    citation_count: int | None = None
    is_open_access: bool | None = None


@dataclass(frozen=True)
class AuthorStats:
    author_id: str
    name: str
    h_index: int | None = None
    citation_count: int | None = None
    paper_count: int | None = None
    affiliations: tuple[str, ...] | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EnrichmentData:
    """Supplementary data fetched for an already-known work."""

    citation_count: int | None = None
    reference_count: int | None = None
    references: tuple[PaperStub, ...] | None = None
    citations: tuple[PaperStub, ...] | None = None
    abstract: str | None = None
    pdf_urls: tuple[str, ...] | None = None
    venue: str | None = None
    open_access_status: OpenAccessStatus | None = None
    author_stats: tuple[AuthorStats, ...] | None = None
    source_id: str | None = None
    source_record_id: str | None = None
    fetched_at: datetime = field(default_factory=_utcnow)

    def merging(self, existing: EnrichmentData | None) -> EnrichmentData:
        """
        Combine with older data.

        Values on ``self`` win; gaps are filled from ``existing``.
        """
        if existing is None:
            return self
        return EnrichmentData(
            citation_count=_first(self.citation_count, existing.citation_count),
            reference_count=_first(self.reference_count, existing.reference_count),
            references=_first(self.references, existing.references),
            citations=_first(self.citations, existing.citations),
            abstract=_first(self.abstract, existing.abstract),
            pdf_urls=_first(self.pdf_urls, existing.pdf_urls),
            venue=_first(self.venue, existing.venue),
            open_access_status=_first(self.open_access_status, existing.open_access_status),
            author_stats=_first(self.author_stats, existing.author_stats),
            source_id=self.source_id,
            source_record_id=_first(self.source_record_id, existing.source_record_id),
            fetched_at=self.fetched_at,
        )


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class EnrichmentResult:
    data: EnrichmentData
    resolved_identifiers: Identifiers = field(default_factory=dict)


class EnrichmentCapability(str, Enum):
    CITATION_COUNT = "citation_count"
    REFERENCES = "references"
    CITATIONS = "citations"
    ABSTRACT = "abstract"
    PDF_URL = "pdf_url"
    VENUE = "venue"
    OPEN_ACCESS = "open_access"
    AUTHOR_STATS = "author_stats"
