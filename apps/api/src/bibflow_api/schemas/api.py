from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bibflow_connectors import (
    EnrichmentResult,
    Identifiers,
    PDFLink,
    SearchResult,
    SourceMetadata,
    UnifiedResult,
)
from db.services.records import dump_enrichment


class ApiModel(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True, populate_by_name=True)


IdentifierKey = Literal["doi", "arxiv", "pmid", "bibcode"]
PriorityName = Literal["interactive", "library_paper", "background_sync"]


def _identifier_map(identifiers: Identifiers) -> dict[str, str]:
    return {getattr(k, "value", str(k)): v for k, v in identifiers.items()}


class RateLimitOut(ApiModel):
    requests_per_interval: int
    interval_seconds: float


class SourceOut(ApiModel):
    id: str
    name: str
    description: str | None = None
    credential_requirement: str
    registration_url: str | None = None
    deduplication_priority: int
    rate_limit: RateLimitOut
    capabilities: list[str]

    @classmethod
    def build(cls, metadata: SourceMetadata, capabilities: list[str]) -> SourceOut:
        return cls(
            id=metadata.id,
            name=metadata.name,
            description=metadata.description,
            credential_requirement=metadata.credential_requirement.value,
            registration_url=metadata.registration_url,
            deduplication_priority=metadata.deduplication_priority,
            rate_limit=RateLimitOut(
                requests_per_interval=metadata.rate_limit.requests_per_interval,
                interval_seconds=metadata.rate_limit.interval_seconds,
            ),
            capabilities=capabilities,
        )


class PDFLinkOut(ApiModel):
    url: str
    kind: str
    source_id: str | None = None

    @classmethod
    def build(cls, link: PDFLink) -> PDFLinkOut:
        return cls(url=link.url, kind=link.kind.value, source_id=link.source_id)


class SearchResultOut(ApiModel):
    id: str
    source_ids: list[str]
    title: str
    authors: list[str]
    year: int | None = None
    venue: str | None = None
    abstract: str | None = None
    identifiers: dict[str, str]
    pdf_links: list[PDFLinkOut]
    best_pdf_link: PDFLinkOut | None = None
    web_url: str | None = None
    bibtex_url: str | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchResultOut:
        links = [PDFLinkOut.build(link) for link in result.pdf_links]
        return cls(
            id=result.id,
            source_ids=[result.source_id],
            title=result.title,
            authors=list(result.authors),
            year=result.year,
            venue=result.venue,
            abstract=result.abstract,
            identifiers=_identifier_map(result.identifiers),
            pdf_links=links,
            best_pdf_link=links[0] if links else None,
            web_url=result.web_url,
            bibtex_url=result.bibtex_url,
        )

    @classmethod
    def from_unified(cls, unified: UnifiedResult) -> SearchResultOut:
        best = unified.best_pdf_link()
        return cls(
            id=unified.canonical.id,
            source_ids=unified.source_ids,
            title=unified.title,
            authors=list(unified.authors),
            year=unified.year,
            venue=unified.venue,
            abstract=unified.abstract,
            identifiers=_identifier_map(unified.identifiers),
            pdf_links=[PDFLinkOut.build(link) for link in unified.pdf_links],
            best_pdf_link=PDFLinkOut.build(best) if best else None,
            web_url=unified.web_url,
            bibtex_url=unified.bibtex_url,
        )


class SearchResponse(ApiModel):
    query: str
    deduplicated: bool
    total: int
    results: list[SearchResultOut]


class EnrichRequest(ApiModel):
    identifiers: dict[IdentifierKey, str] = Field(default_factory=dict)
    retry: bool = False


class EnrichmentOut(ApiModel):
    data: dict[str, Any]
    resolved_identifiers: dict[str, str]

    @classmethod
    def from_result(cls, result: EnrichmentResult) -> EnrichmentOut:
        return cls(data=dump_enrichment(result.data), resolved_identifiers=_identifier_map(result.resolved_identifiers))


class QueueRequest(ApiModel):
    publication_ids: list[UUID] = Field(min_length=1, max_length=500)
    priority: PriorityName = "interactive"


class QueueResponse(ApiModel):
    queued: int
    skipped: int
    queue_depth: int


class SweepResponse(ApiModel):
    queued: int
    queue_depth: int


class EnrichmentStatusOut(ApiModel):
    running: bool
    queue_depth: int
    failures: int
    sources: list[str]


class PublicationImport(ApiModel):
    bibtex: str = Field(min_length=1)
    container_id: UUID | None = None


class PublicationOut(ApiModel):
    id: UUID
    container_id: UUID | None = None
    cite_key: str
    entry_type: str
    title: str | None = None
    authors: list[str]
    year: int | None = None
    venue: str | None = None
    identifiers: dict[str, str]
    citation_count: int | None = None
    enriched_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Any) -> PublicationOut:
        return cls(
            id=record.id,
            container_id=record.container_id,
            cite_key=record.cite_key,
            entry_type=record.entry_type,
            title=record.title,
            authors=list(record.authors),
            year=record.year,
            venue=record.venue,
            identifiers=_identifier_map(record.identifiers),
            citation_count=record.citation_count,
            enriched_at=record.enriched_at,
        )
