from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from bibflow_connectors.bibtex import extract_identifiers
from bibflow_connectors.models import (
    BibTeXEntry,
    EnrichmentData,
    EnrichmentResult,
    Identifiers,
    IdentifierType,
    author_surname,
    normalize_identifier,
)
from db.models import PublicationRow
from db.session import session_scope

logger = logging.getLogger(__name__)

_ENRICHMENT_ADAPTER: TypeAdapter[EnrichmentData] = TypeAdapter(EnrichmentData)

# Column holding the normalized value of each identifier scheme
_IDENTIFIER_COLUMNS = {
    IdentifierType.DOI: "doi",
    IdentifierType.ARXIV: "arxiv_id",
    IdentifierType.PMID: "pmid",
    IdentifierType.BIBCODE: "bibcode",
}

# BibTeX field written back when enrichment resolves a missing identifier
_IDENTIFIER_FIELDS = {
    IdentifierType.DOI: "doi",
    IdentifierType.ARXIV: "eprint",
    IdentifierType.PMID: "pmid",
    IdentifierType.BIBCODE: "bibcode",
}


def _now_utc() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _parse_year(value: str | None) -> int | None:
    if not value:
        return None
    digits = "".join(ch for ch in value if ch.isdigit())[:4]
    return int(digits) if len(digits) == 4 else None


def _split_authors(value: str | None) -> list[str]:
    if not value:
        return []
    return [name.strip() for name in value.replace("\n", " ").split(" and ") if name.strip()]


def dump_enrichment(data: EnrichmentData) -> dict[str, Any]:
    return _ENRICHMENT_ADAPTER.dump_python(data, mode="json")


def load_enrichment(payload: dict[str, Any] | None) -> EnrichmentData | None:
    if not payload:
        return None
    return _ENRICHMENT_ADAPTER.validate_python(payload)


@dataclass(frozen=True)
class PublicationRecord:
    """A stored publication as seen by the enrichment side."""

    id: UUID
    cite_key: str
    entry_type: str
    title: str | None
    authors: tuple[str, ...]
    year: int | None
    venue: str | None
    fields: dict[str, str]
    identifiers: Identifiers
    container_id: UUID | None = None
    enrichment: EnrichmentData | None = None
    enriched_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def citation_count(self) -> int | None:
        return self.enrichment.citation_count if self.enrichment else None

    @property
    def first_author_surname(self) -> str | None:
        return author_surname(self.authors[0]) if self.authors else None

    def to_entry(self) -> BibTeXEntry:
        return BibTeXEntry(cite_key=self.cite_key, entry_type=self.entry_type, fields=dict(self.fields))


def _to_record(row: PublicationRow) -> PublicationRecord:
    fields = dict(row.fields_json or {})
    return PublicationRecord(
        id=row.id,
        container_id=row.container_id,
        cite_key=row.cite_key,
        entry_type=row.entry_type,
        title=row.title,
        authors=tuple(row.authors_json or ()),
        year=row.year,
        venue=row.venue,
        fields=fields,
        identifiers=extract_identifiers(fields),
        enrichment=load_enrichment(row.enrichment_json),
        enriched_at=_as_utc(row.enriched_at),
        created_at=_as_utc(row.created_at),
    )


def _apply_identifier_columns(row: PublicationRow, identifiers: Identifiers, *, overwrite: bool) -> None:
    for id_type, column in _IDENTIFIER_COLUMNS.items():
        value = identifiers.get(id_type)
        if not value:
            continue
        if overwrite or getattr(row, column) is None:
            setattr(row, column, normalize_identifier(id_type, value))


def _coerce_uuid(target_id: Hashable) -> UUID:
    if isinstance(target_id, UUID):
        return target_id
    return UUID(str(target_id))


def create_publication(
    *,
    session: Session,
    entry: BibTeXEntry,
    container_id: UUID | None = None,
) -> PublicationRow:
    fields = {key.lower(): value for key, value in entry.fields.items()}
    row = PublicationRow(
        container_id=container_id,
        cite_key=entry.cite_key,
        entry_type=entry.entry_type or "misc",
        title=fields.get("title"),
        authors_json=_split_authors(fields.get("author")),
        year=_parse_year(fields.get("year")),
        venue=fields.get("journal") or fields.get("booktitle"),
        fields_json=fields,
    )
    _apply_identifier_columns(row, extract_identifiers(fields), overwrite=True)
    session.add(row)
    session.flush()
    return row


def find_publication_by_identifier(
    *,
    session: Session,
    id_type: IdentifierType,
    value: str,
) -> PublicationRow | None:
    id_type = IdentifierType(id_type)
    column = getattr(PublicationRow, _IDENTIFIER_COLUMNS[id_type])
    stmt = (
        select(PublicationRow)
        .where(column == normalize_identifier(id_type, value))
        .order_by(PublicationRow.created_at.asc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def list_publications(
    *,
    session: Session,
    container_id: UUID | None = None,
    limit: int | None = None,
) -> list[PublicationRow]:
    stmt = select(PublicationRow).order_by(PublicationRow.created_at.asc(), PublicationRow.cite_key.asc())
    if container_id is not None:
        stmt = stmt.where(PublicationRow.container_id == container_id)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(session.execute(stmt).scalars().all())


def list_publications_needing_enrichment(
    *,
    session: Session,
    older_than: datetime,
    limit: int = 100,
) -> list[PublicationRow]:
    """Publications with at least one identifier that were never enriched or enriched before ``older_than``."""
    has_identifier = or_(*(getattr(PublicationRow, col).is_not(None) for col in _IDENTIFIER_COLUMNS.values()))
    stale = or_(PublicationRow.enriched_at.is_(None), PublicationRow.enriched_at < older_than)
    stmt = (
        select(PublicationRow)
        .where(has_identifier, stale)
        .order_by(
            PublicationRow.enriched_at.is_(None).desc(),
            PublicationRow.enriched_at.asc(),
            PublicationRow.created_at.asc(),
        )
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all())


def save_enrichment(
    *,
    session: Session,
    publication_id: UUID,
    result: EnrichmentResult,
) -> PublicationRow:
    row = session.get(PublicationRow, publication_id)
    if row is None:
        raise ValueError("publication not found")

    merged = result.data.merging(load_enrichment(row.enrichment_json))
    row.enrichment_json = dump_enrichment(merged)
    row.enrichment_source = merged.source_id
    row.citation_count = merged.citation_count
    row.enriched_at = _now_utc()

    # Fill identifiers the enrichment source resolved; never overwrite existing ones
    fields = dict(row.fields_json or {})
    known = extract_identifiers(fields)
    for id_type, value in result.resolved_identifiers.items():
        id_type = IdentifierType(id_type)
        if value and id_type not in known:
            fields[_IDENTIFIER_FIELDS[id_type]] = value
    if not fields.get("abstract") and merged.abstract:
        fields["abstract"] = merged.abstract
    row.fields_json = fields
    _apply_identifier_columns(row, extract_identifiers(fields), overwrite=False)
    if row.venue is None and merged.venue:
        row.venue = merged.venue

    session.flush()
    return row


class RecordStore:
    """
    Publication storage used by the enrichment coordinator.

    Each call runs in its own transaction.

    Args:
        SessionLocal: Session factory from ``db.session.create_sessionmaker``
    """

    def __init__(self, SessionLocal: sessionmaker[Session]):
        self._SessionLocal = SessionLocal

    def create_from_entry(self, entry: BibTeXEntry, container_id: UUID | None = None) -> PublicationRecord:
        with session_scope(self._SessionLocal) as session:
            row = create_publication(session=session, entry=entry, container_id=container_id)
            record = _to_record(row)
        logger.info("publication_created", extra={"publication_id": str(record.id), "cite_key": record.cite_key})
        return record

    def find_by_identifier(self, id_type: IdentifierType, value: str) -> PublicationRecord | None:
        with session_scope(self._SessionLocal) as session:
            row = find_publication_by_identifier(session=session, id_type=id_type, value=value)
            return _to_record(row) if row is not None else None

    def get(self, publication_id: Hashable) -> PublicationRecord | None:
        with session_scope(self._SessionLocal) as session:
            row = session.get(PublicationRow, _coerce_uuid(publication_id))
            return _to_record(row) if row is not None else None

    def fetch_all(self, container_id: UUID | None = None) -> list[PublicationRecord]:
        with session_scope(self._SessionLocal) as session:
            return [_to_record(row) for row in list_publications(session=session, container_id=container_id)]

    def records_needing_enrichment(self, older_than: datetime, limit: int = 100) -> list[PublicationRecord]:
        with session_scope(self._SessionLocal) as session:
            rows = list_publications_needing_enrichment(session=session, older_than=older_than, limit=limit)
            return [_to_record(row) for row in rows]

    def save_enrichment_result(self, target_id: Hashable, result: EnrichmentResult) -> PublicationRecord:
        with session_scope(self._SessionLocal) as session:
            row = save_enrichment(session=session, publication_id=_coerce_uuid(target_id), result=result)
            record = _to_record(row)
        logger.info(
            "enrichment_saved",
            extra={
                "publication_id": str(record.id),
                "source_id": record.enrichment.source_id if record.enrichment else None,
                "citation_count": record.citation_count,
            },
        )
        return record
