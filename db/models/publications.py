from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import JSON

from db.models.base import Base


class PublicationRow(Base):
    __tablename__ = "publications"
    __table_args__ = (
        Index("ix_publications_container_created", "container_id", "created_at"),
        Index("ix_publications_enriched_at", "enriched_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    container_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    cite_key: Mapped[str] = mapped_column(String(255), nullable=False)
    entry_type: Mapped[str] = mapped_column(String(50), nullable=False, default="misc")
    title: Mapped[str | None] = mapped_column(Text(), nullable=True)
    authors_json: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list, server_default="[]"
    )
    year: Mapped[int | None] = mapped_column(Integer(), nullable=True)
    venue: Mapped[str | None] = mapped_column(Text(), nullable=True)
    fields_json: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict, server_default="{}"
    )

    # Normalized identifiers for lookups
    doi: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    arxiv_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    pmid: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    bibcode: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    enrichment_json: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    enrichment_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    citation_count: Mapped[int | None] = mapped_column(Integer(), nullable=True)
    enriched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
