from __future__ import annotations

import asyncio
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request

from bibflow_api.schemas.api import PublicationImport, PublicationOut
from bibflow_connectors import BibtexParserCodec

router = APIRouter(prefix="/publications", tags=["publications"])


@router.post("", response_model=list[PublicationOut], status_code=201)
async def import_publications(request: Request, body: PublicationImport) -> list[PublicationOut]:
    entries = BibtexParserCodec().parse_entries(body.bibtex)
    if not entries:
        raise HTTPException(status_code=400, detail="no BibTeX entries found")
    store = request.app.state.record_store
    records = [
        await asyncio.to_thread(store.create_from_entry, entry, body.container_id)
        for entry in entries
    ]
    return [PublicationOut.from_record(r) for r in records]


@router.get("", response_model=list[PublicationOut])
async def list_publications(request: Request, container_id: UUID | None = None) -> list[PublicationOut]:
    store = request.app.state.record_store
    records = await asyncio.to_thread(store.fetch_all, container_id)
    return [PublicationOut.from_record(r) for r in records]


@router.get("/{publication_id}", response_model=PublicationOut)
async def get_publication(request: Request, publication_id: UUID) -> PublicationOut:
    record = await asyncio.to_thread(request.app.state.record_store.get, publication_id)
    if record is None:
        raise HTTPException(status_code=404, detail="publication not found")
    return PublicationOut.from_record(record)
