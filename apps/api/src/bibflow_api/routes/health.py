from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter()


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    engine = getattr(request.app.state, "engine", None)
    db_ok = True
    if engine is not None:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            db_ok = False

    runtime = getattr(request.app.state, "runtime", None)
    payload = {
        "status": "ok" if db_ok else "degraded",
        "time": datetime.now(timezone.utc).isoformat(),
        "db_ok": db_ok,
        "sources": runtime.manager.source_ids if runtime is not None else [],
        "enrichment_running": runtime.enrichment.is_running if runtime is not None else False,
    }
    if not db_ok:
        return JSONResponse(payload, status_code=503)
    return payload
