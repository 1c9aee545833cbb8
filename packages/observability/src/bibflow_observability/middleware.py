from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Request, Response

from bibflow_observability.context import bind

logger = logging.getLogger(__name__)


def _request_fields(request: Request) -> dict[str, Any]:
    return {
        "method": request.method,
        "path": request.url.path,
        "query": request.url.query or None,
        "client_ip": request.client.host if request.client else None,
    }


def request_id_middleware(app_name: str) -> Callable:
    """Tag each request with an ``x-request-id`` and log its start and outcome."""

    async def _middleware(request: Request, call_next: Callable) -> Response:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        bind(request_id=rid, service=app_name)
        fields = _request_fields(request)
        start = time.perf_counter()
        logger.info("request_started", extra=fields)
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                extra={**fields, "status_code": 500, "duration_ms": int((time.perf_counter() - start) * 1000)},
            )
            raise

        response.headers["x-request-id"] = rid
        logger.info(
            "request_completed",
            extra={
                **fields,
                "status_code": response.status_code,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return response

    return _middleware
