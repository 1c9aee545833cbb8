from __future__ import annotations

import threading
from collections.abc import Hashable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from bibflow_enrichment.queue import EnrichmentRequest


@dataclass(frozen=True)
class FailedRequest:
    request: EnrichmentRequest
    error: str
    error_type: str
    retry_count: int
    last_failed_at: datetime


class FailedRequestTracker:
    """
    Remembers background requests that failed so they can be re-queued.

    One entry per target; repeated failures bump ``retry_count``.
    """

    def __init__(self) -> None:
        self._failures: dict[Hashable, FailedRequest] = {}
        self._lock = threading.Lock()

    def record_failure(self, request: EnrichmentRequest, error: BaseException) -> FailedRequest:
        now = datetime.now(timezone.utc)
        with self._lock:
            previous = self._failures.get(request.target_id)
            if previous is None:
                failure = FailedRequest(
                    request=request,
                    error=str(error),
                    error_type=type(error).__name__,
                    retry_count=0,
                    last_failed_at=now,
                )
            else:
                failure = replace(
                    previous,
                    request=request,
                    error=str(error),
                    error_type=type(error).__name__,
                    retry_count=previous.retry_count + 1,
                    last_failed_at=now,
                )
            self._failures[request.target_id] = failure
        return failure

    def clear_failure(self, target_id: Hashable) -> None:
        with self._lock:
            self._failures.pop(target_id, None)

    def get(self, target_id: Hashable) -> FailedRequest | None:
        with self._lock:
            return self._failures.get(target_id)

    def requests_for_retry(self, max_retries: int | None = None) -> list[EnrichmentRequest]:
        """Failed requests, oldest failure first, optionally skipping exhausted ones."""
        with self._lock:
            failures = sorted(self._failures.values(), key=lambda f: f.last_failed_at)
        return [
            f.request
            for f in failures
            if max_retries is None or f.retry_count < max_retries
        ]

    @property
    def failure_count(self) -> int:
        with self._lock:
            return len(self._failures)

    def clear_all(self) -> None:
        with self._lock:
            self._failures.clear()
