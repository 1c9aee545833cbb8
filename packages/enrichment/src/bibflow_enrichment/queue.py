"""Priority queue of pending enrichment work."""

from __future__ import annotations

import heapq
import itertools
import threading
from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from uuid import uuid4

from bibflow_connectors import Identifiers


class EnrichmentPriority(IntEnum):
    """Higher values are dequeued first."""

    BACKGROUND_SYNC = 0
    LIBRARY_PAPER = 1
    INTERACTIVE = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, eq=False)
class EnrichmentRequest:
    """
    One pending unit of background work.

    ``target_id`` is opaque to the queue; callers typically use a
    persisted record id.
    """

    target_id: Hashable
    identifiers: Identifiers
    priority: EnrichmentPriority = EnrichmentPriority.LIBRARY_PAPER
    created_at: datetime = field(default_factory=_utcnow)
    request_id: str = field(default_factory=lambda: uuid4().hex)


class EnrichmentQueue:
    """
    Dequeues highest priority first, then earliest ``created_at``.

    Requests for the same target are not coalesced. Safe to share across
    tasks and threads.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[int, datetime, int, EnrichmentRequest]] = []
        self._lock = threading.Lock()
        # Tie-breaker for requests created in the same instant
        self._sequence = itertools.count()

    def enqueue(self, request: EnrichmentRequest) -> None:
        entry = (-int(request.priority), request.created_at, next(self._sequence), request)
        with self._lock:
            heapq.heappush(self._heap, entry)

    def dequeue(self) -> EnrichmentRequest | None:
        with self._lock:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[-1]

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._heap)

    def __len__(self) -> int:
        return self.count

    def pending(self) -> list[EnrichmentRequest]:
        """Snapshot of queued requests in dequeue order."""
        with self._lock:
            return [entry[-1] for entry in sorted(self._heap)]

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._heap)
            self._heap.clear()
        return dropped
