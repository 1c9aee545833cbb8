from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def _add_path(p: Path) -> None:
    sys.path.insert(0, str(p))


REPO_ROOT = Path(__file__).resolve().parents[1]

# Make monorepo src trees importable without editable installs.
_add_path(REPO_ROOT / "apps" / "api" / "src")
_add_path(REPO_ROOT / "apps" / "workers" / "src")
_add_path(REPO_ROOT / "packages" / "core" / "src")
_add_path(REPO_ROOT / "packages" / "observability" / "src")
_add_path(REPO_ROOT / "packages" / "connectors" / "src")
_add_path(REPO_ROOT / "packages" / "enrichment" / "src")
_add_path(REPO_ROOT)  # db/ package

from bibflow_connectors import (  # noqa: E402
    BibTeXEntry,
    EnrichmentCapability,
    EnrichmentData,
    EnrichmentResult,
    Identifiers,
    IdentifierType,
    RateLimit,
    SearchResult,
    SourceMetadata,
    StaticCredentialProvider,
    coerce_identifiers,
)


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSource:
    """In-memory search source; raises ``error`` from ``search`` when set."""

    def __init__(
        self,
        source_id: str,
        results: list[SearchResult] | None = None,
        *,
        priority: int = 100,
        error: Exception | None = None,
    ):
        self.metadata = SourceMetadata(
            id=source_id,
            name=source_id.title(),
            rate_limit=RateLimit.unlimited(),
            deduplication_priority=priority,
        )
        self.results = results or []
        self.error = error
        self.queries: list[tuple[str, int]] = []
        self.closed = False

    async def search(self, query: str, max_results: int = 50) -> list[SearchResult]:
        self.queries.append((query, max_results))
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        return BibTeXEntry(cite_key=result.id, entry_type="article", fields={"title": result.title})

    def normalize(self, entry: BibTeXEntry) -> BibTeXEntry:
        return entry

    async def aclose(self) -> None:
        self.closed = True


class FakeEnrichmentSource(FakeSource):
    """Search source that also enriches; ``outcomes`` are returned or raised in order."""

    def __init__(
        self,
        source_id: str,
        outcomes: list[EnrichmentData | Exception] | None = None,
        *,
        accepts: set[IdentifierType] | None = None,
        **kwargs: Any,
    ):
        super().__init__(source_id, **kwargs)
        self.outcomes = list(outcomes or [])
        self.accepts = accepts
        self.calls: list[Identifiers] = []

    @property
    def enrichment_capabilities(self) -> frozenset[EnrichmentCapability]:
        return frozenset({EnrichmentCapability.CITATION_COUNT})

    def can_enrich(self, identifiers: Identifiers) -> bool:
        if self.accepts is None:
            return bool(identifiers)
        return any(id_type in self.accepts for id_type in identifiers)

    async def enrich(self, identifiers: Identifiers, existing_data: EnrichmentData | None = None) -> EnrichmentResult:
        self.calls.append(dict(identifiers))
        outcome = self.outcomes.pop(0) if self.outcomes else EnrichmentData(citation_count=1, source_id=self.metadata.id)
        if isinstance(outcome, Exception):
            raise outcome
        return EnrichmentResult(data=outcome.merging(existing_data), resolved_identifiers=coerce_identifiers(identifiers))


@pytest.fixture()
def repo_root() -> Path:
    return REPO_ROOT


@pytest.fixture()
def sqlite_engine(tmp_path: Path) -> Engine:
    db_path = tmp_path / "test.db"
    return create_engine(f"sqlite+pysqlite:///{db_path}", future=True)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider(
        api_keys={"ads": "ads-test-key", "semanticscholar": "s2-test-key"},
        email="curator@example.org",
    )


@pytest.fixture()
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an ``httpx.AsyncClient`` whose requests are answered by ``handler``."""

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build


@pytest.fixture()
def make_source(mock_client, credentials):
    """Construct a real source class wired to a mock transport, no backoff and no rate limiting."""
    from bibflow_connectors import RateLimiter

    def _build(source_cls, handler, **kwargs):
        kwargs.setdefault("credentials", credentials)
        kwargs.setdefault("backoff_seconds", 0.0)
        kwargs.setdefault("rate_limiter", RateLimiter(RateLimit.unlimited()))
        return source_cls(client=mock_client(handler), **kwargs)

    return _build
