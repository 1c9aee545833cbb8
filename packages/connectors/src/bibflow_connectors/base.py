"""
Base source interface and shared utilities.

Provides:
- Error taxonomy shared by every provider
- Async sliding-window rate limiting
- Retry logic with exponential backoff
- Optional capability protocols
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx

from bibflow_connectors.bibtex import BibTeXCodec, BibtexParserCodec
from bibflow_connectors.credentials import CredentialProvider, StaticCredentialProvider
from bibflow_connectors.models import (
    BibTeXEntry,
    EnrichmentCapability,
    EnrichmentData,
    EnrichmentResult,
    Identifiers,
    IdentifierType,
    RateLimit,
    SearchResult,
    SourceMetadata,
)

logger = logging.getLogger(__name__)

USER_AGENT = "bibflow/0.1 (+https://github.com/bibflow/bibflow)"
DEFAULT_MAX_RESULTS = 50


class ConnectorError(Exception):
    """Base exception for source errors."""

    pass


class AuthenticationRequiredError(ConnectorError):
    """Raised when credentials are required but missing or rejected."""

    def __init__(self, provider_id: str, registration_url: str | None = None):
        self.provider_id = provider_id
        self.registration_url = registration_url
        message = f"{provider_id} requires credentials"
        if registration_url:
            message += f" (register at {registration_url})"
        super().__init__(message)


class NetworkError(ConnectorError):
    """Raised on transport failure or an unexpected HTTP status."""

    pass


class ParseError(ConnectorError):
    """Raised when a provider response cannot be mapped."""

    pass


class RateLimitError(ConnectorError):
    """Raised when the provider itself signals throttling."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)


class NotFoundError(ConnectorError):
    pass


class NoIdentifierError(ConnectorError):
    pass


class NoSourceAvailableError(ConnectorError):
    pass


class InvalidRequestError(ConnectorError):
    pass


class RateLimiter:
    """
    Sliding window rate limiter.

    Never rejects a caller: ``wait_if_needed`` suspends until another
    request fits in the window. Concurrent callers are serialized so no
    two of them are admitted for the same slot.
    """

    def __init__(
        self,
        rate_limit: RateLimit,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            rate_limit: Budget for the provider this limiter guards
            clock: Monotonic time source
            sleep: Coroutine used to wait
        """
        self.rate_limit = rate_limit
        self._clock = clock
        self._sleep = sleep
        self._admitted: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def wait_if_needed(self) -> None:
        """Wait until we can make another request."""
        if self.rate_limit.is_unlimited:
            return

        limit = self.rate_limit.requests_per_interval
        window = self.rate_limit.interval_seconds
        async with self._lock:
            while True:
                now = self._clock()

                # Remove requests outside the window
                cutoff = now - window
                while self._admitted and self._admitted[0] <= cutoff:
                    self._admitted.popleft()

                if len(self._admitted) < limit:
                    self._admitted.append(now)
                    return

                delay = self._admitted[0] + window - now
                logger.debug(
                    "rate_limiter_wait",
                    extra={"delay_seconds": round(delay, 3), "window_seconds": window},
                )
                await self._sleep(max(delay, 0.0))

    @property
    def in_window(self) -> int:
        return len(self._admitted)


class SourceCapability(str, Enum):
    """Optional features a source may implement beyond search."""

    RIS_EXPORT = "ris_export"
    IDENTIFIER_RESOLUTION = "identifier_resolution"
    SIMILAR_WORKS = "similar_works"
    CO_READS = "co_reads"
    ENRICHMENT = "enrichment"


@runtime_checkable
class SourcePlugin(Protocol):
    """Protocol that all sources must implement."""

    @property
    def metadata(self) -> SourceMetadata:
        ...

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        ...

    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        ...

    def normalize(self, entry: BibTeXEntry) -> BibTeXEntry:
        ...


@runtime_checkable
class RISExporting(Protocol):
    async def fetch_ris(self, result: SearchResult) -> str:
        ...


@runtime_checkable
class IdentifierResolving(Protocol):
    async def resolve_identifier(self, id_type: IdentifierType, value: str) -> Identifiers:
        """
        Map one identifier to every identifier the provider knows for the work.

        Raises:
            NotFoundError: If the provider has no record for the identifier
        """
        ...


@runtime_checkable
class SimilarWorksProviding(Protocol):
    async def fetch_similar(self, result: SearchResult, max_results: int = 20) -> list[SearchResult]:
        ...


@runtime_checkable
class CoReadsProviding(Protocol):
    async def fetch_coreads(self, result: SearchResult, max_results: int = 20) -> list[SearchResult]:
        ...


@runtime_checkable
class EnrichmentPlugin(Protocol):
    """A source that can fetch citation data for an already-known work."""

    @property
    def metadata(self) -> SourceMetadata:
        ...

    @property
    def enrichment_capabilities(self) -> frozenset[EnrichmentCapability]:
        ...

    def can_enrich(self, identifiers: Identifiers) -> bool:
        ...

    async def enrich(
        self,
        identifiers: Identifiers,
        existing_data: EnrichmentData | None = None,
    ) -> EnrichmentResult:
        ...


_CAPABILITY_PROTOCOLS: dict[SourceCapability, type] = {
    SourceCapability.RIS_EXPORT: RISExporting,
    SourceCapability.IDENTIFIER_RESOLUTION: IdentifierResolving,
    SourceCapability.SIMILAR_WORKS: SimilarWorksProviding,
    SourceCapability.CO_READS: CoReadsProviding,
    SourceCapability.ENRICHMENT: EnrichmentPlugin,
}


def supports(source: object, capability: SourceCapability) -> bool:
    """Check whether ``source`` implements an optional capability."""
    return isinstance(source, _CAPABILITY_PROTOCOLS[capability])


def capabilities_of(source: object) -> list[SourceCapability]:
    return [capability for capability in SourceCapability if supports(source, capability)]


class BaseSource(ABC):
    """
    Base class for all HTTP-backed sources.

    Owns, for its lifetime:
    - An ``httpx.AsyncClient``
    - A rate limiter scoped to this provider
    - A credential provider
    - A BibTeX codec
    """

    # Used when a 429 response carries no Retry-After header
    default_retry_after: float | None = None

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        credentials: CredentialProvider | None = None,
        codec: BibTeXCodec | None = None,
        rate_limiter: RateLimiter | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
    ):
        """
        Initialize base source.

        Args:
            client: Shared HTTP client (one is created if omitted)
            credentials: Where API keys and contact emails come from
            codec: BibTeX parser/exporter
            rate_limiter: Override the limiter built from ``metadata.rate_limit``
            timeout_seconds: Request timeout
            max_retries: Attempts per request for timeouts and 5xx responses
            backoff_seconds: Base delay for exponential backoff
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        self.credentials = credentials or StaticCredentialProvider()
        self.codec = codec or BibtexParserCodec()
        self.rate_limiter = rate_limiter or RateLimiter(self.metadata.rate_limit)
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        logger.debug(
            "source_init",
            extra={
                "source": self.id,
                "timeout_seconds": timeout_seconds,
                "max_retries": max_retries,
            },
        )

    @property
    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Static provider description."""
        pass

    @property
    def id(self) -> str:
        return self.metadata.id

    @abstractmethod
    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[SearchResult]:
        """Search the provider for works matching query."""
        pass

    @abstractmethod
    async def fetch_bibtex(self, result: SearchResult) -> BibTeXEntry:
        """Retrieve the BibTeX record for one result."""
        pass

    def normalize(self, entry: BibTeXEntry) -> BibTeXEntry:
        """Provider-specific cleanup of an entry. Identity by default."""
        return entry

    async def aclose(self) -> None:
        await self.client.aclose()

    def _require_api_key(self) -> str:
        api_key = self.credentials.api_key(self.id)
        if not api_key:
            raise AuthenticationRequiredError(self.id, self.metadata.registration_url)
        return api_key

    def _parse_single_bibtex(self, text: str, *, detail: str) -> BibTeXEntry:
        entries = self.codec.parse_entries(text)
        if not entries:
            raise NotFoundError(f"{self.id}: no BibTeX for {detail}")
        return self.normalize(entries[0])

    async def _request(
        self,
        method: str,
        url: str,
        *,
        not_found_ok: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make a rate-limited HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            not_found_ok: Return 404 responses instead of raising
            **kwargs: Additional arguments to pass to httpx

        Returns:
            Response object

        Raises:
            RateLimitError: On HTTP 429 (never retried locally)
            AuthenticationRequiredError: On HTTP 401/403
            NotFoundError: On HTTP 404
            NetworkError: On transport failures and other error statuses
        """
        for attempt in range(self.max_retries):
            await self.rate_limiter.wait_if_needed()
            logger.debug(
                "source_request",
                extra={"source": self.id, "method": method, "url": url, "attempt": attempt + 1},
            )
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < self.max_retries - 1:
                    await self._backoff(attempt, url=url, reason="timeout")
                    continue
                raise NetworkError(f"Request to {url} timed out") from e
            except httpx.HTTPError as e:
                logger.warning(
                    "source_transport_error",
                    extra={"source": self.id, "url": url, "error": str(e)},
                )
                raise NetworkError(f"Transport error for {url}: {e}") from e

            status = response.status_code
            if status == 429:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                if retry_after is None:
                    retry_after = self.default_retry_after
                logger.warning(
                    "source_rate_limited",
                    extra={"source": self.id, "url": url, "retry_after": retry_after},
                )
                raise RateLimitError(f"{self.id} rate limited", retry_after=retry_after)
            if status in (401, 403):
                raise AuthenticationRequiredError(self.id, self.metadata.registration_url)
            if status == 404:
                if not_found_ok:
                    return response
                raise NotFoundError(f"{self.id}: not found ({url})")
            if status >= 500 and attempt < self.max_retries - 1:
                await self._backoff(attempt, url=url, reason=f"http_{status}")
                continue
            if status >= 400:
                logger.warning(
                    "source_http_error",
                    extra={"source": self.id, "url": url, "status_code": status},
                )
                raise NetworkError(f"HTTP error {status}: {url}")

            logger.debug(
                "source_response",
                extra={"source": self.id, "url": url, "status_code": status},
            )
            return response

        raise NetworkError(f"Max retries exceeded for {url}")

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self._request("GET", url, **kwargs)
        return self._json(response)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"{self.id}: invalid JSON payload") from e

    async def _backoff(self, attempt: int, *, url: str, reason: str) -> None:
        sleep_time = self.backoff_seconds * (2 ** attempt)
        logger.warning(
            "source_retry",
            extra={
                "source": self.id,
                "url": url,
                "reason": reason,
                "attempt": attempt + 1,
                "sleep_seconds": sleep_time,
            },
        )
        await asyncio.sleep(sleep_time)


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None
