from __future__ import annotations

import httpx
import pytest

from bibflow_connectors import (
    AuthenticationRequiredError,
    CrossrefSource,
    NetworkError,
    NotFoundError,
    ParseError,
    RateLimitError,
    StaticCredentialProvider,
)
from bibflow_connectors.ads import ADSSource

_EMPTY_CROSSREF = {"status": "ok", "message": {"items": []}}


async def test_server_errors_are_retried_then_succeed(make_source) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=_EMPTY_CROSSREF)

    source = make_source(CrossrefSource, handler, max_retries=3)
    assert await source.search("anything") == []
    assert len(calls) == 3


async def test_server_errors_exhaust_retries(make_source) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(500)

    source = make_source(CrossrefSource, handler, max_retries=2)
    with pytest.raises(NetworkError):
        await source.search("anything")
    assert len(calls) == 2


async def test_timeouts_are_retried(make_source) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json=_EMPTY_CROSSREF)

    source = make_source(CrossrefSource, handler)
    assert await source.search("anything") == []
    assert len(calls) == 2


async def test_rate_limit_is_not_retried(make_source) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(429, headers={"Retry-After": "12"})

    source = make_source(CrossrefSource, handler, max_retries=3)
    with pytest.raises(RateLimitError) as exc_info:
        await source.search("anything")
    assert exc_info.value.retry_after == pytest.approx(12.0)
    assert len(calls) == 1


async def test_status_mapping(make_source) -> None:
    statuses = iter([401, 404, 400])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    source = make_source(CrossrefSource, handler)
    with pytest.raises(AuthenticationRequiredError):
        await source.search("q")
    with pytest.raises(NotFoundError):
        await source.search("q")
    with pytest.raises(NetworkError):
        await source.search("q")


async def test_transport_error_becomes_network_error(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    source = make_source(CrossrefSource, handler)
    with pytest.raises(NetworkError):
        await source.search("q")


async def test_invalid_json_is_a_parse_error(make_source) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    source = make_source(CrossrefSource, handler)
    with pytest.raises(ParseError):
        await source.search("q")


async def test_missing_api_key_fails_before_any_request(make_source) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200, json={})

    source = make_source(ADSSource, handler, credentials=StaticCredentialProvider())
    with pytest.raises(AuthenticationRequiredError) as exc_info:
        await source.search("black holes")
    assert exc_info.value.registration_url == "https://ui.adsabs.harvard.edu/user/settings/token"
    assert calls == []


def test_max_retries_must_be_positive(mock_client) -> None:
    with pytest.raises(ValueError):
        CrossrefSource(client=mock_client(lambda r: httpx.Response(200)), max_retries=0)
