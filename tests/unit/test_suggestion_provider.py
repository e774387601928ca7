"""Unit tests for the HTTP suggestion provider and its degradation paths."""

import json

import httpx
import pytest

from src.ai.suggestions import (
    HttpSuggestionProvider,
    NullSuggestionProvider,
    SuggestionCache,
    SuggestionRequest,
    build_provider,
)
from src.config import Settings
from src.kernel.models.resource import ResourceType

URL = "https://suggest.example.com/v1/suggest"


def _request() -> SuggestionRequest:
    return SuggestionRequest(project_id=1, name="Payments API", tags=["python"], assigned=["agent:a1"])


def _provider(handler) -> HttpSuggestionProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSuggestionProvider(URL, token="secret", client=client)


@pytest.mark.asyncio
async def test_parses_suggestions_and_sends_context():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"suggestions": [
            {"resource_type": "rule", "resource_id": "r1", "reason": "typing", "confidence": 0.9},
        ]})

    suggestions = await _provider(handler).suggest(_request())

    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["assigned"] == ["agent:a1"]
    assert len(suggestions) == 1
    assert suggestions[0].resource_type == ResourceType.RULE
    assert suggestions[0].ref.key == "rule:r1"


@pytest.mark.asyncio
async def test_malformed_items_are_dropped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"suggestions": [
            {"resource_type": "widget", "resource_id": "x"},
            {"resource_type": "agent", "resource_id": "a2", "confidence": 7},
            {"resource_type": "hook", "resource_id": "h1"},
            "not an object",
        ]})

    suggestions = await _provider(handler).suggest(_request())
    assert [s.ref.key for s in suggestions] == ["hook:h1"]


@pytest.mark.asyncio
async def test_server_error_yields_empty_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    assert await _provider(handler).suggest(_request()) == []


@pytest.mark.asyncio
async def test_connection_error_yields_empty_list():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert await _provider(handler).suggest(_request()) == []


@pytest.mark.asyncio
async def test_invalid_json_yields_empty_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    assert await _provider(handler).suggest(_request()) == []


@pytest.mark.asyncio
async def test_response_without_list_yields_empty_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"suggestions": "none"})

    assert await _provider(handler).suggest(_request()) == []


@pytest.mark.asyncio
async def test_null_provider():
    assert await NullSuggestionProvider().suggest(_request()) == []


def test_build_provider_depends_on_url():
    assert isinstance(build_provider(Settings(suggestion_service_url="")), NullSuggestionProvider)
    provider = build_provider(Settings(suggestion_service_url=URL, suggestion_timeout_seconds=3))
    assert isinstance(provider, HttpSuggestionProvider)
    assert provider.timeout == 3


def test_cache_keyed_by_fingerprint():
    cache = SuggestionCache()
    cache.put(1, "abc", [])
    assert cache.get(1, "abc") == []
    assert cache.get(1, "def") is None
    assert cache.get(2, "abc") is None
    assert len(cache) == 1
