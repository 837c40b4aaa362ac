from __future__ import annotations

import httpx
import pytest

from app.clients.google_search import (
    GoogleSearchClient,
    GoogleSearchConfigError,
    GoogleSearchError,
    GoogleSearchRateLimitError,
    GoogleSearchSchemaError,
    GoogleSearchTimeoutError,
)
from app.config import Settings

BASE_URL = "https://search.test"


def _client(http_client: httpx.AsyncClient) -> GoogleSearchClient:
    return GoogleSearchClient("key-123", "cx-456", http_client=http_client)


def _status_handler(status_code: int, payload: object | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload if payload is not None else {})

    return handler


@pytest.mark.asyncio
async def test_search_sends_credentials_and_caps_num():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"items": [{"link": "https://acme.co.za", "title": "Acme"}]}
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL) as http:
        items = await _client(http).search("  branding agency  ", num=25)

    assert items == [{"link": "https://acme.co.za", "title": "Acme"}]
    params = seen[0].url.params
    assert seen[0].url.path == "/customsearch/v1"
    assert params["key"] == "key-123"
    assert params["cx"] == "cx-456"
    assert params["q"] == "branding agency"
    assert params["num"] == "10"


@pytest.mark.asyncio
async def test_missing_items_means_no_results():
    transport = httpx.MockTransport(_status_handler(200, {"searchInformation": {}}))
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http:
        assert await _client(http).search("nothing") == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (429, GoogleSearchRateLimitError),
        (408, GoogleSearchTimeoutError),
        (504, GoogleSearchTimeoutError),
        (401, GoogleSearchConfigError),
        (403, GoogleSearchConfigError),
        (500, GoogleSearchError),
    ],
)
async def test_error_statuses_map_to_typed_errors(status_code, error_type):
    transport = httpx.MockTransport(
        _status_handler(status_code, {"error": {"message": "boom"}})
    )
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http:
        with pytest.raises(error_type):
            await _client(http).search("agency")


@pytest.mark.asyncio
async def test_error_detail_is_included_in_message():
    transport = httpx.MockTransport(
        _status_handler(403, {"error": {"message": "API key not valid"}})
    )
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http:
        with pytest.raises(GoogleSearchConfigError) as excinfo:
            await _client(http).search("agency")

    assert "API key not valid" in str(excinfo.value)
    assert excinfo.value.code == "GOOGLE_SEARCH_CONFIG"


@pytest.mark.asyncio
async def test_transport_timeout_raises_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL) as http:
        with pytest.raises(GoogleSearchTimeoutError):
            await _client(http).search("agency")


@pytest.mark.asyncio
async def test_malformed_payloads_raise_schema_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL) as http:
        with pytest.raises(GoogleSearchSchemaError):
            await _client(http).search("agency")

    transport = httpx.MockTransport(_status_handler(200, {"items": "oops"}))
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http:
        with pytest.raises(GoogleSearchSchemaError):
            await _client(http).search("agency")


@pytest.mark.asyncio
async def test_blank_query_is_rejected():
    async with httpx.AsyncClient(base_url=BASE_URL) as http:
        with pytest.raises(ValueError):
            await _client(http).search("   ")


def test_from_settings_requires_both_credentials():
    assert GoogleSearchClient.from_settings(
        Settings(google_cse_api_key="key", google_cse_id=None)
    ) is None
    client = GoogleSearchClient.from_settings(
        Settings(google_cse_api_key="key", google_cse_id="cx")
    )
    assert isinstance(client, GoogleSearchClient)
