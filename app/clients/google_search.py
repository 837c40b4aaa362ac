"""Async client for the Google Custom Search JSON API."""

from __future__ import annotations

from typing import Any

import httpx

from app.config import Settings

MAX_RESULTS_PER_REQUEST = 10


class GoogleSearchError(RuntimeError):
    """Base error for Google Custom Search failures."""

    def __init__(self, message: str, code: str = "GOOGLE_SEARCH_ERROR") -> None:
        super().__init__(message)
        self.code = code


class GoogleSearchConfigError(GoogleSearchError):
    """Raised when credentials or the search engine id are rejected."""

    def __init__(
        self, message: str = "Google Custom Search rejected the configured credentials"
    ) -> None:
        super().__init__(message, code="GOOGLE_SEARCH_CONFIG")


class GoogleSearchRateLimitError(GoogleSearchError):
    """Raised when Google responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Google Custom Search") -> None:
        super().__init__(message, code="GOOGLE_SEARCH_429")


class GoogleSearchTimeoutError(GoogleSearchError):
    """Raised when a Google request times out."""

    def __init__(self, message: str = "Google Custom Search request timed out") -> None:
        super().__init__(message, code="GOOGLE_SEARCH_TIMEOUT")


class GoogleSearchSchemaError(GoogleSearchError):
    """Raised when the response payload is not shaped as expected."""

    def __init__(self, message: str = "Unexpected Google Custom Search response schema") -> None:
        super().__init__(message, code="GOOGLE_SEARCH_SCHEMA_ERR")


class GoogleSearchClient:
    """Minimal async Google Custom Search client."""

    def __init__(
        self,
        api_key: str,
        search_engine_id: str,
        *,
        base_url: str = "https://www.googleapis.com",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("GOOGLE_CSE_API_KEY is required to create a GoogleSearchClient.")
        if not search_engine_id:
            raise ValueError("GOOGLE_CSE_ID is required to create a GoogleSearchClient.")
        self._api_key = api_key
        self._search_engine_id = search_engine_id
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    @classmethod
    def from_settings(
        cls, config: Settings, *, http_client: httpx.AsyncClient | None = None
    ) -> GoogleSearchClient | None:
        """Build a client from settings, or ``None`` when credentials are absent."""
        if not config.google_search_configured:
            return None
        return cls(
            config.google_cse_api_key or "",
            config.google_cse_id or "",
            base_url=config.google_cse_base_url,
            timeout=config.google_cse_timeout_seconds,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            await self._http.aclose()

    async def search(self, query: str, *, num: int = MAX_RESULTS_PER_REQUEST) -> list[dict[str, Any]]:
        """Return the raw ``items`` for one query (an empty list when Google found nothing)."""
        if not query or not query.strip():
            raise ValueError("query must be a non-empty string.")
        if num <= 0:
            raise ValueError("num must be a positive integer.")

        params = {
            "key": self._api_key,
            "cx": self._search_engine_id,
            "q": query.strip(),
            "num": min(num, MAX_RESULTS_PER_REQUEST),
        }
        try:
            response = await self._http.get("/customsearch/v1", params=params)
        except httpx.TimeoutException as exc:
            raise GoogleSearchTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise GoogleSearchError(f"HTTP error calling Google Custom Search: {exc}") from exc

        if response.status_code == 429:
            raise GoogleSearchRateLimitError()

        if response.status_code in (408, 504):
            raise GoogleSearchTimeoutError()

        if response.status_code >= 400:
            detail = _error_detail(response)
            message = f"Google Custom Search request failed: {response.status_code}"
            if detail:
                message = f"{message} - {detail}"
            if response.status_code in (400, 401, 403):
                raise GoogleSearchConfigError(message)
            raise GoogleSearchError(message)

        try:
            data = response.json()
        except ValueError as exc:
            raise GoogleSearchSchemaError("Failed to decode Google Custom Search JSON.") from exc

        if not isinstance(data, dict):
            raise GoogleSearchSchemaError("Google Custom Search response must be a JSON object.")

        items = data.get("items", [])
        if not isinstance(items, list):
            raise GoogleSearchSchemaError("`items` must be a list.")

        if not all(isinstance(entry, dict) for entry in items):
            raise GoogleSearchSchemaError("Entries in `items` must be JSON objects.")

        return items

    async def __aenter__(self) -> GoogleSearchClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def _error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or None
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None
