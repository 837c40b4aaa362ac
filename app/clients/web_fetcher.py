"""Async content fetcher that turns a company website into structured signals.

The fetcher never raises: every failure (bad scheme, timeout, HTTP error,
non-HTML payload, transport error) comes back as ``FetchedContent`` with
``success=False`` and a readable ``error``. Pages are parsed with
BeautifulSoup; the regexes below only run over extracted text.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Iterator, Sequence
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Comment

from app.models.web_content import ContactDetails, FetchedContent, SocialLinks

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_CONCURRENCY = 3
MAX_CONTENT_CHARS = 500 * 1024
MAX_TEXT_CHARS = 5_000
MAX_SERVICES = 5

_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_WHITESPACE_RE = re.compile(r"\s+")
_TITLE_NOISE = (
    re.compile(
        r"\s*[-|–—]\s*(Home|About|Welcome|Official Site|Official Website).*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"\s*(Home|About|Welcome|Official Site|Official Website)\s*[-|–—]\s*",
        re.IGNORECASE,
    ),
)
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_IGNORED_EMAIL_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")
_IGNORED_EMAIL_DOMAINS = ("example.com", "sentry.io", "domain.com")
_PHONE_RE = re.compile(r"(?:\+\d{1,3}[-.\s]?)?\(?\d{2,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{3,4}")
# Compared against the parsed link host, never as a substring of the href.
_SOCIAL_DOMAINS = {
    "linkedin": ("linkedin.com",),
    "twitter": ("twitter.com", "x.com"),
    "facebook": ("facebook.com",),
    "instagram": ("instagram.com",),
}
_LINKEDIN_PROFILE_PATH = re.compile(r"^/(?:company|in)/", re.IGNORECASE)
_SERVICE_PATTERNS = (
    re.compile(
        r"(?:we offer|our services|services include|we provide|we specialize in)[:\s]+([^.]+)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:services|solutions|offerings)[:\s]+([^.]+)", re.IGNORECASE),
)
_PAGE_KEYWORDS = (
    "marketing",
    "branding",
    "advertising",
    "creative agency",
    "brand strategy",
    "digital marketing",
    "social media",
    "public relations",
    "activation",
    "experiential",
    "promotions",
    "campaigns",
    "agency",
    "studio",
    "consultancy",
    "consulting",
    "design",
    "strategy",
    "production",
    "events",
    "exhibitions",
)


class ContentFetcher(Protocol):
    """Fetches one or many URLs; implementations must never raise."""

    async def fetch(self, url: str, *, timeout_ms: int | None = None) -> FetchedContent:
        ...

    async def fetch_many(
        self,
        urls: Sequence[str],
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout_ms: int | None = None,
    ) -> list[FetchedContent]:
        ...


class WebContentFetcher:
    """httpx-backed fetcher that parses pages into company signals."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        user_agent: str = "Mozilla/5.0 (compatible; LeadDiscoveryBot/1.0)",
        max_content_chars: int = MAX_CONTENT_CHARS,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._max_content_chars = max_content_chars
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout_ms / 1000,
            headers={**_BROWSER_HEADERS, "User-Agent": user_agent},
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def fetch(self, url: str, *, timeout_ms: int | None = None) -> FetchedContent:
        budget_ms = timeout_ms or self._timeout_ms
        started = time.perf_counter()

        def _elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return FetchedContent.failure(url, "Invalid URL protocol - must be http or https")

        try:
            response = await asyncio.wait_for(
                self._http.get(url, timeout=budget_ms / 1000), timeout=budget_ms / 1000
            )
        except (TimeoutError, httpx.TimeoutException):
            return FetchedContent.failure(
                url, f"Timeout after {budget_ms}ms", duration_ms=_elapsed()
            )
        except httpx.HTTPError as exc:
            logger.info(
                "discovery.fetch.transport_error",
                extra={"url": url, "error": type(exc).__name__},
            )
            return FetchedContent.failure(
                url, str(exc) or type(exc).__name__, duration_ms=_elapsed()
            )

        if response.status_code >= 400:
            return FetchedContent.failure(
                url,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                duration_ms=_elapsed(),
            )

        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type and "application/xhtml" not in content_type:
            return FetchedContent.failure(
                url, f"Not an HTML page: {content_type or 'unknown'}", duration_ms=_elapsed()
            )

        markup = response.text
        if len(markup) > self._max_content_chars:
            logger.info(
                "discovery.fetch.truncated",
                extra={"url": url, "length": len(markup)},
            )
            markup = markup[: self._max_content_chars]

        content = parse_html(markup, url)
        return content.model_copy(update={"fetch_duration_ms": _elapsed()})

    async def fetch_many(
        self,
        urls: Sequence[str],
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout_ms: int | None = None,
    ) -> list[FetchedContent]:
        """Fetch URLs with at most ``concurrency`` requests in flight, preserving order."""
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _bounded(target: str) -> FetchedContent:
            async with semaphore:
                return await self.fetch(target, timeout_ms=timeout_ms)

        return list(await asyncio.gather(*(_bounded(url) for url in urls)))

    async def __aenter__(self) -> WebContentFetcher:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def parse_html(markup: str, url: str) -> FetchedContent:
    """Extract title, description, text and contact signals from raw HTML."""
    soup = BeautifulSoup(markup, "html.parser")
    structured = list(_json_ld_nodes(soup))
    title = (_clean(soup.title.get_text(" ", strip=True)) if soup.title else "") or None
    description = _meta_content(soup, "name", "description")
    social = _extract_social_links(soup)
    text = _visible_text(soup)
    return FetchedContent(
        url=url,
        success=True,
        title=title or _meta_content(soup, "property", "og:title"),
        description=description or _meta_content(soup, "property", "og:description"),
        company_name=_extract_company_name(soup, structured, title, url),
        text_content=text[:MAX_TEXT_CHARS],
        contact=_extract_contact(structured, text),
        social_links=social,
        services=_extract_services(text),
        keywords=_extract_keywords(text, description),
    )


def extract_text(markup: str) -> str:
    return _visible_text(BeautifulSoup(markup, "html.parser"))


def _visible_text(soup: BeautifulSoup) -> str:
    # Mutates the soup, so structured data and links must be read first.
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    return _clean(soup.get_text(" ", strip=True))


def _clean(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value.replace("\xa0", " ")).strip()


def _meta_content(soup: BeautifulSoup, attribute: str, value: str) -> str | None:
    matcher = re.compile(rf"^{re.escape(value)}$", re.IGNORECASE)
    for tag in soup.find_all("meta", attrs={attribute: matcher, "content": True}):
        content = _clean(tag["content"])
        if content:
            return content
    return None


def _json_ld_nodes(soup: BeautifulSoup) -> Iterator[dict[str, Any]]:
    """Yield every object in the page's JSON-LD blocks, nested ones included."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("discovery.fetch.invalid_json_ld")
            continue
        pending = [data]
        while pending:
            node = pending.pop(0)
            if isinstance(node, list):
                pending.extend(node)
            elif isinstance(node, dict):
                yield node
                pending.extend(
                    child for child in node.values() if isinstance(child, (dict, list))
                )


def _is_organization(node: dict[str, Any]) -> bool:
    declared = node.get("@type")
    types = declared if isinstance(declared, list) else [declared]
    return "Organization" in types


def _extract_company_name(
    soup: BeautifulSoup, structured: list[dict[str, Any]], title: str | None, url: str
) -> str | None:
    for node in structured:
        name = node.get("name")
        if _is_organization(node) and isinstance(name, str) and name.strip():
            return _clean(name)

    site_name = _meta_content(soup, "property", "og:site_name")
    if site_name:
        return site_name

    if title:
        cleaned = title
        for pattern in _TITLE_NOISE:
            cleaned = pattern.sub("", cleaned)
        cleaned = cleaned.strip()
        if 2 < len(cleaned) < 100:
            return cleaned

    host = (urlparse(url).hostname or "").removeprefix("www.")
    label = host.split(".")[0] if host else ""
    if len(label) > 2:
        return label[:1].upper() + label[1:]
    return title


def _extract_contact(structured: list[dict[str, Any]], text: str) -> ContactDetails | None:
    email = next(
        (
            candidate.lower()
            for candidate in _EMAIL_RE.findall(text)
            if not candidate.lower().endswith(_IGNORED_EMAIL_SUFFIXES)
            and not candidate.lower().split("@")[-1].endswith(_IGNORED_EMAIL_DOMAINS)
        ),
        None,
    )
    phone_match = _PHONE_RE.search(text)
    address = next(
        (
            _clean(node["streetAddress"])
            for node in structured
            if isinstance(node.get("streetAddress"), str)
        ),
        None,
    )
    contact = ContactDetails(
        email=email,
        phone=phone_match.group(0).strip() if phone_match else None,
        address=address or None,
    )
    return contact if contact.has_any else None


def _on_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith(f".{domain}")


def _social_network(href: str) -> str | None:
    parsed = urlparse(href.strip())
    host = (parsed.hostname or "").lower()
    if not host:
        return None
    for network, domains in _SOCIAL_DOMAINS.items():
        if any(_on_domain(host, domain) for domain in domains):
            if network == "linkedin" and not _LINKEDIN_PROFILE_PATH.match(parsed.path):
                return None
            return network
    return None


def _extract_social_links(soup: BeautifulSoup) -> SocialLinks | None:
    found: dict[str, str] = {}
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        network = _social_network(href)
        if network and network not in found:
            found[network] = href
    return SocialLinks(**found) if found else None


def _extract_services(text: str) -> list[str]:
    lowered = text.lower()
    services: list[str] = []
    for pattern in _SERVICE_PATTERNS:
        for match in pattern.finditer(lowered):
            phrase = match.group(1).strip()
            if phrase and len(phrase) < 200:
                services.append(phrase)
    return services[:MAX_SERVICES]


def _extract_keywords(text: str, description: str | None) -> list[str]:
    haystack = f"{description or ''} {text}".lower()
    return [keyword for keyword in _PAGE_KEYWORDS if keyword in haystack]
