from __future__ import annotations

import asyncio

import httpx
import pytest

from app.clients.web_fetcher import WebContentFetcher, extract_text, parse_html

AGENCY_HTML = """
<html>
<head>
  <title>Brightside Creative | Home</title>
  <meta name="description" content="Branding and activation agency in Johannesburg.">
  <script>var tracking = "ignore@me.com";</script>
  <style>.hidden { display: none; }</style>
</head>
<body>
  <h1>Brightside Creative</h1>
  <p>Our services include brand activation, experiential campaigns and design.</p>
  <p>Email hello@brightside.co.za or call +27 11 555 0100.</p>
  <img src="logo@2x.png">
  <a href="https://www.linkedin.com/company/brightside">LinkedIn</a>
  <a href="https://instagram.com/brightside">Instagram</a>
  <script type="application/ld+json">
    {"@type": "Organization", "name": "Brightside Creative (Pty) Ltd",
     "address": {"streetAddress": "12 Rivonia Rd, Sandton"}}
  </script>
</body>
</html>
"""


def _html_handler(markup: str, status_code: int = 200, content_type: str = "text/html"):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code, text=markup, headers={"content-type": content_type}
        )

    return handler


def test_parse_html_extracts_company_signals():
    content = parse_html(AGENCY_HTML, "https://brightside.co.za")

    assert content.success is True
    assert content.title == "Brightside Creative | Home"
    assert content.description == "Branding and activation agency in Johannesburg."
    assert content.company_name == "Brightside Creative (Pty) Ltd"
    assert content.contact is not None
    assert content.contact.email == "hello@brightside.co.za"
    assert content.contact.phone is not None
    assert content.contact.address == "12 Rivonia Rd, Sandton"
    assert content.social_links is not None
    assert content.social_links.present() == {
        "linkedin": "https://www.linkedin.com/company/brightside",
        "instagram": "https://instagram.com/brightside",
    }
    assert content.services
    assert "agency" in content.keywords


def test_extract_text_drops_scripts_and_styles():
    text = extract_text(AGENCY_HTML)

    assert "tracking" not in text
    assert "display: none" not in text
    assert "Our services include brand activation" in text


def test_company_name_falls_back_to_title_then_host():
    from_title = parse_html("<title>Acme Uniforms - Home</title><p>hi</p>", "https://acme.co.za")
    from_host = parse_html("<p>no title</p>", "https://www.uniformco.co.za/about")

    assert from_title.company_name == "Acme Uniforms"
    assert from_host.company_name == "Uniformco"


def test_og_site_name_wins_over_title():
    markup = '<meta property="og:site_name" content="Acme Group"><title>Welcome</title>'

    assert parse_html(markup, "https://acme.co.za").company_name == "Acme Group"


def test_description_keeps_apostrophes_inside_quoted_attributes():
    markup = (
        '<meta name="description" content="We\'re a full-service creative agency in '
        'Johannesburg building brands since 2004.">'
        "<meta property='og:title' content='Say \"hello\" to Brightside'>"
    )

    content = parse_html(markup, "https://brightside.co.za")

    assert content.description == (
        "We're a full-service creative agency in Johannesburg building brands since 2004."
    )
    assert content.title == 'Say "hello" to Brightside'


def test_social_links_match_link_host_not_substring():
    markup = """
    <a href="https://www.dropbox.com/s/brochure.pdf">Brochure</a>
    <a href="https://www.netflix.com/title/1">Watch</a>
    <a href="https://www.linkedin.com/jobs/view/42">Jobs</a>
    <a href="/about">About</a>
    <a href="https://x.com/brightside">X</a>
    <a href="https://m.facebook.com/brightside">Facebook</a>
    """

    content = parse_html(markup, "https://brightside.co.za")

    assert content.social_links is not None
    assert content.social_links.present() == {
        "twitter": "https://x.com/brightside",
        "facebook": "https://m.facebook.com/brightside",
    }


def test_no_social_links_when_only_lookalike_hosts():
    markup = '<a href="https://www.fedex.com/track">Track</a>'

    assert parse_html(markup, "https://brightside.co.za").social_links is None


def test_malformed_json_ld_falls_back_to_title():
    markup = (
        '<title>Kit Uniforms - Home</title>'
        '<script type="application/ld+json">{"@type": "Organization", name: }</script>'
    )

    assert parse_html(markup, "https://kit.co.za").company_name == "Kit Uniforms"


@pytest.mark.asyncio
async def test_fetch_returns_parsed_content():
    transport = httpx.MockTransport(_html_handler(AGENCY_HTML))
    async with httpx.AsyncClient(transport=transport) as http:
        fetcher = WebContentFetcher(http_client=http)
        content = await fetcher.fetch("https://brightside.co.za")

    assert content.success is True
    assert content.url == "https://brightside.co.za"
    assert content.company_name == "Brightside Creative (Pty) Ltd"
    assert content.fetch_duration_ms >= 0


@pytest.mark.asyncio
async def test_fetch_rejects_non_http_urls_without_network():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        content = await WebContentFetcher(http_client=http).fetch("ftp://files.example.com")

    assert content.success is False
    assert content.error == "Invalid URL protocol - must be http or https"
    assert calls == []


@pytest.mark.asyncio
async def test_fetch_reports_http_errors_and_non_html():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_html_handler("", 503))) as http:
        failed = await WebContentFetcher(http_client=http).fetch("https://down.example.com")

    transport = httpx.MockTransport(_html_handler("{}", content_type="application/json"))
    async with httpx.AsyncClient(transport=transport) as http:
        not_html = await WebContentFetcher(http_client=http).fetch("https://api.example.com")

    assert failed.success is False
    assert failed.error == "HTTP 503: Service Unavailable"
    assert not_html.success is False
    assert not_html.error == "Not an HTML page: application/json"


@pytest.mark.asyncio
async def test_fetch_converts_timeouts_to_failures():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        content = await WebContentFetcher(http_client=http).fetch(
            "https://slow.example.com", timeout_ms=250
        )

    assert content.success is False
    assert content.error == "Timeout after 250ms"


@pytest.mark.asyncio
async def test_fetch_converts_transport_errors_to_failures():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        content = await WebContentFetcher(http_client=http).fetch("https://refused.example.com")

    assert content.success is False
    assert content.error == "connection refused"


@pytest.mark.asyncio
async def test_fetch_many_bounds_concurrency_and_preserves_order():
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(
            200,
            text=f"<title>{request.url.host}</title>",
            headers={"content-type": "text/html; charset=utf-8"},
        )

    urls = [f"https://site{index}.example.com" for index in range(6)]
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        results = await WebContentFetcher(http_client=http).fetch_many(urls, concurrency=2)

    assert [content.url for content in results] == urls
    assert all(content.success for content in results)
    assert peak <= 2
