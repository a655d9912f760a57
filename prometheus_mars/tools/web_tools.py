"""Web tools for the Prometheus agent: web_search and web_fetch.

Uses a separate httpx client from the LLM adapters (no API credentials).
web_search scrapes the DuckDuckGo HTML endpoint, so no key is needed.
"""

from __future__ import annotations

import html as html_module
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from prometheus_mars.tools.dispatcher import ToolDispatcher, ToolError, make_tool

logger = logging.getLogger(__name__)

_USER_AGENT = "Prometheus-Mars/0.2.0"
_FETCH_TIMEOUT = 10  # seconds
_MAX_FETCH_CHARS = 100 * 1024  # 100KB
_MAX_REDIRECTS = 5
_MAX_SEARCH_RESULTS = 8
_SEARCH_URL = "https://html.duckduckgo.com/html/"

# Blocked IP ranges for SSRF protection
_BLOCKED_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),       # Loopback
    ipaddress.ip_network("10.0.0.0/8"),         # RFC1918
    ipaddress.ip_network("172.16.0.0/12"),      # RFC1918
    ipaddress.ip_network("192.168.0.0/16"),     # RFC1918
    ipaddress.ip_network("169.254.0.0/16"),     # Link-local / cloud metadata
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),            # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),           # IPv6 unique local
    ipaddress.ip_network("fe80::/10"),          # IPv6 link-local
]

_BLOCKED_HOSTNAMES = {"localhost", "0.0.0.0"}


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str = ""


def _is_url_safe(url: str) -> tuple[bool, str]:
    """Check if URL is safe from SSRF attacks.

    Resolves hostname to IP and checks against blocked ranges.
    Returns (is_safe, error_message).
    """
    parsed = urlparse(url)
    hostname = parsed.hostname

    if not hostname:
        return False, "Could not parse hostname from URL"

    if hostname.lower() in _BLOCKED_HOSTNAMES:
        return False, f"Blocked hostname: {hostname}"

    try:
        addr_infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        return False, f"Could not resolve hostname: {hostname}"

    for addr_info in addr_infos:
        ip = ipaddress.ip_address(addr_info[4][0])
        for network in _BLOCKED_NETWORKS:
            if ip in network:
                return False, f"URL resolves to blocked IP range ({network})"

    return True, ""


# ---------------------------------------------------------------------------
# HTML helpers
# ---------------------------------------------------------------------------


def html_to_text(raw_html: str) -> str:
    """Strip scripts, styles and tags, decode entities, squeeze whitespace."""
    text = re.sub(r"<(script|style|noscript)[^>]*>.*?</\1>", "", raw_html, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<!--.*?-->", "", text, flags=re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_module.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


_RESULT_LINK = re.compile(r'<a[^>]*class="result__a"[^>]*href="([^"]*)"[^>]*>(.*?)</a>', re.DOTALL | re.IGNORECASE)
_RESULT_SNIPPET = re.compile(r'<a[^>]*class="result__snippet"[^>]*>(.*?)</a>', re.DOTALL | re.IGNORECASE)
_LITE_LINK = re.compile(r'<a[^>]*href="(https?://[^"]+)"[^>]*>(.*?)</a>', re.DOTALL | re.IGNORECASE)


def _strip_tags(fragment: str) -> str:
    return html_module.unescape(re.sub(r"<[^>]+>", "", fragment)).strip()


def parse_search_results(page: str) -> list[SearchResult]:
    """Extract results from a DuckDuckGo HTML (or lite) response page."""
    snippets = [_strip_tags(m) for m in _RESULT_SNIPPET.findall(page)]
    results: list[SearchResult] = []
    for i, (href, title_html) in enumerate(_RESULT_LINK.findall(page)):
        url = html_module.unescape(href)
        title = _strip_tags(title_html)
        if url and title:
            results.append(SearchResult(title=title, url=url, snippet=snippets[i] if i < len(snippets) else ""))

    if not results:
        # Lite layout: plain external anchors
        for href, title_html in _LITE_LINK.findall(page):
            title = _strip_tags(title_html)
            if title and "duckduckgo.com" not in href:
                results.append(SearchResult(title=title, url=href))

    return results[:_MAX_SEARCH_RESULTS]


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def web_search_tool(query: str, *, _http: httpx.AsyncClient) -> str:
    """Search the web and return numbered title / URL / snippet entries."""
    try:
        response = await _http.get(
            _SEARCH_URL,
            params={"q": query},
            headers={"User-Agent": _USER_AGENT, "Accept": "text/html"},
            timeout=_FETCH_TIMEOUT,
        )
    except httpx.TimeoutException:
        raise ToolError("Web search timed out. Try again.") from None
    except httpx.HTTPError as e:
        raise ToolError(f"Could not connect to search service: {e}") from e

    if response.status_code != 200:
        raise ToolError(f"Search failed: HTTP {response.status_code}")

    results = parse_search_results(response.text)
    if not results:
        return "No results found."

    return "\n\n".join(
        f"{i}. {r.title}\n   {r.url}\n   {r.snippet}" for i, r in enumerate(results, 1)
    )


async def web_fetch_tool(url: str, *, _http: httpx.AsyncClient) -> str:
    """Fetch a URL and return its text content (HTML converted to text)."""
    if not url.startswith(("http://", "https://")):
        raise ToolError("URL must start with http:// or https://")

    # Follow redirects by hand so every hop passes the SSRF check
    current_url = url
    response: httpx.Response | None = None
    for _ in range(_MAX_REDIRECTS + 1):
        is_safe, error = _is_url_safe(current_url)
        if not is_safe:
            raise ToolError(f"Blocked: {error}")
        try:
            response = await _http.get(
                current_url,
                headers={"User-Agent": _USER_AGENT},
                follow_redirects=False,
                timeout=_FETCH_TIMEOUT,
            )
        except httpx.TimeoutException:
            raise ToolError(f"Fetch timed out for: {url}") from None
        except httpx.HTTPError as e:
            raise ToolError(f"Could not connect to {url}: {e}") from e

        if response.status_code not in (301, 302, 303, 307, 308):
            break
        location = response.headers.get("location", "")
        if not location:
            break
        current_url = urljoin(current_url, location)
    else:
        raise ToolError(f"Too many redirects (max {_MAX_REDIRECTS})")

    if response is None:
        raise ToolError("No response received")
    if response.status_code >= 400:
        raise ToolError(f"HTTP {response.status_code}: {response.reason_phrase}")

    content_type = response.headers.get("content-type", "")
    is_html = "html" in content_type
    text = response.text

    if len(text) > _MAX_FETCH_CHARS:
        body = text[:_MAX_FETCH_CHARS]
        body = html_to_text(body) if is_html else body
        return body + "\n\n[Truncated -- response exceeded 100KB]"

    return html_to_text(text) if is_html else text


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

_WEB_SEARCH_PROPERTIES: dict[str, Any] = {
    "query": {"type": "string", "description": "The search query"},
}

_WEB_FETCH_PROPERTIES: dict[str, Any] = {
    "url": {"type": "string", "description": "The URL to fetch (http or https)"},
}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_web_tools(dispatcher: ToolDispatcher, http_client: httpx.AsyncClient) -> None:
    """Register web_search and web_fetch with the dispatcher.

    Creates closure wrappers that inject the httpx client.
    """
    async def _search(query: str) -> str:
        return await web_search_tool(query, _http=http_client)

    async def _fetch(url: str) -> str:
        return await web_fetch_tool(url, _http=http_client)

    dispatcher.register(make_tool(
        "web_search",
        "Search the web and return a list of results with titles, URLs, and snippets.",
        _WEB_SEARCH_PROPERTIES, ["query"], _search,
    ))
    dispatcher.register(make_tool(
        "web_fetch",
        "Fetch a URL and return its text content. HTML is automatically converted "
        "to plain text. Max 100KB.",
        _WEB_FETCH_PROPERTIES, ["url"], _fetch,
    ))
