"""Web tools: web_search and read_url."""

import html
import ipaddress
import os
import re
import socket
from typing import Any
from urllib.parse import urlparse

import httpx

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36 PurrClaw/0.1"
MAX_REDIRECTS = 5


def _strip_tags(text: str) -> str:
    """Remove HTML tags and decode entities."""
    text = re.sub(r"<script[\s\S]*?</script>", "", text, flags=re.I)
    text = re.sub(r"<style[\s\S]*?</style>", "", text, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    return html.unescape(text).strip()


def _normalize(text: str) -> str:
    """Normalize whitespace."""
    text = re.sub(r"[ \t]+", " ", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def _is_private_host(hostname: str) -> bool:
    host = (hostname or "").lower().strip("[]")
    if not host or host == "localhost" or host.endswith(".local"):
        return True
    try:
        addresses = {host} if _looks_like_ip(host) else {
            info[4][0] for info in socket.getaddrinfo(host, None)
        }
    except socket.gaierror:
        return False
    for address in addresses:
        ip = ipaddress.ip_address(address)
        if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_multicast or ip.is_reserved:
            return True
    return False


def _looks_like_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _validate_url(url: str) -> tuple[bool, str]:
    """Validate URL: must be http(s) with a public host."""
    try:
        p = urlparse(url)
    except ValueError as e:
        return False, str(e)
    if p.scheme not in ("http", "https"):
        return False, f"Only http/https allowed, got '{p.scheme or 'none'}'"
    if not p.netloc:
        return False, "Missing domain"
    if _is_private_host(p.hostname or ""):
        return False, "Access to private or local addresses is blocked"
    return True, ""


class WebSearchTool(Tool):
    """Search the web using Brave Search API, falling back to DuckDuckGo instant answers."""

    def __init__(self, api_key: str | None = None, max_results: int = 5):
        self.api_key = api_key or os.environ.get("BRAVE_API_KEY", "")
        self.max_results = max_results

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web for recent/public information. Returns title, URL, and snippet."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query text"},
                "limit": {"type": "integer", "description": "Number of results (1-10)"},
            },
            "required": ["query"],
        }

    async def execute(self, context: ToolContext, query: str, limit: int | None = None, **kwargs: Any) -> ToolResult:
        n = min(max(limit or self.max_results, 1), 10)
        try:
            async with httpx.AsyncClient(timeout=20.0) as client:
                if self.api_key:
                    results = await self._search_brave(client, query, n)
                else:
                    results = await self._search_duckduckgo(client, query, n)
        except httpx.HTTPError as e:
            return ToolResult.error(f"Error: web search failed: {e}")

        if not results:
            return ToolResult.ok(f"No results for: {query}")

        lines = [f"Results for: {query}\n"]
        for i, item in enumerate(results, 1):
            lines.append(f"{i}. {item['title']}\n   {item['url']}")
            if item["snippet"]:
                lines.append(f"   {item['snippet']}")
        return ToolResult.ok("\n".join(lines))

    async def _search_brave(self, client: httpx.AsyncClient, query: str, n: int) -> list[dict[str, str]]:
        r = await client.get(
            "https://api.search.brave.com/res/v1/web/search",
            params={"q": query, "count": n, "safesearch": "moderate"},
            headers={"Accept": "application/json", "X-Subscription-Token": self.api_key},
        )
        r.raise_for_status()
        items = r.json().get("web", {}).get("results", [])
        return [
            {
                "title": item.get("title") or "(no title)",
                "url": item.get("url", ""),
                "snippet": _strip_tags(item.get("description", "")),
            }
            for item in items[:n]
        ]

    async def _search_duckduckgo(self, client: httpx.AsyncClient, query: str, n: int) -> list[dict[str, str]]:
        r = await client.get(
            "https://api.duckduckgo.com/",
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1, "no_redirect": 1},
        )
        r.raise_for_status()
        data = r.json()
        out: list[dict[str, str]] = []
        if data.get("AbstractURL") or data.get("AbstractText"):
            out.append({
                "title": data.get("Heading") or query,
                "url": data.get("AbstractURL", ""),
                "snippet": data.get("AbstractText", ""),
            })
        topics = list(data.get("RelatedTopics") or [])
        while topics and len(out) < n:
            topic = topics.pop(0)
            if topic.get("Text") and topic.get("FirstURL"):
                out.append({
                    "title": topic["Text"].split(" - ")[0],
                    "url": topic["FirstURL"],
                    "snippet": topic["Text"],
                })
            elif isinstance(topic.get("Topics"), list):
                topics[:0] = topic["Topics"]
        return out[:n]


class ReadUrlTool(Tool):
    """Fetch a public URL and return its readable text."""

    def __init__(self, max_chars: int = 20_000):
        self.max_chars = max_chars

    @property
    def name(self) -> str:
        return "read_url"

    @property
    def description(self) -> str:
        return "Fetch a public web page and return its text content."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to fetch"},
                "max_chars": {"type": "integer", "minimum": 100},
            },
            "required": ["url"],
        }

    async def execute(self, context: ToolContext, url: str, max_chars: int | None = None, **kwargs: Any) -> ToolResult:
        limit = max_chars or self.max_chars
        current = url
        try:
            async with httpx.AsyncClient(follow_redirects=False, timeout=30.0) as client:
                for _ in range(MAX_REDIRECTS + 1):
                    ok, error = _validate_url(current)
                    if not ok:
                        return ToolResult.error(f"Error: URL validation failed: {error}")
                    r = await client.get(current, headers={"User-Agent": USER_AGENT})
                    if r.is_redirect and r.headers.get("location"):
                        current = str(r.url.join(r.headers["location"]))
                        continue
                    r.raise_for_status()
                    break
                else:
                    return ToolResult.error(f"Error: too many redirects (max {MAX_REDIRECTS})")
        except httpx.HTTPError as e:
            return ToolResult.error(f"Error: failed to fetch {url}: {e}")

        ctype = r.headers.get("content-type", "")
        if "html" in ctype or r.text[:256].lower().lstrip().startswith(("<!doctype", "<html")):
            title = re.search(r"<title[^>]*>([\s\S]*?)</title>", r.text, flags=re.I)
            body = _normalize(_strip_tags(r.text))
            text = f"# {_strip_tags(title.group(1))}\n\n{body}" if title else body
        else:
            text = r.text

        if len(text) > limit:
            text = text[:limit] + f"\n... (truncated, {len(text) - limit} more chars)"
        return ToolResult.ok(f"URL: {current}\nStatus: {r.status_code}\n\n{text}", silent=True)
