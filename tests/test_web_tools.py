import httpx
import pytest

from purrclaw.agent.tools.base import ToolContext
from purrclaw.agent.tools.web import ReadUrlTool, WebSearchTool, _validate_url


def _install_transport(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def _client(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr("purrclaw.agent.tools.web.httpx.AsyncClient", _client)


@pytest.mark.parametrize(
    "url",
    [
        "http://localhost:8080/admin",
        "http://127.0.0.1/",
        "http://10.0.0.5/secret",
        "http://[::1]/",
        "http://printer.local/",
    ],
)
def test_private_hosts_are_rejected(url):
    ok, error = _validate_url(url)

    assert not ok
    assert "blocked" in error


def test_non_http_scheme_rejected():
    ok, error = _validate_url("file:///etc/passwd")

    assert not ok
    assert "Only http/https" in error


async def test_read_url_returns_page_text(monkeypatch):
    monkeypatch.setattr("purrclaw.agent.tools.web._is_private_host", lambda host: False)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/html"},
            text="<html><title>Cats</title><script>x()</script><p>Cats &amp; dogs</p></html>",
        )

    _install_transport(monkeypatch, handler)

    result = await ReadUrlTool().execute(ToolContext(), url="https://example.com/cats")

    assert not result.is_error
    assert result.silent
    assert "# Cats" in result.for_llm
    assert "Cats & dogs" in result.for_llm
    assert "x()" not in result.for_llm


async def test_read_url_checks_redirect_targets(monkeypatch):
    monkeypatch.setattr(
        "purrclaw.agent.tools.web._is_private_host", lambda host: host == "internal.example"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"location": "http://internal.example/"})

    _install_transport(monkeypatch, handler)

    result = await ReadUrlTool().execute(ToolContext(), url="https://example.com/")

    assert result.is_error
    assert "blocked" in result.for_llm


async def test_read_url_truncates_long_bodies(monkeypatch):
    monkeypatch.setattr("purrclaw.agent.tools.web._is_private_host", lambda host: False)
    _install_transport(monkeypatch, lambda request: httpx.Response(200, text="a" * 500))

    result = await ReadUrlTool().execute(ToolContext(), url="https://example.com/", max_chars=100)

    assert "truncated, 400 more chars" in result.for_llm


async def test_web_search_uses_brave_when_key_set(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["host"] = request.url.host
        seen["token"] = request.headers.get("X-Subscription-Token")
        return httpx.Response(200, json={"web": {"results": [
            {"title": "Purr", "url": "https://purr.example", "description": "<b>why</b> cats purr"},
        ]}})

    _install_transport(monkeypatch, handler)

    result = await WebSearchTool(api_key="brave-key").execute(ToolContext(), query="cats")

    assert seen == {"host": "api.search.brave.com", "token": "brave-key"}
    assert "1. Purr\n   https://purr.example" in result.for_llm
    assert "why cats purr" in result.for_llm


async def test_web_search_http_error_is_error_result(monkeypatch):
    _install_transport(monkeypatch, lambda request: httpx.Response(500))

    result = await WebSearchTool(api_key="brave-key").execute(ToolContext(), query="cats")

    assert result.is_error
    assert "web search failed" in result.for_llm
