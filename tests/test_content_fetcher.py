from __future__ import annotations

import httpx

from repolens.config import SystemConfig
from repolens.storage.content_fetcher import ContentFetcher, file_path_from_url, to_raw_url

API_URL = "https://api.github.com/repos/acme/app/contents/src/auth.py"
RAW_URL = "https://raw.githubusercontent.com/acme/app/main/src/auth.py"


def test_file_path_from_url() -> None:
    assert file_path_from_url(API_URL) == "src/auth.py"
    assert file_path_from_url(RAW_URL) == "src/auth.py"
    assert file_path_from_url("https://example.com/x.py") == "https://example.com/x.py"


def test_to_raw_url() -> None:
    assert to_raw_url(API_URL, branch="main") == RAW_URL
    assert to_raw_url(API_URL + "?ref=dev", branch="dev") == (
        "https://raw.githubusercontent.com/acme/app/dev/src/auth.py"
    )
    assert to_raw_url(RAW_URL) == RAW_URL


async def test_fetch_rewrites_api_urls_and_returns_text() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text="def login(): ...")

    fetcher = ContentFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), branch="main")
    try:
        assert await fetcher.fetch(API_URL) == "def login(): ..."
    finally:
        await fetcher.aclose()

    assert seen == [RAW_URL]


async def test_fetch_failures_return_empty_string() -> None:
    def not_found(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="404: Not Found")

    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    for handler in (not_found, broken):
        fetcher = ContentFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        try:
            assert await fetcher.fetch(RAW_URL) == ""
        finally:
            await fetcher.aclose()


def test_file_path_from_url_uses_configured_branch(monkeypatch) -> None:
    monkeypatch.setattr(SystemConfig, "GITHUB_DEFAULT_BRANCH", "develop")

    assert file_path_from_url("https://raw.githubusercontent.com/acme/app/develop/src/auth.py") == "src/auth.py"
    assert file_path_from_url(RAW_URL) == "src/auth.py"
    assert file_path_from_url("https://raw.githubusercontent.com/acme/app/release/x.py", branch="release") == "x.py"
