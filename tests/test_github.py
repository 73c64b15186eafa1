"""Tests for src/docsift/sources/github.py: repository documentation walk."""

from unittest.mock import AsyncMock, patch

import pytest

from docsift.sources.base import EngineFatalError
from docsift.sources.github import GitHubEngine, _title_from_filename

API = "https://api.github.com/repos/octo/lib"
RAW = "https://raw.githubusercontent.com/octo/lib"


def _routes(make_response, listing_overrides=None):
    listings = {
        f"{API}/contents/": [
            {"type": "dir", "name": "docs", "path": "docs"},
            {"type": "file", "name": "README.md", "path": "README.md"},
        ],
        f"{API}/contents/docs": [
            {"type": "file", "name": "getting-started.md", "path": "docs/getting-started.md"},
            {"type": "file", "name": "logo.png", "path": "docs/logo.png"},
            {"type": "dir", "name": "examples", "path": "docs/examples"},
            {"type": "dir", "name": "api", "path": "docs/api"},
        ],
        f"{API}/contents/docs/api": [
            {
                "type": "file",
                "name": "client_reference.mdx",
                "path": "docs/api/client_reference.mdx",
            },
        ],
    }
    listings.update(listing_overrides or {})

    async def fake_get(url, params=None, headers=None):
        if url == API:
            return make_response(json_data={"default_branch": "dev"})
        if url in listings:
            value = listings[url]
            if isinstance(value, int):
                return make_response(status=value)
            return make_response(json_data=value)
        if url.startswith(RAW):
            return make_response(text=f"# {url.rsplit('/', 1)[-1]}\n\nBody")
        return make_response(status=404)

    return fake_get


async def _collect(engine, url):
    return [page async for page in engine.crawl(url)]


class TestGitHubEngine:
    @pytest.mark.asyncio
    async def test_walks_doc_dirs(self, policy, mock_client, make_response):
        mock_client.get = AsyncMock(side_effect=_routes(make_response))

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            pages = await _collect(GitHubEngine(policy, token=""), "https://github.com/octo/lib")

        assert [p.url for p in pages] == [
            "https://github.com/octo/lib/blob/dev/docs/getting-started.md",
            "https://github.com/octo/lib/blob/dev/docs/api/client_reference.mdx",
        ]
        assert [p.title for p in pages] == ["Getting Started", "Client Reference"]
        assert pages[0].path == "/docs/getting-started.md"
        assert pages[0].raw_content.startswith("# getting-started.md")

        requested = [c.args[0] for c in mock_client.get.await_args_list]
        assert f"{API}/contents/docs/examples" not in requested
        assert all(c.kwargs["params"] == {"ref": "dev"} for c in mock_client.get.await_args_list if "/contents/" in c.args[0])

    @pytest.mark.asyncio
    async def test_root_used_without_doc_dirs(self, policy, mock_client, make_response):
        overrides = {
            f"{API}/contents/": [
                {"type": "file", "name": "README.md", "path": "README.md"},
                {"type": "dir", "name": "node_modules", "path": "node_modules"},
            ]
        }
        mock_client.get = AsyncMock(side_effect=_routes(make_response, overrides))

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            pages = await _collect(GitHubEngine(policy, token=""), "https://github.com/octo/lib")

        assert [p.title for p in pages] == ["README"]
        requested = [c.args[0] for c in mock_client.get.await_args_list]
        assert f"{API}/contents/node_modules" not in requested

    @pytest.mark.asyncio
    async def test_rate_limit_ends_branch_without_retry(self, policy, mock_client, make_response):
        overrides = {f"{API}/contents/docs/api": 403}
        mock_client.get = AsyncMock(side_effect=_routes(make_response, overrides))

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            pages = await _collect(GitHubEngine(policy, token=""), "https://github.com/octo/lib")

        assert [p.title for p in pages] == ["Getting Started"]
        requested = [c.args[0] for c in mock_client.get.await_args_list]
        assert requested.count(f"{API}/contents/docs/api") == 1

    @pytest.mark.asyncio
    async def test_tree_url_sets_branch_and_start_dir(self, policy, mock_client, make_response):
        mock_client.get = AsyncMock(side_effect=_routes(make_response))

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            pages = await _collect(
                GitHubEngine(policy, token=""),
                "https://github.com/octo/lib/tree/v2/docs/api",
            )

        assert [p.url for p in pages] == [
            "https://github.com/octo/lib/blob/v2/docs/api/client_reference.mdx"
        ]
        requested = [c.args[0] for c in mock_client.get.await_args_list]
        assert API not in requested

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self, policy, mock_client, make_response):
        mock_client.get = AsyncMock(side_effect=_routes(make_response))

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            await _collect(GitHubEngine(policy, token="s3cret"), "https://github.com/octo/lib")

        headers = mock_client.get.await_args_list[0].kwargs["headers"]
        assert headers["Authorization"] == "Bearer s3cret"

    @pytest.mark.asyncio
    async def test_page_cap(self, mock_client, make_response):
        from docsift.sources.base import CrawlPolicy

        policy = CrawlPolicy(max_pages=1, max_depth=4, retry_base_delay=0)
        mock_client.get = AsyncMock(side_effect=_routes(make_response))

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            pages = await _collect(GitHubEngine(policy, token=""), "https://github.com/octo/lib")

        assert len(pages) == 1

    @pytest.mark.asyncio
    async def test_unparsable_repo_url_is_fatal(self, policy):
        with pytest.raises(EngineFatalError):
            await _collect(GitHubEngine(policy, token=""), "https://github.com/octo")

    @pytest.mark.asyncio
    async def test_failed_file_is_skipped(self, policy, mock_client, make_response):
        routes = _routes(make_response)

        async def fake_get(url, params=None, headers=None):
            if url.endswith("getting-started.md") and url.startswith(RAW):
                return make_response(status=500)
            return await routes(url, params=params, headers=headers)

        mock_client.get = AsyncMock(side_effect=fake_get)

        with patch("docsift.sources.github.httpx.AsyncClient", return_value=mock_client):
            pages = await _collect(GitHubEngine(policy, token=""), "https://github.com/octo/lib")

        assert [p.title for p in pages] == ["Client Reference"]


def test_title_from_filename():
    assert _title_from_filename("docs/getting-started.md") == "Getting Started"
    assert _title_from_filename("api_reference.mdx") == "Api Reference"
    assert _title_from_filename("FAQ.md") == "FAQ"
