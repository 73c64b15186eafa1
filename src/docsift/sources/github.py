"""GitHub repository documentation walker.

Lists repository directories through the contents API and fetches
Markdown files from the raw mirror.  Produces cleaner content than
crawling the rendered github.com pages.

Walk order:
1. Resolve the branch (``/tree/<branch>/<dir>`` URL, else the
   repository's default branch, else ``main``).
2. Start at the directory named in the URL, else at the well-known
   documentation directories, else at the repository root.
3. Recurse into subdirectories except dependency/test/build ones.
"""

import re
from collections.abc import AsyncIterator
from urllib.parse import quote, urlsplit

import httpx
from loguru import logger

from docsift import urls
from docsift.config import settings
from docsift.models import ENGINE_GITHUB, CrawledPage
from docsift.sources.base import CrawlPolicy, EngineFatalError, RateLimitedError

_API_BASE = "https://api.github.com/repos"
_RAW_BASE = "https://raw.githubusercontent.com"

_DOC_DIRS = frozenset(
    {"docs", "doc", "documentation", "wiki", "guide", "guides", "tutorial", "tutorials"}
)

# Directory names never descended into (exact name match).
_SKIP_DIRS = frozenset(
    {"node_modules", "vendor", "test", "tests", "example", "examples", "build", "dist"}
)

_TREE_RE = re.compile(r"^/[^/]+/[^/]+/tree/([^/]+)(?:/(.+?))?/?$")


def _title_from_filename(filename: str) -> str:
    """``getting-started_guide.md`` -> ``Getting Started Guide``."""
    stem = filename.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    words = [w for w in re.split(r"[-_]", stem) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words)


class GitHubEngine:
    """Walks a GitHub repository and yields its Markdown documents."""

    id = ENGINE_GITHUB

    def __init__(self, policy: CrawlPolicy | None = None, token: str | None = None):
        self.policy = policy or CrawlPolicy.from_settings()
        self.token = token if token is not None else settings.resolve_github_token()

    def abort(self) -> None:
        self.policy.abort()

    def _headers(self, api: bool = True) -> dict[str, str]:
        headers: dict[str, str] = {}
        if api:
            headers["Accept"] = "application/vnd.github.v3+json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def crawl(self, url: str) -> AsyncIterator[CrawledPage]:
        repo = urls.github_repo(url)
        if repo is None:
            raise EngineFatalError(f"Not a GitHub repository URL: {url}")
        owner, name = repo

        branch: str | None = None
        start_dir = ""
        match = _TREE_RE.match(urlsplit(url).path)
        if match:
            branch = match.group(1)
            start_dir = (match.group(2) or "").strip("/")

        logger.info(f"Walking GitHub repository {owner}/{name}")

        async with httpx.AsyncClient(
            timeout=settings.fetch_timeout, follow_redirects=True
        ) as client:
            if branch is None:
                branch = await self._default_branch(client, owner, name)

            if start_dir:
                roots = [start_dir]
            else:
                roots = await self._doc_roots(client, owner, name, branch)

            for root in roots:
                if self.policy.stopped:
                    break
                async for page in self._walk(client, owner, name, branch, root, 0):
                    yield page

        logger.info(f"GitHub walk of {owner}/{name} finished: {self.policy.pages} files")

    async def _default_branch(self, client: httpx.AsyncClient, owner: str, name: str) -> str:
        try:
            resp = await client.get(f"{_API_BASE}/{owner}/{name}", headers=self._headers())
            if resp.status_code == 200:
                return resp.json().get("default_branch") or "main"
            logger.debug(f"Repository lookup returned {resp.status_code}, assuming main")
        except httpx.HTTPError as e:
            logger.debug(f"Repository lookup failed: {e}, assuming main")
        return "main"

    async def _list_dir(
        self, client: httpx.AsyncClient, owner: str, name: str, branch: str, path: str
    ) -> list[dict]:
        api_url = f"{_API_BASE}/{owner}/{name}/contents/{quote(path)}"

        async def fetch() -> list[dict]:
            await self.policy.wait_turn()
            resp = await client.get(api_url, params={"ref": branch}, headers=self._headers())
            if resp.status_code == 403:
                raise RateLimitedError(f"GitHub API rate limit hit listing /{path}")
            if resp.status_code == 404:
                return []
            resp.raise_for_status()
            data = resp.json()
            return data if isinstance(data, list) else []

        return await self.policy.retry(fetch, f"listing /{path}")

    async def _doc_roots(
        self, client: httpx.AsyncClient, owner: str, name: str, branch: str
    ) -> list[str]:
        try:
            entries = await self._list_dir(client, owner, name, branch, "")
        except RateLimitedError as e:
            logger.warning(str(e))
            return []
        except Exception as e:
            logger.warning(f"Could not list {owner}/{name}: {e}")
            return []

        doc_dirs = [
            e["path"]
            for e in entries
            if e.get("type") == "dir" and e.get("name", "").lower() in _DOC_DIRS
        ]
        return doc_dirs or [""]

    async def _walk(
        self,
        client: httpx.AsyncClient,
        owner: str,
        name: str,
        branch: str,
        path: str,
        depth: int,
    ) -> AsyncIterator[CrawledPage]:
        try:
            entries = await self._list_dir(client, owner, name, branch, path)
        except RateLimitedError as e:
            logger.warning(f"{e}; skipping branch")
            return
        except Exception as e:
            logger.warning(f"Failed to list /{path}: {e}")
            return

        for entry in entries:
            if self.policy.stopped:
                return
            entry_type = entry.get("type")
            entry_path = entry.get("path", "")
            entry_name = entry.get("name", "")

            if entry_type == "dir":
                if entry_name.lower() in _SKIP_DIRS:
                    logger.debug(f"Skipping directory /{entry_path}")
                    continue
                if depth + 1 > self.policy.max_depth:
                    continue
                async for page in self._walk(
                    client, owner, name, branch, entry_path, depth + 1
                ):
                    yield page
            elif entry_type == "file" and urls.is_markdown_path(entry_name):
                page = await self._fetch_file(client, owner, name, branch, entry_path)
                if page is not None:
                    self.policy.record_page(page)
                    yield page

    async def _fetch_file(
        self,
        client: httpx.AsyncClient,
        owner: str,
        name: str,
        branch: str,
        file_path: str,
    ) -> CrawledPage | None:
        page_url = f"https://github.com/{owner}/{name}/blob/{branch}/{file_path}"
        if not self.policy.mark_seen(page_url):
            return None
        raw_url = f"{_RAW_BASE}/{owner}/{name}/{branch}/{quote(file_path)}"

        async def fetch() -> str:
            await self.policy.wait_turn()
            resp = await client.get(raw_url, headers=self._headers(api=False))
            resp.raise_for_status()
            return resp.text

        try:
            content = await self.policy.retry(fetch, file_path)
        except Exception as e:
            logger.warning(f"Failed to fetch {file_path}: {e}")
            return None

        return CrawledPage(
            url=page_url,
            path=f"/{file_path}",
            raw_content=content,
            title=_title_from_filename(file_path),
        )
