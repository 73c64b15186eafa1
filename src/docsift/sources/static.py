"""Static HTTP crawl engine.

Breadth-first fetch of server-rendered documentation pages.  Pages are
fetched in batches of concurrent GETs; every request passes the shared
rate-limit gate and is retried with exponential backoff before the URL
is given up on.
"""

import asyncio
from collections.abc import AsyncIterator

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from docsift import urls
from docsift.config import settings
from docsift.models import ENGINE_STATIC, CrawledPage
from docsift.sources.base import CrawlPolicy

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class StaticEngine:
    """Fetch-and-parse crawler driven by a URL -> depth frontier."""

    id = ENGINE_STATIC

    def __init__(
        self,
        policy: CrawlPolicy | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        self.policy = policy or CrawlPolicy.from_settings()
        self.batch_size = batch_size or settings.fetch_batch_size
        self.batch_delay = settings.fetch_batch_delay if batch_delay is None else batch_delay

    def abort(self) -> None:
        self.policy.abort()

    def extract_title(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        if soup.title and soup.title.get_text(strip=True):
            return soup.title.get_text(strip=True)
        return "Untitled"

    def extract_links(self, html: str, base_url: str) -> list[str]:
        soup = BeautifulSoup(html, "html.parser")
        links: list[str] = []
        for anchor in soup.find_all("a", href=True):
            resolved = urls.resolve(anchor["href"], base_url)
            if resolved:
                links.append(resolved)
        return links

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str | None:
        async def get() -> httpx.Response:
            await self.policy.wait_turn()
            resp = await client.get(url)
            resp.raise_for_status()
            return resp

        try:
            resp = await self.policy.retry(get, url)
        except Exception as e:
            logger.warning(f"Giving up on {url}: {e}")
            return None

        content_type = resp.headers.get("content-type", "")
        if content_type and "html" not in content_type:
            logger.debug(f"Skipping non-HTML response ({content_type}) from {url}")
            return None
        return resp.text

    def _take_batch(self, frontier: dict[str, int]) -> list[tuple[str, int]]:
        batch: list[tuple[str, int]] = []
        for url in list(frontier):
            if len(batch) >= self.batch_size:
                break
            depth = frontier.pop(url)
            if self.policy.mark_seen(url):
                batch.append((url, depth))
        return batch

    async def crawl(self, url: str) -> AsyncIterator[CrawledPage]:
        start = urls.normalize(url)
        allowed_host = urls.hostname(start)
        frontier: dict[str, int] = {start: 0}

        logger.info(f"{self.id} crawl of {start} (batch={self.batch_size})")

        async with httpx.AsyncClient(
            timeout=settings.fetch_timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            while frontier and not self.policy.stopped:
                batch = self._take_batch(frontier)
                if not batch:
                    continue

                results = await asyncio.gather(*(self._fetch(client, u) for u, _ in batch))

                for (page_url, depth), html in zip(batch, results):
                    if self.policy.stopped:
                        break
                    if html is None:
                        continue

                    page = CrawledPage(
                        url=page_url,
                        path=urls.path(page_url),
                        raw_content=html,
                        title=self.extract_title(html),
                    )
                    self.policy.record_page(page)
                    yield page

                    if depth >= self.policy.max_depth:
                        continue
                    for link in self.extract_links(html, page_url):
                        candidate = urls.normalize(link)
                        if candidate in frontier:
                            continue
                        if not urls.hostname_allowed(urls.hostname(candidate), allowed_host):
                            continue
                        if self.policy.should_crawl(candidate):
                            frontier[candidate] = depth + 1

                if frontier and not self.policy.stopped and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)

        logger.info(f"{self.id} crawl of {start} finished: {self.policy.pages} pages")
