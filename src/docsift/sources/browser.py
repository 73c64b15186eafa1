"""Headless-browser crawl engine built on Crawl4AI.

Each engine instance owns its own browser for the duration of one crawl.
Pages are rendered by Crawl4AI; a ``before_retrieve_html`` hook runs site
detection, page preparation, extraction and link discovery on the live
page before Crawl4AI snapshots it.

Discovered links go through :class:`CrawlQueue` for scope filtering, and
results are yielded as the queue flushes them.
"""

import asyncio
import contextvars
import os
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from crawl4ai import AsyncWebCrawler, BrowserConfig, CacheMode, CrawlerRunConfig
from loguru import logger

from docsift import urls
from docsift.config import settings
from docsift.models import ENGINE_BROWSER, CrawledPage, ExtractedContent
from docsift.sources.base import CrawlPolicy, EngineFatalError
from docsift.sources.queue import CrawlQueue, QueuedRequest
from docsift.sources.site_rules import SiteDetectionRule, default_rules, select_rule

# Per-process browser data directory so concurrent processes do not fight
# over the same Playwright profile lock.
_BROWSER_DATA_DIR = str(Path(tempfile.gettempdir()) / f"docsift-browser-{os.getpid()}")

_HREFS_JS = "els => els.map(e => e.href).filter(Boolean)"


@dataclass
class _Visit:
    """What the page hook learned about the URL currently being rendered."""

    url: str
    rule: SiteDetectionRule | None = None
    extracted: ExtractedContent | None = None
    title: str = ""
    links: list[str] = field(default_factory=list)


_current_visit: contextvars.ContextVar[_Visit | None] = contextvars.ContextVar(
    "docsift_browser_visit", default=None
)


class BrowserEngine:
    """Renders pages in a headless browser and extracts them site-aware."""

    id = ENGINE_BROWSER

    def __init__(
        self,
        policy: CrawlPolicy | None = None,
        rules: list[SiteDetectionRule] | None = None,
        queue: CrawlQueue | None = None,
        path_prefix: str | None = None,
        storage_state: str | dict | None = None,
        concurrency: int | None = None,
    ):
        self.policy = policy or CrawlPolicy.from_settings()
        self.rules = rules or default_rules()
        self.queue = queue or CrawlQueue()
        self.path_prefix = settings.path_prefix if path_prefix is None else path_prefix
        self.storage_state = (
            storage_state if storage_state is not None else settings.browser_storage_state
        )
        self.concurrency = max(1, concurrency or settings.browser_concurrency)

    def abort(self) -> None:
        self.policy.abort()

    def _browser_config(self) -> BrowserConfig:
        kwargs: dict[str, Any] = {
            "headless": settings.browser_headless,
            "verbose": False,
            "user_data_dir": _BROWSER_DATA_DIR,
        }
        if self.storage_state:
            kwargs["storage_state"] = self.storage_state
        return BrowserConfig(**kwargs)

    async def _start(self) -> AsyncWebCrawler:
        crawler = AsyncWebCrawler(config=self._browser_config())
        try:
            await crawler.__aenter__()
        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            raise EngineFatalError(f"Browser failed to start: {e}") from e
        crawler.crawler_strategy.set_hook("before_retrieve_html", self._on_page)
        return crawler

    async def _stop(self, crawler: AsyncWebCrawler) -> None:
        try:
            await crawler.__aexit__(None, None, None)
        except Exception as e:
            logger.debug(f"Error during browser shutdown: {e}")

    # -- page hook -----------------------------------------------------------

    async def _on_page(self, page: Any, context: Any = None, **kwargs: Any) -> Any:
        visit = _current_visit.get()
        if visit is None:
            return page

        rule = await select_rule(page, self.rules)
        failed = await rule.prepare(page)
        if failed:
            logger.debug(f"{visit.url}: preparation steps failed: {', '.join(failed)}")

        visit.rule = rule
        try:
            visit.extracted = await rule.extractor.extract_content(page)
        except Exception as e:
            logger.warning(f"{rule.type} extraction failed on {visit.url}: {e}")
        try:
            visit.title = await page.title()
        except Exception as e:
            logger.debug(f"Could not read title of {visit.url}: {e}")
        visit.links = await self._harvest_links(page, rule)
        return page

    async def _harvest_links(self, page: Any, rule: SiteDetectionRule) -> list[str]:
        selectors = rule.link_selectors or ["a[href]"]
        found: list[str] = []
        for selector in selectors:
            try:
                found.extend(await page.eval_on_selector_all(selector, _HREFS_JS))
            except Exception as e:
                logger.debug(f"Link selector {selector} failed: {e}")
        if not found and rule.link_selectors:
            try:
                found = await page.eval_on_selector_all("a[href]", _HREFS_JS)
            except Exception as e:
                logger.debug(f"Generic link harvest failed: {e}")
        return list(dict.fromkeys(found))

    # -- per-URL work --------------------------------------------------------

    async def _render(
        self, crawler: AsyncWebCrawler, url: str
    ) -> tuple[CrawledPage, list[str]]:
        await self.policy.wait_turn()
        visit = _Visit(url=url)
        token = _current_visit.set(visit)
        try:
            result = await crawler.arun(
                url,
                config=CrawlerRunConfig(
                    verbose=False,
                    cache_mode=CacheMode.BYPASS,
                    page_timeout=settings.browser_page_timeout * 1000,
                ),
            )
        finally:
            _current_visit.reset(token)

        if not result.success:
            raise RuntimeError(result.error_message or f"Failed to render {url}")

        return self._build_page(url, visit, result)

    def _build_page(
        self, url: str, visit: _Visit, result: Any
    ) -> tuple[CrawledPage, list[str]]:
        extracted = visit.extracted
        rule = visit.rule
        links = visit.links

        if extracted is not None and extracted.content:
            content = extracted.content
            title = extracted.metadata.get("name") or visit.title
            extractor_id = rule.type if rule and rule.extractor.produces_markdown else None
        else:
            content = result.html or ""
            title = (result.metadata or {}).get("title") or visit.title
            extractor_id = None

        if not links:
            for bucket in ("internal", "external"):
                for item in (result.links or {}).get(bucket, []):
                    href = item.get("href", "") if isinstance(item, dict) else item
                    resolved = urls.resolve(href, url) if href else None
                    if resolved:
                        links.append(resolved)

        page = CrawledPage(
            url=url,
            path=urls.path(url),
            raw_content=content,
            title=title or "Untitled",
            extractor_id=extractor_id,
        )
        return page, links

    async def _process(
        self, crawler: AsyncWebCrawler, request: QueuedRequest
    ) -> tuple[CrawledPage | None, list[str]]:
        try:
            return await self.policy.retry(
                lambda: self._render(crawler, request.url), request.url
            )
        except Exception as e:
            logger.warning(f"Giving up on {request.url}: {e}")
            return None, []

    # -- crawl loop ----------------------------------------------------------

    async def crawl(self, url: str) -> AsyncIterator[CrawledPage]:
        self.queue.initialize(url, self.path_prefix)
        crawler = await self._start()
        logger.info(f"Browser crawl of {url} (concurrency={self.concurrency})")

        try:
            while not self.policy.stopped:
                batch = self.queue.next_batch(self.concurrency)
                if not batch:
                    break

                results = await asyncio.gather(*(self._process(crawler, r) for r in batch))

                for request, (page, links) in zip(batch, results):
                    self.queue.mark_handled(request)
                    if page is None or self.policy.stopped:
                        continue
                    if request.depth < self.policy.max_depth:
                        self.queue.enqueue_links(links, request.depth + 1)
                    if not self.policy.mark_seen(page.url):
                        continue
                    self.policy.record_page(page)
                    for ready in self.queue.add_result(page):
                        yield ready

            for ready in self.queue.flush():
                yield ready

            if self.queue.filtered_by_hostname or self.queue.filtered_by_path:
                logger.debug(
                    f"Filtered {self.queue.filtered_by_hostname} off-host and "
                    f"{self.queue.filtered_by_path} out-of-prefix link(s)"
                )
        finally:
            self.queue.cleanup()
            await self._stop(crawler)

        logger.info(f"Browser crawl of {url} finished: {self.policy.pages} pages")
