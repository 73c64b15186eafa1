"""Tiered fetch orchestrator.

Tries the crawl engines in order until one yields enough pages:

1. GitHub    - only for github.com URLs; its outcome is final.
2. Browser   - only when enabled; raising or yielding fewer than
               ``min_pages`` counts as insufficient.
3. Static    - engine errors are logged and count as insufficient.
4. Fallback  - insufficient yield fails the crawl.

Pages are streamed as soon as an engine produces them and are never
retracted when a later tier takes over.  A URL is streamed at most once
per run.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from loguru import logger

from docsift import urls
from docsift.config import settings
from docsift.models import (
    ENGINE_BROWSER,
    ENGINE_FALLBACK,
    ENGINE_GITHUB,
    ENGINE_STATIC,
    CrawledPage,
)
from docsift.sources.base import (
    CrawlEngine,
    CrawlPolicy,
    EngineFatalError,
    InsufficientYieldError,
    ProgressCallback,
)
from docsift.sources.browser import BrowserEngine
from docsift.sources.fallback import FallbackEngine
from docsift.sources.github import GitHubEngine
from docsift.sources.static import StaticEngine

EngineFactory = Callable[[CrawlPolicy], CrawlEngine]

# Reported when a run is aborted before any tier finished.
DEFAULT_ENGINE = ENGINE_STATIC

DEFAULT_ENGINES: dict[str, EngineFactory] = {
    ENGINE_GITHUB: lambda policy: GitHubEngine(policy),
    ENGINE_BROWSER: lambda policy: BrowserEngine(policy),
    ENGINE_STATIC: lambda policy: StaticEngine(policy),
    ENGINE_FALLBACK: lambda policy: FallbackEngine(policy),
}


class DocsCrawler:
    """Runs the engine tiers for one target URL.

    ``crawl`` is an async generator of pages; once it is exhausted,
    ``result`` holds the id of the engine whose output was accepted.
    """

    def __init__(
        self,
        engines: dict[str, EngineFactory] | None = None,
        on_progress: ProgressCallback | None = None,
        min_pages: int | None = None,
        browser_enabled: bool | None = None,
        browser_authoritative: bool | None = None,
    ):
        self.engines = {**DEFAULT_ENGINES, **(engines or {})}
        self.on_progress = on_progress
        self.min_pages = settings.min_pages if min_pages is None else min_pages
        self.browser_enabled = (
            settings.browser_enabled if browser_enabled is None else browser_enabled
        )
        self.browser_authoritative = (
            settings.browser_authoritative
            if browser_authoritative is None
            else browser_authoritative
        )
        self.result: str | None = None
        self._aborted = False
        self._active: CrawlEngine | None = None
        self._yielded: set[str] = set()
        self._tier_count = 0

    def abort(self) -> None:
        """Stop the run; the current engine finishes its unit of work first."""
        self._aborted = True
        if self._active is not None:
            self._active.abort()

    @property
    def aborted(self) -> bool:
        return self._aborted

    def tiers_for(self, url: str) -> list[str]:
        if urls.is_github_url(url):
            return [ENGINE_GITHUB]
        tiers = [ENGINE_STATIC, ENGINE_FALLBACK]
        if self.browser_enabled:
            tiers.insert(0, ENGINE_BROWSER)
        return tiers

    def _make(self, engine_id: str) -> CrawlEngine:
        policy = CrawlPolicy.from_settings(self.on_progress)
        return self.engines[engine_id](policy)

    async def _stream(self, engine: CrawlEngine, url: str) -> AsyncIterator[CrawledPage]:
        self._active = engine
        try:
            async with aclosing(engine.crawl(url)) as pages:
                async for page in pages:
                    if self._aborted:
                        break
                    yield page
        finally:
            self._active = None

    async def crawl(self, url: str) -> AsyncIterator[CrawledPage]:
        self.result = None
        self._yielded = set()
        tiers = self.tiers_for(url)

        if tiers == [ENGINE_GITHUB]:
            logger.info(f"Crawling {url} with the github engine")
            async for page in self._emit(self._make(ENGINE_GITHUB), url):
                yield page
            self.result = DEFAULT_ENGINE if self._aborted else ENGINE_GITHUB
            return

        for engine_id in tiers:
            if self._aborted:
                break

            logger.info(f"Crawling {url} with the {engine_id} engine")
            self._tier_count = 0
            error: Exception | None = None
            try:
                async for page in self._emit(self._make(engine_id), url):
                    yield page
            except EngineFatalError as e:
                logger.error(f"{engine_id} engine cannot run on {url}: {e}")
                raise
            except Exception as e:
                logger.warning(f"{engine_id} engine failed on {url}: {e}")
                error = e

            if self._aborted:
                break
            if error is None and self._tier_count >= self.min_pages:
                self.result = engine_id
                logger.info(f"{engine_id} engine succeeded with {self._tier_count} pages")
                return

            shortfall = InsufficientYieldError(
                engine_id, self._tier_count, self.min_pages, error
            )
            if engine_id == ENGINE_FALLBACK or (
                engine_id == ENGINE_BROWSER and self.browser_authoritative
            ):
                logger.error(str(shortfall))
                raise shortfall
            logger.info(f"{shortfall}; trying next tier")

        logger.info(f"Crawl of {url} aborted")
        self.result = DEFAULT_ENGINE

    async def _emit(self, engine: CrawlEngine, url: str) -> AsyncIterator[CrawledPage]:
        """Stream *engine*'s pages, counting all of them but skipping repeats."""
        async with aclosing(self._stream(engine, url)) as pages:
            async for page in pages:
                self._tier_count += 1
                key = urls.normalize(page.url)
                if key in self._yielded:
                    continue
                self._yielded.add(key)
                yield page
