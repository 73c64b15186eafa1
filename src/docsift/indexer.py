"""Indexing job runner.

Ties the pieces together for one documentation site: single-flight
control per URL, the tiered crawl, segmentation of every page, status
reporting, and hand-off of each Article to a caller-supplied callback
(typically the vector store writer).
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from contextlib import aclosing

from loguru import logger

from docsift import urls
from docsift.indexing import IndexingQueueManager
from docsift.models import Article
from docsift.orchestrator import DocsCrawler
from docsift.processing import process_page
from docsift.status import IndexingStatus, IndexingStatusTracker

ArticleCallback = Callable[[Article], Awaitable[None] | None]


class DocsIndexer:
    """Runs indexing jobs, at most one per URL at a time."""

    def __init__(
        self,
        controller: IndexingQueueManager | None = None,
        tracker: IndexingStatusTracker | None = None,
        crawler_factory: Callable[..., DocsCrawler] = DocsCrawler,
    ):
        self.controller = controller or IndexingQueueManager()
        self.tracker = tracker or IndexingStatusTracker()
        self.crawler_factory = crawler_factory

    async def index(
        self,
        url: str,
        on_article: ArticleCallback,
        title: str | None = None,
        job_id: str | None = None,
    ) -> IndexingStatus:
        """Index *url*, superseding any job already running for it.

        Returns the final status of the job: ``complete``, ``aborted``
        (superseded or shut down) or raises after marking it ``failed``.
        """
        token = await self.controller.start(url)
        job_id = job_id or urls.website_id(url)
        job = asyncio.ensure_future(self._run(url, token, on_article, title or url, job_id))
        self.controller.register(url, token, job)
        return await job

    async def _run(
        self,
        url: str,
        token: asyncio.Event,
        on_article: ArticleCallback,
        title: str,
        job_id: str,
    ) -> IndexingStatus:
        self.tracker.start_indexing(job_id, url, title)
        crawler = self.crawler_factory(
            on_progress=lambda progress, description: self.tracker.update_progress(
                job_id, progress, description
            )
        )

        async def watch() -> None:
            await token.wait()
            crawler.abort()

        watcher = asyncio.ensure_future(watch())
        pages = articles = 0
        try:
            async with aclosing(crawler.crawl(url)) as stream:
                async for page in stream:
                    if token.is_set():
                        break
                    pages += 1
                    article = process_page(page)
                    if article is not None:
                        result = on_article(article)
                        if inspect.isawaitable(result):
                            await result
                        articles += 1
                    self.tracker.update_stats(job_id, pages_found=pages, pages_indexed=articles)

            if token.is_set():
                logger.info(f"Indexing of {url} aborted after {pages} pages")
                self.tracker.abort_indexing(job_id)
            else:
                logger.info(
                    f"Indexed {url}: {articles} articles from {pages} pages "
                    f"via {crawler.result}"
                )
                self.tracker.complete_indexing(job_id)
        except Exception as e:
            logger.error(f"Indexing of {url} failed: {e}")
            self.tracker.fail_indexing(job_id, str(e))
            raise
        finally:
            watcher.cancel()
            self.controller.complete(url, token)

        return self.tracker.get_status(job_id)

    async def shutdown(self) -> int:
        """Cancel every running job and wait for them to wind down."""
        return await self.controller.cancel_all()
