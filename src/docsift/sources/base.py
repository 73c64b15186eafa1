"""Shared crawl policy: dedup, caps, rate limiting, retry, abort, progress.

Engines receive a :class:`CrawlPolicy` instead of inheriting behaviour;
each engine instance gets its own policy so no state leaks between runs.
"""

import asyncio
import time
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol, TypeVar

from loguru import logger

from docsift import urls
from docsift.config import settings
from docsift.models import CrawledPage

T = TypeVar("T")

ProgressCallback = Callable[[float, str], None]


class CrawlError(Exception):
    """Base class for crawl failures."""


class EngineFatalError(CrawlError):
    """The engine cannot run at all for this target."""


class InsufficientYieldError(CrawlError):
    """A tier finished with fewer pages than the success threshold."""

    def __init__(self, engine: str, pages: int, minimum: int, cause: Exception | None = None):
        self.engine = engine
        self.pages = pages
        self.minimum = minimum
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"{engine} engine yielded {pages} page(s), need at least {minimum}{detail}"
        )


class RateLimitedError(CrawlError):
    """The remote side refused the request because of rate limiting."""


class CrawlEngine(Protocol):
    """Capability every crawl engine provides."""

    id: str

    def crawl(self, url: str) -> AsyncIterator[CrawledPage]: ...

    def abort(self) -> None: ...


class RateLimiter:
    """Sliding-window request gate with a minimum spacing between requests."""

    def __init__(self, max_requests: int, window: float, min_delay: float):
        self.max_requests = max_requests
        self.window = window
        self.min_delay = min_delay
        self._stamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            while self._stamps and now - self._stamps[0] >= self.window:
                self._stamps.popleft()

            wait = 0.0
            if self._stamps and self.min_delay > 0:
                wait = max(wait, self.min_delay - (now - self._stamps[-1]))
            if self.max_requests > 0 and len(self._stamps) >= self.max_requests:
                wait = max(wait, self.window - (now - self._stamps[0]))

            if wait > 0:
                await asyncio.sleep(wait)
            self._stamps.append(time.monotonic())


class CrawlPolicy:
    """Per-engine crawl state and the helpers that enforce it."""

    def __init__(
        self,
        *,
        max_pages: int,
        max_depth: int,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        rate_limiter: RateLimiter | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay = retry_base_delay
        self.rate_limiter = rate_limiter
        self.on_progress = on_progress
        self.seen: set[str] = set()
        self.pages = 0
        self.aborted = False

    @classmethod
    def from_settings(cls, on_progress: ProgressCallback | None = None) -> "CrawlPolicy":
        return cls(
            max_pages=settings.max_pages,
            max_depth=settings.max_depth,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
            rate_limiter=RateLimiter(
                settings.rate_limit_max_requests,
                settings.rate_limit_window,
                settings.rate_limit_min_delay,
            ),
            on_progress=on_progress,
        )

    # -- dedup ---------------------------------------------------------------

    def should_crawl(self, url: str) -> bool:
        return urls.should_crawl(urls.normalize(url), self.seen)

    def is_seen(self, url: str) -> bool:
        return urls.normalize(url) in self.seen

    def mark_seen(self, url: str) -> bool:
        """Record *url*; return False when it had been seen already."""
        key = urls.normalize(url)
        if key in self.seen:
            return False
        self.seen.add(key)
        return True

    # -- caps / abort --------------------------------------------------------

    @property
    def limit_reached(self) -> bool:
        return self.pages >= self.max_pages

    @property
    def stopped(self) -> bool:
        return self.aborted or self.limit_reached

    def abort(self) -> None:
        self.aborted = True

    def record_page(self, page: CrawledPage) -> None:
        self.pages += 1
        self.report(min(1.0, self.pages / max(1, self.max_pages)), f"Crawled {page.url}")

    def report(self, progress: float, description: str) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(progress, description)
        except Exception as e:
            logger.debug(f"Progress callback failed: {e}")

    # -- network helpers -----------------------------------------------------

    async def wait_turn(self) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

    async def retry(self, operation: Callable[[], Awaitable[T]], description: str = "") -> T:
        """Run *operation* with exponential backoff.

        Tries ``retry_attempts`` times, sleeping ``retry_base_delay * 2**n``
        between tries.  :class:`RateLimitedError` is never retried.  The
        last error is re-raised.
        """
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await operation()
            except RateLimitedError:
                raise
            except Exception as e:
                if attempt == self.retry_attempts or self.aborted:
                    raise
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.debug(
                    f"Attempt {attempt}/{self.retry_attempts} failed for "
                    f"{description or 'request'}: {e}. Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
