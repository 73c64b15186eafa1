"""Per-URL single-flight control for indexing jobs.

Starting a job for a URL that is already being indexed cancels the
running job (through its cancellation token) and waits a bounded time
for it to wind down before handing out a fresh token.
"""

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass

from loguru import logger

from docsift import urls
from docsift.config import settings


@dataclass
class ActiveOperation:
    url: str
    token: asyncio.Event
    started_at: float
    completion: asyncio.Future | None = None


class IndexingQueueManager:
    """Tracks at most one active indexing operation per normalized URL."""

    def __init__(self, cancel_timeout: float | None = None):
        self.cancel_timeout = (
            settings.cancel_timeout if cancel_timeout is None else cancel_timeout
        )
        self._active: dict[str, ActiveOperation] = {}

    async def start(self, url: str) -> asyncio.Event:
        """Cancel any operation on *url*, then return a fresh token.

        The previous operation gets ``cancel_timeout`` seconds to finish;
        a timeout or an error from it is logged and otherwise ignored.
        """
        key = urls.normalize(url)
        while (existing := self._active.get(key)) is not None:
            logger.info(f"Cancelling in-flight indexing of {existing.url}")
            existing.token.set()
            await self._wait(existing)
            if self._active.get(key) is existing:
                del self._active[key]

        token = asyncio.Event()
        self._active[key] = ActiveOperation(url=url, token=token, started_at=time.time())
        return token

    async def _wait(self, entry: ActiveOperation) -> None:
        """Give *entry*'s job ``cancel_timeout`` seconds to finish.

        Timeouts, errors and cancellation of the job itself are logged and
        swallowed; cancellation of the waiting task still propagates.
        """
        completion = entry.completion
        if completion is None or completion.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(completion), timeout=self.cancel_timeout)
        except asyncio.TimeoutError:
            logger.debug(
                f"Previous indexing of {entry.url} did not stop "
                f"within {self.cancel_timeout}s"
            )
        except asyncio.CancelledError:
            if not completion.cancelled():
                raise
            logger.debug(f"Previous indexing of {entry.url} was cancelled")
        except Exception as e:
            logger.debug(f"Previous indexing of {entry.url} ended with: {e}")

    def register(
        self, url: str, token: asyncio.Event, completion: Awaitable
    ) -> asyncio.Future | None:
        """Attach the job's completion to the operation owning *token*.

        Returns the future being tracked, or None when *token* no longer
        owns *url* (the job was superseded before it registered).
        """
        entry = self._active.get(urls.normalize(url))
        if entry is None or entry.token is not token:
            logger.debug(f"Ignoring registration for superseded job on {url}")
            return None
        entry.completion = asyncio.ensure_future(completion)
        return entry.completion

    def complete(self, url: str, token: asyncio.Event | None = None) -> None:
        """Forget the operation on *url*.  Idempotent.

        With *token*, only the operation owning that token is removed, so a
        superseded job finishing late cannot unregister its successor.
        """
        key = urls.normalize(url)
        entry = self._active.get(key)
        if entry is None:
            return
        if token is not None and entry.token is not token:
            return
        del self._active[key]

    async def cancel_all(self) -> int:
        """Signal every active operation, wait for their jobs, then forget them.

        Each job gets ``cancel_timeout`` seconds; the waits run concurrently.
        Returns the number of operations that were signalled.
        """
        entries = list(self._active.items())
        for _, entry in entries:
            entry.token.set()
        await asyncio.gather(*(self._wait(entry) for _, entry in entries))
        for key, entry in entries:
            if self._active.get(key) is entry:
                del self._active[key]
        if entries:
            logger.info(f"Cancelled {len(entries)} indexing operation(s)")
        return len(entries)

    def is_active(self, url: str) -> bool:
        return urls.normalize(url) in self._active

    def list_active(self) -> list[dict]:
        return [
            {"url": op.url, "started_at": op.started_at} for op in self._active.values()
        ]
