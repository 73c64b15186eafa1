"""Persistent-style request queue and result dataset for browser crawls.

Each job gets one named request queue and one result dataset, both keyed
by the site identifier and held in an injectable storage backend.
Discovered links are filtered for scope before they are enqueued;
results are buffered and flushed to the dataset in small sub-batches.
"""

from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

from loguru import logger

from docsift import urls
from docsift.models import CrawledPage

RESULT_BATCH_SIZE = 20
FLUSH_CHUNK_SIZE = 5


@dataclass
class QueuedRequest:
    url: str
    unique_key: str
    depth: int = 0
    handled: bool = False
    in_progress: bool = False


@dataclass
class MemoryStorage:
    """In-memory stand-in for on-disk request queues and datasets."""

    queues: dict[str, dict[str, QueuedRequest]] = field(default_factory=dict)
    datasets: dict[str, list[dict]] = field(default_factory=dict)

    def drop(self, name: str) -> None:
        self.queues.pop(name, None)
        self.datasets.pop(name, None)

    def open_queue(self, name: str) -> dict[str, QueuedRequest]:
        return self.queues.setdefault(name, {})

    def open_dataset(self, name: str) -> list[dict]:
        return self.datasets.setdefault(name, [])


def _strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


class CrawlQueue:
    """Scope-filtering request queue plus buffered result dataset."""

    def __init__(self, storage: MemoryStorage | None = None):
        self.storage = storage or MemoryStorage()
        self.queue_id = ""
        self.allowed_host = ""
        self.path_prefix = ""
        self.filtered_by_hostname = 0
        self.filtered_by_path = 0
        self._buffer: list[CrawledPage] = []

    def initialize(self, url: str, path_prefix: str = "") -> None:
        """Drop and recreate this site's queue and dataset, seeded with *url*."""
        self.queue_id = urls.website_id(url)
        self.allowed_host = urls.hostname(url)
        self.path_prefix = path_prefix
        self.filtered_by_hostname = 0
        self.filtered_by_path = 0
        self._buffer = []

        self.storage.drop(self.queue_id)
        self.storage.open_queue(self.queue_id)
        self.storage.open_dataset(self.queue_id)

        seed = _strip_fragment(url)
        self._add(seed, 0)
        logger.debug(f"Initialized queue {self.queue_id} with {seed}")

    @property
    def _queue(self) -> dict[str, QueuedRequest]:
        return self.storage.open_queue(self.queue_id)

    @property
    def dataset(self) -> list[dict]:
        return self.storage.open_dataset(self.queue_id)

    def _add(self, url: str, depth: int) -> bool:
        key = urls.path(url)
        queue = self._queue
        if key in queue:
            return False
        queue[key] = QueuedRequest(url=url, unique_key=key, depth=depth)
        return True

    def filter_link(self, url: str) -> str | None:
        """Return the enqueueable form of *url*, or None when out of scope."""
        try:
            parts = urlsplit(url)
        except ValueError:
            return None
        if parts.fragment:
            return None
        if not urls.hostname_allowed(parts.hostname or "", self.allowed_host):
            self.filtered_by_hostname += 1
            return None
        if self.path_prefix and not urls.path_allowed(parts.path or "/", self.path_prefix):
            self.filtered_by_path += 1
            return None
        return _strip_fragment(url)

    def enqueue_links(self, links: list[str], depth: int) -> int:
        added = 0
        for link in links:
            accepted = self.filter_link(link)
            if accepted and self._add(accepted, depth):
                added += 1
        if added:
            logger.debug(f"Enqueued {added} link(s) at depth {depth}")
        return added

    def next_batch(self, size: int) -> list[QueuedRequest]:
        batch = []
        for request in self._queue.values():
            if len(batch) >= size:
                break
            if not request.handled and not request.in_progress:
                request.in_progress = True
                batch.append(request)
        return batch

    def mark_handled(self, request: QueuedRequest) -> None:
        request.handled = True
        request.in_progress = False

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self._queue.values() if not r.handled)

    def has_enough_results(self) -> bool:
        return len(self._buffer) >= RESULT_BATCH_SIZE

    def add_result(self, page: CrawledPage) -> list[CrawledPage]:
        """Buffer *page*; flush and return the buffer once it is full."""
        self._buffer.append(page)
        if self.has_enough_results():
            return self.flush()
        return []

    def flush(self) -> list[CrawledPage]:
        """Write buffered results to the dataset in chunks; return them."""
        flushed, self._buffer = self._buffer, []
        dataset = self.dataset
        for i in range(0, len(flushed), FLUSH_CHUNK_SIZE):
            chunk = flushed[i : i + FLUSH_CHUNK_SIZE]
            dataset.extend(
                {"url": p.url, "path": p.path, "title": p.title} for p in chunk
            )
        return flushed

    def cleanup(self) -> None:
        if self.queue_id:
            self.storage.drop(self.queue_id)
        self._buffer = []
