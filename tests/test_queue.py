"""Tests for src/docsift/sources/queue.py: request queue and link filter."""

from docsift.models import CrawledPage
from docsift.sources.queue import (
    FLUSH_CHUNK_SIZE,
    RESULT_BATCH_SIZE,
    CrawlQueue,
    MemoryStorage,
)


def _page(i):
    return CrawledPage(url=f"https://ex.com/docs/{i}", path=f"/docs/{i}", raw_content="x", title=str(i))


class TestInitialize:
    def test_seeds_start_url_without_fragment(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs/intro?v=1#top")

        batch = queue.next_batch(10)
        assert [r.url for r in batch] == ["https://ex.com/docs/intro?v=1"]
        assert batch[0].unique_key == "/docs/intro?v=1"
        assert batch[0].depth == 0

    def test_recreates_queue_and_dataset(self):
        storage = MemoryStorage()
        queue = CrawlQueue(storage)
        queue.initialize("https://ex.com/guide")
        queue.enqueue_links(["https://ex.com/guide/a"], 1)
        queue.add_result(_page(1))
        queue.flush()

        queue.initialize("https://ex.com/guide")

        assert list(storage.queues[queue.queue_id]) == ["/guide"]
        assert storage.datasets[queue.queue_id] == []
        assert queue.queue_id == "ex-guide"


class TestFilter:
    def test_fragment_dropped_uncounted(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs")
        assert queue.filter_link("https://ex.com/docs/a#b") is None
        assert queue.filtered_by_hostname == 0
        assert queue.filtered_by_path == 0

    def test_hostname_filter_counted(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs")
        assert queue.filter_link("https://other.com/docs/a") is None
        assert queue.filter_link("https://notex.com/docs/a") is None
        assert queue.filter_link("https://api.ex.com/docs/a") == "https://api.ex.com/docs/a"
        assert queue.filtered_by_hostname == 2

    def test_path_prefix_filter_counted(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs", path_prefix="/docs")
        assert queue.filter_link("https://ex.com/docs2/a") is None
        assert queue.filter_link("https://ex.com/blog") is None
        assert queue.filter_link("https://ex.com/docs/a") == "https://ex.com/docs/a"
        assert queue.filtered_by_path == 2

    def test_enqueue_dedups_by_path_and_query(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs")
        added = queue.enqueue_links(
            [
                "https://ex.com/docs/a",
                "https://ex.com/docs/a",
                "https://ex.com/docs/a?tab=2",
                "https://ex.com/docs",
            ],
            depth=1,
        )
        assert added == 2
        assert queue.pending_count == 3


class TestBatches:
    def test_next_batch_and_mark_handled(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs")
        queue.enqueue_links([f"https://ex.com/docs/{i}" for i in range(4)], depth=1)

        first = queue.next_batch(3)
        second = queue.next_batch(3)
        assert len(first) == 3
        assert len(second) == 2
        assert not {r.unique_key for r in first} & {r.unique_key for r in second}

        for request in first + second:
            queue.mark_handled(request)
        assert queue.pending_count == 0
        assert queue.next_batch(3) == []


class TestResults:
    def test_buffer_flushes_when_full(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs")

        for i in range(RESULT_BATCH_SIZE - 1):
            assert queue.add_result(_page(i)) == []
        assert not queue.dataset

        flushed = queue.add_result(_page(RESULT_BATCH_SIZE))
        assert len(flushed) == RESULT_BATCH_SIZE
        assert len(queue.dataset) == RESULT_BATCH_SIZE
        assert not queue.has_enough_results()

    def test_flush_writes_remaining(self):
        queue = CrawlQueue()
        queue.initialize("https://ex.com/docs")
        for i in range(FLUSH_CHUNK_SIZE + 2):
            queue.add_result(_page(i))

        flushed = queue.flush()
        assert [p.title for p in flushed] == [str(i) for i in range(FLUSH_CHUNK_SIZE + 2)]
        assert queue.dataset[0] == {"url": "https://ex.com/docs/0", "path": "/docs/0", "title": "0"}
        assert queue.flush() == []

    def test_cleanup_drops_storage(self):
        storage = MemoryStorage()
        queue = CrawlQueue(storage)
        queue.initialize("https://ex.com/docs")
        queue.cleanup()
        assert queue.queue_id not in storage.queues
        assert queue.queue_id not in storage.datasets
