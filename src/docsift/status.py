"""In-memory status tracking for indexing jobs."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

PENDING = "pending"
INDEXING = "indexing"
COMPLETE = "complete"
FAILED = "failed"
ABORTED = "aborted"


@dataclass
class IndexingStatus:
    id: str
    url: str
    title: str
    status: str = PENDING
    progress: float = 0.0
    description: str = ""
    pages_found: int = 0
    pages_indexed: int = 0
    error: str | None = None
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None


StatusListener = Callable[[IndexingStatus], None]


class IndexingStatusTracker:
    """Keeps one status record per job id and notifies listeners on change.

    Updates for unknown ids are ignored.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, IndexingStatus] = {}
        self._listeners: list[StatusListener] = []

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe *listener*; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, status: IndexingStatus) -> None:
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.debug(f"Status listener failed: {e}")

    def start_indexing(self, job_id: str, url: str, title: str) -> IndexingStatus:
        status = IndexingStatus(
            id=job_id, url=url, title=title, status=INDEXING, description="Starting"
        )
        self._statuses[job_id] = status
        self._notify(status)
        return status

    def update_progress(self, job_id: str, progress: float, description: str) -> None:
        status = self._statuses.get(job_id)
        if status is None or status.status != INDEXING:
            return
        status.progress = max(0.0, min(1.0, progress))
        status.description = description
        self._notify(status)

    def update_stats(
        self, job_id: str, pages_found: int | None = None, pages_indexed: int | None = None
    ) -> None:
        status = self._statuses.get(job_id)
        if status is None:
            return
        if pages_found is not None:
            status.pages_found = pages_found
        if pages_indexed is not None:
            status.pages_indexed = pages_indexed
        self._notify(status)

    def _finish(self, job_id: str, state: str, description: str, error: str | None = None) -> None:
        status = self._statuses.get(job_id)
        if status is None:
            return
        status.status = state
        status.description = description
        status.error = error
        status.finished_at = time.time()
        if state == COMPLETE:
            status.progress = 1.0
        self._notify(status)

    def complete_indexing(self, job_id: str) -> None:
        self._finish(job_id, COMPLETE, "Indexing complete")

    def fail_indexing(self, job_id: str, error: str) -> None:
        self._finish(job_id, FAILED, "Indexing failed", error)

    def abort_indexing(self, job_id: str) -> None:
        self._finish(job_id, ABORTED, "Indexing aborted")

    def get_status(self, job_id: str) -> IndexingStatus | None:
        return self._statuses.get(job_id)

    def get_all_statuses(self) -> list[IndexingStatus]:
        return list(self._statuses.values())
