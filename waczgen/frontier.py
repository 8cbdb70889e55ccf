"""FIFO crawl frontier with visited/queued bookkeeping."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum

from .types import FrontierItem, ResourceType


class EnqueueStatus(str, Enum):
    """Result status for frontier enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_VISITED = "skipped_visited"
    SKIPPED_QUEUED = "skipped_queued"
    SKIPPED_INVALID_URL = "skipped_invalid_url"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    item: FrontierItem | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


class Frontier:
    """Breadth-first frontier owned by a single crawl.

    - `push` rejects URLs that were already visited or are waiting in the queue.
    - `pop` returns items in insertion order; the caller decides whether to
      fetch (depth/exclusion policy) and calls `mark_visited` when it does.
    """

    def __init__(self) -> None:
        self._queue: deque[FrontierItem] = deque()
        self._queued_urls: set[str] = set()
        self._visited_urls: set[str] = set()

        self._enqueued_count = 0
        self._dequeued_count = 0
        self._skipped_visited_count = 0
        self._skipped_queued_count = 0
        self._skipped_invalid_count = 0

    def seed(self, url: str) -> EnqueueResult:
        """Seed frontier with a depth=0 URL."""

        return self.push(url, depth=0)

    def push(
        self,
        url: str,
        *,
        depth: int,
        resource_type: ResourceType = ResourceType.LINK,
        referrer: str | None = None,
    ) -> EnqueueResult:
        """Attempt to enqueue one normalized URL."""

        if not url:
            self._skipped_invalid_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_URL)
        if url in self._visited_urls:
            self._skipped_visited_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_VISITED)
        if url in self._queued_urls:
            self._skipped_queued_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_QUEUED)

        item = FrontierItem(
            url=url,
            depth=depth,
            resource_type=resource_type,
            referrer=referrer,
        )
        self._queue.append(item)
        self._queued_urls.add(url)
        self._enqueued_count += 1
        return EnqueueResult(EnqueueStatus.ENQUEUED, item=item)

    def pop(self) -> FrontierItem | None:
        """Pop the oldest queued item, or None when the queue is empty."""

        if not self._queue:
            return None
        item = self._queue.popleft()
        self._queued_urls.discard(item.url)
        self._dequeued_count += 1
        return item

    def mark_visited(self, url: str) -> None:
        self._visited_urls.add(url)

    def is_visited(self, url: str) -> bool:
        return url in self._visited_urls

    def empty(self) -> bool:
        return not self._queue

    def __len__(self) -> int:
        return len(self._queue)

    def snapshot(self) -> dict[str, int]:
        """Return frontier counters for logs/stats reporting."""

        return {
            "queue_size": len(self._queue),
            "visited_urls": len(self._visited_urls),
            "enqueued": self._enqueued_count,
            "dequeued": self._dequeued_count,
            "skipped_visited": self._skipped_visited_count,
            "skipped_queued": self._skipped_queued_count,
            "skipped_invalid": self._skipped_invalid_count,
        }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
]
