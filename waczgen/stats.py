"""Thread-safe crawl statistics aggregation utilities."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
import threading
from typing import Any, Mapping

from .frontier import EnqueueResult
from .types import CrawledPage, CrawlStats, PageStatus


class StatsCollector:
    """Collect and summarize crawler runtime statistics.

    One collector is created per crawl. The lock keeps it safe to read from a
    status endpoint while the crawl loop is writing.
    """

    def __init__(self, base: CrawlStats | None = None) -> None:
        self._lock = threading.Lock()
        self._core = base or CrawlStats()

        self._frontier_snapshot: dict[str, int] = {}
        self._status_code_counts: dict[str, int] = defaultdict(int)
        self._error_type_counts: dict[str, int] = defaultdict(int)
        self._resource_type_counts: dict[str, int] = defaultdict(int)
        self._response_ms_total = 0
        self._response_samples = 0
        self._custom_counters: dict[str, int] = defaultdict(int)

    def record_enqueue(self, result: EnqueueResult) -> None:
        """Record one frontier enqueue outcome."""

        with self._lock:
            if result.accepted:
                self._core.frontier_enqueued += 1
            else:
                self._core.frontier_skipped_seen += 1

    def record_skip(self, reason: str) -> None:
        """Record a frontier item that was popped but not fetched."""

        with self._lock:
            if reason == "visited":
                self._core.skipped_visited += 1
            elif reason == "depth":
                self._core.skipped_depth += 1
            elif reason == "excluded":
                self._core.skipped_excluded += 1
            else:
                self._custom_counters[f"skipped_{reason}"] += 1

    def record_page(self, page: CrawledPage) -> None:
        """Record one crawled page."""

        with self._lock:
            if page.status == PageStatus.SUCCESS:
                self._core.fetched_ok += 1
                self._core.bytes_captured += int(page.content_length or 0)
            else:
                self._core.fetched_error += 1

            if page.status_code is not None:
                self._status_code_counts[str(page.status_code)] += 1

            if page.error_message:
                err_type = page.error_message.split(":", maxsplit=1)[0].strip() or "Unknown"
                self._error_type_counts[err_type] += 1

            self._resource_type_counts[page.resource_type.value] += 1

            if page.response_time_ms is not None:
                self._response_ms_total += int(page.response_time_ms)
                self._response_samples += 1

            if page.persisted:
                self._core.pages_persisted += 1

    def record_links(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._core.links_extracted += count

    def record_persistence_retry(self) -> None:
        with self._lock:
            self._core.persistence_retries += 1

    def record_persistence_fallback(self) -> None:
        with self._lock:
            self._core.persistence_fallbacks += 1

    def record_frontier_snapshot(self, snapshot: Mapping[str, int]) -> None:
        """Attach latest frontier snapshot for diagnostics."""

        with self._lock:
            self._frontier_snapshot = dict(snapshot)

    def finish(self) -> None:
        """Mark crawl as finished."""

        with self._lock:
            self._core.finish()

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary."""

        with self._lock:
            payload: dict[str, Any] = self._core.to_json()
            payload["status_codes"] = dict(self._status_code_counts)
            payload["error_types"] = dict(self._error_type_counts)
            payload["resource_types"] = dict(self._resource_type_counts)
            payload["avg_response_ms"] = (
                round(self._response_ms_total / self._response_samples, 1)
                if self._response_samples
                else None
            )
            payload["frontier"] = dict(self._frontier_snapshot)
            payload["custom"] = dict(self._custom_counters)
            payload["duration_seconds"] = _duration_seconds(
                self._core.started_at,
                self._core.finished_at,
            )
        return payload


def _duration_seconds(started_at: str, finished_at: str | None) -> float | None:
    if not finished_at:
        return None
    try:
        start = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        end = datetime.fromisoformat(finished_at.replace("Z", "+00:00"))
    except ValueError:
        return None
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return round((end - start).total_seconds(), 3)


__all__ = ["StatsCollector"]
