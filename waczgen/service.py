"""Request lifecycle: submit, crawl-and-archive, status and lease reclaim."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from pathlib import Path
import time
from typing import Any, Callable, Mapping

from .archive import ArchiveBuilder, BuiltArchive, PageContentStore
from .config import AppConfig, request_from_dict
from .errors import PersistenceError, ZeroPagesError
from .extraction import LinkExtractor
from .fetcher import Fetcher
from .orchestrator import CrawlOrchestrator
from .stats import StatsCollector
from .storage import RequestStore
from .types import (
    ArchiveResult,
    CrawledPage,
    CrawlRequest,
    JSONDict,
    PageStatus,
    RequestStatus,
    utc_now,
)

LOGGER = logging.getLogger(__name__)

ZERO_PAGES_MESSAGE = "Failed to retrieve any pages from the provided URL"
MAX_STORED_ERROR_CHARS = 2000


def zero_pages_message(pages: list[CrawledPage]) -> str:
    if pages and pages[0].error_message:
        return f"{ZERO_PAGES_MESSAGE} ({pages[0].error_message})"
    return ZERO_PAGES_MESSAGE


class WaczService:
    """Collaborator-facing API over the store, crawler and archive builder.

    One service processes requests sequentially. Several services (one per
    worker process) may share a store; the `processing` status plus the
    heartbeat timestamp act as the lease between them.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        store: RequestStore | None = None,
        fetcher: Fetcher | None = None,
        builder: ArchiveBuilder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or AppConfig()
        self.store = store or RequestStore(self.config.store_dir)
        self.fetcher = fetcher or Fetcher(self.config)
        self.builder = builder or ArchiveBuilder(self.config)
        self._sleep = sleep
        self._owns_fetcher = fetcher is None

    def close(self) -> None:
        if self._owns_fetcher:
            self.fetcher.close()

    def __enter__(self) -> "WaczService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Submission

    def submit(self, payload: CrawlRequest | Mapping[str, Any]) -> str:
        """Validate and store a new pending request; return its id."""

        if isinstance(payload, CrawlRequest):
            request = payload
        else:
            request = request_from_dict(payload, default_user_agent=self.config.user_agent)

        request.status = RequestStatus.PENDING
        request_id = self.store.add_request(request)
        LOGGER.info("Submitted request %s for %s", request_id, request.url)
        return request_id

    # Processing

    def is_processable(self, request: CrawlRequest, now: datetime | None = None) -> bool:
        return request.claimable(self.config.stuck_threshold_minutes, now)

    def run_crawl_and_archive(self, request_id: str) -> ArchiveResult:
        """Crawl one request and package it; always ends completed or failed.

        Requests that cannot be claimed (finished, or processing under a live
        lease) are left untouched and reported as not processed.
        """

        try:
            request = self.store.claim_request(
                request_id,
                threshold_minutes=self.config.stuck_threshold_minutes,
            )
        except PersistenceError as exc:
            message = f"Could not claim request {request_id}: {exc}"
            LOGGER.error(message)
            return ArchiveResult(request_id=request_id, success=False, error_message=message)

        if request is None:
            status = self.store.get_request(request_id).status
            message = f"Request {request_id} is not processable (status={status.value})"
            LOGGER.warning(message)
            return ArchiveResult(request_id=request_id, success=False, error_message=message)

        LOGGER.info("Processing request %s: %s", request.id, request.url)

        pages: list[CrawledPage] = []
        built: BuiltArchive | None = None
        try:
            content_store = PageContentStore()
            pages = self._crawl(request, content_store)
            if not any(page.status == PageStatus.SUCCESS for page in pages):
                raise ZeroPagesError(zero_pages_message(pages))

            built = self.builder.build(request, pages, content_store)

            request.status = RequestStatus.COMPLETED
            request.completed_at = utc_now()
            request.file_path = str(built.path)
            request.file_size = built.size
            request.error_message = None
            self.store.save_request(request)
        except Exception as exc:
            LOGGER.exception("Request %s failed", request.id)
            return self._fail(
                request,
                exc,
                page_count=len(pages),
                archive_path=None if built is None else built.path,
            )

        LOGGER.info(
            "Request %s completed: %s (%d bytes, %d pages)",
            request.id,
            request.file_path,
            request.file_size,
            built.page_count,
        )
        return ArchiveResult(
            request_id=request.id,
            success=True,
            file_path=request.file_path,
            file_size=request.file_size,
            page_count=len(pages),
        )

    def _crawl(self, request: CrawlRequest, content_store: PageContentStore) -> list[CrawledPage]:
        orchestrator = CrawlOrchestrator(
            self.fetcher,
            LinkExtractor(
                self.fetcher,
                stylesheet_timeout_seconds=self.config.stylesheet_timeout_seconds,
            ),
            page_sink=self.store,
            sleep=self._sleep,
            show_progress=self.config.show_progress,
        )
        stats = StatsCollector()

        def heartbeat(_page: CrawledPage) -> None:
            request.heartbeat_at = utc_now()
            try:
                self.store.save_request(request)
            except PersistenceError as exc:
                LOGGER.warning("Heartbeat for %s not saved: %s", request.id, exc)

        pages = orchestrator.crawl(
            request,
            content_store=content_store,
            stats=stats,
            on_page=heartbeat,
        )
        summary = stats.to_json()
        LOGGER.info(
            "Crawl of %s finished: ok=%s error=%s skipped=%s duration=%ss",
            request.id,
            summary["fetched_ok"],
            summary["fetched_error"],
            summary["skipped_visited"] + summary["skipped_depth"] + summary["skipped_excluded"],
            summary["duration_seconds"],
        )
        return pages

    def _fail(
        self,
        request: CrawlRequest,
        exc: Exception,
        *,
        page_count: int,
        archive_path: Path | None = None,
    ) -> ArchiveResult:
        message = str(exc) or exc.__class__.__name__
        if archive_path is not None:
            # Built but never recorded as completed.
            try:
                archive_path.unlink(missing_ok=True)
            except OSError as unlink_exc:
                LOGGER.error("Could not remove orphaned archive %s: %s", archive_path, unlink_exc)
        request.status = RequestStatus.FAILED
        request.completed_at = utc_now()
        request.error_message = message[:MAX_STORED_ERROR_CHARS]
        request.file_path = None
        request.file_size = None
        try:
            self.store.save_request(request)
        except PersistenceError as save_exc:
            LOGGER.critical("Could not record failure of %s: %s", request.id, save_exc)

        return ArchiveResult(
            request_id=request.id,
            success=False,
            error_message=message,
            page_count=page_count,
        )

    def process_pending(self, limit: int | None = None) -> list[ArchiveResult]:
        """Run claimable requests oldest first, up to `limit` of them."""

        now = utc_now()
        candidates = [
            request
            for request in self.store.list_requests()
            if self.is_processable(request, now)
        ]
        if limit is not None:
            candidates = candidates[: max(0, limit)]

        results: list[ArchiveResult] = []
        for request in candidates:
            results.append(self.run_crawl_and_archive(request.id))
        return results

    # Status

    def get_status(self, request_id: str) -> CrawlRequest:
        return self.store.get_request(request_id)

    def get_progress(self, request_id: str) -> JSONDict:
        """Pages crawled so far against the request's page budget."""

        request = self.store.get_request(request_id)
        pages = self.store.list_pages(request_id)
        successful = sum(1 for page in pages if page.status == PageStatus.SUCCESS)
        errors = sum(1 for page in pages if page.status == PageStatus.ERROR)
        percent = round(100.0 * len(pages) / request.max_pages, 1) if request.max_pages else 0.0
        return {
            "request_id": request.id,
            "status": request.status.value,
            "pages_crawled": len(pages),
            "max_pages": request.max_pages,
            "successful_pages": successful,
            "error_pages": errors,
            "percent": min(percent, 100.0),
        }

    def list_by_status(self, status: RequestStatus | str | None = None) -> list[CrawlRequest]:
        return self.store.list_requests(status)

    def get_statistics(self) -> JSONDict:
        counts: JSONDict = {status.value: 0 for status in RequestStatus}
        requests = self.store.list_requests()
        for request in requests:
            counts[request.status.value] = int(counts[request.status.value] or 0) + 1
        counts["total"] = len(requests)
        return counts

    def delete(self, request_id: str) -> bool:
        """Remove a request, its pages and its archive file."""

        request = self.store.get_request(request_id)
        if request.file_path:
            Path(request.file_path).unlink(missing_ok=True)
        deleted = self.store.delete_request(request_id)
        LOGGER.info("Deleted request %s", request_id)
        return deleted

    # Lease maintenance

    def find_stuck_requests(self, threshold_minutes: float | None = None) -> list[CrawlRequest]:
        threshold = (
            self.config.stuck_threshold_minutes if threshold_minutes is None else threshold_minutes
        )
        now = utc_now()
        return [
            request
            for request in self.store.list_requests(RequestStatus.PROCESSING)
            if request.lease_expired(threshold, now)
        ]

    def reset_stuck_requests(
        self,
        threshold_minutes: float | None = None,
        *,
        dry_run: bool = False,
        force: bool = False,
    ) -> list[CrawlRequest]:
        """Return expired (or, with `force`, all) processing requests to pending."""

        threshold = (
            self.config.stuck_threshold_minutes if threshold_minutes is None else threshold_minutes
        )
        if force:
            stuck = self.store.list_requests(RequestStatus.PROCESSING)
        else:
            stuck = self.find_stuck_requests(threshold)
        if dry_run:
            for request in stuck:
                LOGGER.info("Would reset request %s (lease %s)", request.id, request.lease_started_at)
            return stuck

        reset: list[CrawlRequest] = []
        for candidate in stuck:
            with self.store.request_lock(candidate.id):
                # Re-read: the request may have been reclaimed or finished meanwhile.
                request = self.store.get_request(candidate.id)
                if request.status != RequestStatus.PROCESSING:
                    continue
                if not force and not request.lease_expired(threshold):
                    continue
                request.status = RequestStatus.PENDING
                request.started_at = None
                request.heartbeat_at = None
                request.error_message = None
                self.store.save_request(request)
            LOGGER.info("Reset request %s to pending", request.id)
            reset.append(request)
        return reset

    def cleanup_old_requests(self, days: int) -> list[str]:
        """Delete finished requests (and archives) completed more than `days` ago."""

        if days < 0:
            raise ValueError("days must be >= 0")

        cutoff = utc_now() - timedelta(days=days)
        removed: list[str] = []
        for request in self.store.list_requests():
            if not request.status.terminal:
                continue
            finished = request.completed_at or request.created_at
            if finished >= cutoff:
                continue
            self.delete(request.id)
            removed.append(request.id)
        return removed


__all__ = ["WaczService", "zero_pages_message", "ZERO_PAGES_MESSAGE"]
