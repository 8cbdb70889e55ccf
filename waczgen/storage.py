"""Filesystem-backed store for crawl requests and their pages.

Storage owns the on-disk layout. Other modules should use this API instead of
building paths manually.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import json
import logging
import os
from pathlib import Path
import re
import tempfile
import threading
import time
from typing import Any, Iterator, Mapping

from .errors import PersistenceError, RequestNotFoundError
from .types import CrawledPage, CrawlRequest, RequestStatus, utc_now

LOGGER = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 10.0
LOCK_POLL_SECONDS = 0.02
STALE_LOCK_SECONDS = 60.0

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class RequestStore:
    """Persist requests as JSON documents and pages as per-request JSONL.

    Layout::

        <store_dir>/requests/<id>.json
        <store_dir>/requests/<id>.lock     (held while a worker claims the request)
        <store_dir>/pages/<id>.jsonl
    """

    def __init__(
        self,
        store_dir: str | Path,
        *,
        lock_timeout_seconds: float = LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.store_dir = Path(store_dir)
        self.lock_timeout_seconds = lock_timeout_seconds
        self.requests_dir = self.store_dir / "requests"
        self.pages_dir = self.store_dir / "pages"

        self._lock = threading.RLock()
        self._ensure_layout()

    def _ensure_layout(self) -> None:
        try:
            self.requests_dir.mkdir(parents=True, exist_ok=True)
            self.pages_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create store at {self.store_dir}: {exc}") from exc

    @staticmethod
    def _check_id(request_id: str) -> str:
        if not request_id or not _SAFE_ID_RE.match(request_id):
            raise RequestNotFoundError(f"Invalid request id: {request_id!r}")
        return request_id

    def request_path(self, request_id: str) -> Path:
        return self.requests_dir / f"{self._check_id(request_id)}.json"

    def pages_path(self, request_id: str) -> Path:
        return self.pages_dir / f"{self._check_id(request_id)}.jsonl"

    # Requests

    def add_request(self, request: CrawlRequest) -> str:
        """Persist a new request and return its id."""

        with self._lock:
            if self.request_path(request.id).exists():
                raise PersistenceError(f"Request {request.id} already exists")
            self.save_request(request)
        return request.id

    def save_request(self, request: CrawlRequest) -> None:
        """Write the request document atomically."""

        try:
            self._atomic_write_json(self.request_path(request.id), request.to_json())
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to save request {request.id}: {exc}") from exc

    def get_request(self, request_id: str) -> CrawlRequest:
        path = self.request_path(request_id)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise RequestNotFoundError(f"Request {request_id} not found") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Failed to load request {request_id}: {exc}") from exc
        return CrawlRequest.from_json(payload)

    @contextmanager
    def request_lock(self, request_id: str) -> Iterator[None]:
        """Hold the cross-process lock file of one request.

        Lock files older than `STALE_LOCK_SECONDS` belong to a dead holder and
        are broken.
        """

        path = self.requests_dir / f"{self._check_id(request_id)}.lock"
        deadline = time.monotonic() + self.lock_timeout_seconds
        while True:
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                break
            except FileExistsError:
                if self._break_stale_lock(path):
                    continue
                if time.monotonic() >= deadline:
                    raise PersistenceError(f"Request {request_id} is locked by another worker")
                time.sleep(LOCK_POLL_SECONDS)
            except OSError as exc:
                raise PersistenceError(f"Cannot lock request {request_id}: {exc}") from exc

        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
            yield
        finally:
            os.close(fd)
            path.unlink(missing_ok=True)

    @staticmethod
    def _break_stale_lock(path: Path) -> bool:
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return True
        if age < STALE_LOCK_SECONDS:
            return False
        LOGGER.warning("Breaking stale lock %s (%.0fs old)", path, age)
        path.unlink(missing_ok=True)
        return True

    def claim_request(
        self,
        request_id: str,
        *,
        threshold_minutes: float,
        now: datetime | None = None,
    ) -> CrawlRequest | None:
        """Move a claimable request to processing under the request lock.

        Returns the claimed request, or None when it is finished or another
        worker holds a live lease. Pages of an earlier attempt are dropped.
        """

        now = now or utc_now()
        with self.request_lock(request_id):
            request = self.get_request(request_id)
            if not request.claimable(threshold_minutes, now):
                return None

            request.status = RequestStatus.PROCESSING
            request.started_at = now
            request.heartbeat_at = now
            request.completed_at = None
            request.error_message = None
            request.file_path = None
            request.file_size = None

            self.clear_pages(request_id)
            self.save_request(request)
        return request

    def has_request(self, request_id: str) -> bool:
        return self.request_path(request_id).exists()

    def list_requests(self, status: RequestStatus | str | None = None) -> list[CrawlRequest]:
        """Return requests (optionally filtered by status), oldest first."""

        wanted = None if status is None else RequestStatus(status)
        requests: list[CrawlRequest] = []
        for path in sorted(self.requests_dir.glob("*.json")):
            try:
                request = self.get_request(path.stem)
            except RequestNotFoundError:
                continue
            if wanted is None or request.status == wanted:
                requests.append(request)
        requests.sort(key=lambda item: item.created_at)
        return requests

    def delete_request(self, request_id: str) -> bool:
        """Remove a request and its pages. Returns False when it did not exist."""

        with self._lock:
            request_path = self.request_path(request_id)
            existed = request_path.exists()
            try:
                request_path.unlink(missing_ok=True)
                self.pages_path(request_id).unlink(missing_ok=True)
            except OSError as exc:
                raise PersistenceError(f"Failed to delete request {request_id}: {exc}") from exc
        return existed

    # Pages

    def save_page(self, page: CrawledPage) -> CrawledPage:
        """Append a page record and return it marked as persisted."""

        if not page.request_id:
            raise PersistenceError(f"Page {page.url} has no request id")
        try:
            self._append_jsonl(self.pages_path(page.request_id), page.to_json())
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to save page {page.url}: {exc}") from exc
        page.persisted = True
        return page

    def list_pages(self, request_id: str) -> list[CrawledPage]:
        path = self.pages_path(request_id)
        if not path.exists():
            return []

        pages: list[CrawledPage] = []
        try:
            with path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    line = line.strip()
                    if not line:
                        continue
                    pages.append(CrawledPage.from_json(json.loads(line)))
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Failed to load pages of {request_id}: {exc}") from exc
        return pages

    def count_pages(self, request_id: str) -> int:
        return len(self.list_pages(request_id))

    def clear_pages(self, request_id: str) -> None:
        """Forget pages of a previous attempt."""

        try:
            self.pages_path(request_id).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to clear pages of {request_id}: {exc}") from exc

    def _append_jsonl(self, path: Path, payload: Mapping[str, Any]) -> None:
        line = json.dumps(payload, ensure_ascii=False, sort_keys=True)
        with self._lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    @staticmethod
    def _atomic_write_json(path: Path, payload: Mapping[str, Any]) -> None:
        content = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=".tmp",
        )
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise


__all__ = ["RequestStore"]
