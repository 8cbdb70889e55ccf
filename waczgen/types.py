"""Core type definitions for the crawl and archive pipeline.

This module is intentionally dependency-light so other modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping

from .constants import (
    DEFAULT_CRAWL_DELAY_MS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_USER_AGENT,
    MAX_CRAWL_DELAY_MS,
    MAX_DESCRIPTION_LENGTH,
    MAX_MAX_DEPTH,
    MAX_MAX_PAGES,
    MAX_TITLE_LENGTH,
    MAX_URL_LENGTH,
    MIN_CRAWL_DELAY_MS,
    MIN_MAX_DEPTH,
    MIN_MAX_PAGES,
    MIN_TITLE_LENGTH,
)
from .errors import InvalidRequestError
from .url import is_valid_url, normalize_url


class RequestStatus(str, Enum):
    """Lifecycle states of a crawl request."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {RequestStatus.COMPLETED, RequestStatus.FAILED}


class PageStatus(str, Enum):
    """Outcome of crawling one URL."""

    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class ResourceType(str, Enum):
    """Kinds of URLs discovered by link extraction."""

    LINK = "link"
    IMAGE = "image"
    BACKGROUND_IMAGE = "background_image"
    CSS = "css"
    JAVASCRIPT = "javascript"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ` in UTC."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    """Return the current UTC time in archive timestamp format."""

    return format_timestamp(utc_now())


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def cdx_timestamp(moment: datetime) -> str:
    """Return the 17-digit CDXJ timestamp (seconds precision, zero millis)."""

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y%m%d%H%M%S") + "000"


def new_request_id() -> str:
    return uuid.uuid4().hex


def _optional_timestamp(value: datetime | None) -> str | None:
    return None if value is None else format_timestamp(value)


@dataclass(frozen=True, slots=True)
class CrawlOptions:
    """Per-request crawl switches.

    Every recognized option is enumerated here; parsing helpers in
    `config` reject keys that do not map onto one of these fields.
    """

    follow_external_links: bool = False
    include_images: bool = True
    include_css: bool = True
    include_js: bool = True
    exclude_urls: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()

    def to_json(self) -> JSONDict:
        return {
            "follow_external_links": self.follow_external_links,
            "include_images": self.include_images,
            "include_css": self.include_css,
            "include_js": self.include_js,
            "exclude_urls": list(self.exclude_urls),
            "exclude_patterns": list(self.exclude_patterns),
        }


@dataclass(slots=True)
class CrawlRequest:
    """One "archive this site" job.

    Only the pipeline mutates status, timestamp, error and result fields.
    """

    url: str
    title: str
    id: str = field(default_factory=new_request_id)
    description: str | None = None
    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    crawl_delay_ms: int = DEFAULT_CRAWL_DELAY_MS
    options: CrawlOptions = field(default_factory=CrawlOptions)
    user_agent: str = DEFAULT_USER_AGENT

    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    heartbeat_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    file_path: str | None = None
    file_size: int | None = None

    def __post_init__(self) -> None:
        self.url = (self.url or "").strip()
        self.title = (self.title or "").strip()

        if not self.url:
            raise InvalidRequestError("url is required")
        if len(self.url) > MAX_URL_LENGTH:
            raise InvalidRequestError(f"url must be at most {MAX_URL_LENGTH} characters")
        seed = normalize_url(self.url)
        if not is_valid_url(seed, seed, follow_external=True):
            raise InvalidRequestError(f"url is not a crawlable http(s) URL: {self.url!r}")
        if not MIN_TITLE_LENGTH <= len(self.title) <= MAX_TITLE_LENGTH:
            raise InvalidRequestError(
                f"title must be {MIN_TITLE_LENGTH}-{MAX_TITLE_LENGTH} characters"
            )
        if self.description is not None and len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidRequestError(
                f"description must be at most {MAX_DESCRIPTION_LENGTH} characters"
            )
        if not MIN_MAX_DEPTH <= self.max_depth <= MAX_MAX_DEPTH:
            raise InvalidRequestError(f"max_depth must be {MIN_MAX_DEPTH}-{MAX_MAX_DEPTH}")
        if not MIN_MAX_PAGES <= self.max_pages <= MAX_MAX_PAGES:
            raise InvalidRequestError(f"max_pages must be {MIN_MAX_PAGES}-{MAX_MAX_PAGES}")
        if self.crawl_delay_ms != 0 and not (
            MIN_CRAWL_DELAY_MS <= self.crawl_delay_ms <= MAX_CRAWL_DELAY_MS
        ):
            raise InvalidRequestError(
                f"crawl_delay_ms must be 0 or {MIN_CRAWL_DELAY_MS}-{MAX_CRAWL_DELAY_MS}"
            )

    @property
    def lease_started_at(self) -> datetime | None:
        """Most recent proof of life of a processing request."""

        return self.heartbeat_at or self.started_at

    def lease_expired(self, threshold_minutes: float, now: datetime | None = None) -> bool:
        """True when the request has shown no life within the threshold."""

        lease = self.lease_started_at
        if lease is None:
            return True
        return lease < (now or utc_now()) - timedelta(minutes=threshold_minutes)

    def claimable(self, threshold_minutes: float, now: datetime | None = None) -> bool:
        """Pending requests and processing ones with an expired lease."""

        if self.status == RequestStatus.PENDING:
            return True
        if self.status == RequestStatus.PROCESSING:
            return self.lease_expired(threshold_minutes, now)
        return False

    def to_json(self) -> JSONDict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "max_depth": self.max_depth,
            "max_pages": self.max_pages,
            "crawl_delay_ms": self.crawl_delay_ms,
            "options": self.options.to_json(),
            "user_agent": self.user_agent,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "started_at": _optional_timestamp(self.started_at),
            "heartbeat_at": _optional_timestamp(self.heartbeat_at),
            "completed_at": _optional_timestamp(self.completed_at),
            "error_message": self.error_message,
            "file_path": self.file_path,
            "file_size": self.file_size,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "CrawlRequest":
        """Rebuild a request previously written with `to_json`."""

        options = dict(payload.get("options") or {})
        return cls(
            id=str(payload["id"]),
            url=str(payload["url"]),
            title=str(payload["title"]),
            description=payload.get("description"),
            max_depth=int(payload.get("max_depth", DEFAULT_MAX_DEPTH)),
            max_pages=int(payload.get("max_pages", DEFAULT_MAX_PAGES)),
            crawl_delay_ms=int(payload.get("crawl_delay_ms", DEFAULT_CRAWL_DELAY_MS)),
            options=CrawlOptions(
                follow_external_links=bool(options.get("follow_external_links", False)),
                include_images=bool(options.get("include_images", True)),
                include_css=bool(options.get("include_css", True)),
                include_js=bool(options.get("include_js", True)),
                exclude_urls=tuple(options.get("exclude_urls") or ()),
                exclude_patterns=tuple(options.get("exclude_patterns") or ()),
            ),
            user_agent=str(payload.get("user_agent") or DEFAULT_USER_AGENT),
            status=RequestStatus(payload.get("status", RequestStatus.PENDING.value)),
            created_at=parse_timestamp(payload.get("created_at")) or utc_now(),
            started_at=parse_timestamp(payload.get("started_at")),
            heartbeat_at=parse_timestamp(payload.get("heartbeat_at")),
            completed_at=parse_timestamp(payload.get("completed_at")),
            error_message=payload.get("error_message"),
            file_path=payload.get("file_path"),
            file_size=payload.get("file_size"),
        )


@dataclass(slots=True)
class FetchResult:
    """Result of attempting to download one URL."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: bytes | None
    headers: dict[str, str] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=utc_now)
    elapsed_ms: int | None = None
    error: str | None = None


@dataclass(slots=True)
class CrawledPage:
    """Outcome of crawling one normalized URL within a request."""

    url: str
    depth: int
    request_id: str | None = None
    status: PageStatus = PageStatus.SUCCESS
    status_code: int | None = None
    content_type: str | None = None
    content_length: int | None = None
    title: str | None = None
    error_message: str | None = None
    content: bytes | None = field(default=None, repr=False)
    headers: dict[str, str] = field(default_factory=dict)
    response_time_ms: int | None = None
    resource_type: ResourceType = ResourceType.LINK
    crawled_at: datetime = field(default_factory=utc_now)
    persisted: bool = False

    @property
    def ok(self) -> bool:
        return self.status == PageStatus.SUCCESS

    def to_json(self) -> JSONDict:
        """Serialize page metadata. Raw content is kept out of the record."""

        return {
            "request_id": self.request_id,
            "url": self.url,
            "depth": self.depth,
            "status": self.status.value,
            "status_code": self.status_code,
            "content_type": self.content_type,
            "content_length": self.content_length,
            "title": self.title,
            "error_message": self.error_message,
            "headers": dict(self.headers),
            "response_time_ms": self.response_time_ms,
            "resource_type": self.resource_type.value,
            "crawled_at": format_timestamp(self.crawled_at),
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "CrawledPage":
        return cls(
            url=str(payload["url"]),
            depth=int(payload.get("depth", 0)),
            request_id=payload.get("request_id"),
            status=PageStatus(payload.get("status", PageStatus.SUCCESS.value)),
            status_code=payload.get("status_code"),
            content_type=payload.get("content_type"),
            content_length=payload.get("content_length"),
            title=payload.get("title"),
            error_message=payload.get("error_message"),
            headers={str(k): str(v) for k, v in dict(payload.get("headers") or {}).items()},
            response_time_ms=payload.get("response_time_ms"),
            resource_type=ResourceType(payload.get("resource_type", ResourceType.LINK.value)),
            crawled_at=parse_timestamp(payload.get("crawled_at")) or utc_now(),
            persisted=True,
        )


@dataclass(frozen=True, slots=True)
class FrontierItem:
    """A crawl candidate waiting in the frontier."""

    url: str
    depth: int
    resource_type: ResourceType = ResourceType.LINK
    referrer: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractedLink:
    """A candidate child URL produced by a link extraction strategy."""

    url: str
    type: ResourceType
    depth: int

    def to_json(self) -> JSONDict:
        return {"url": self.url, "type": self.type.value, "depth": self.depth}


@dataclass(frozen=True, slots=True)
class WarcRecordPosition:
    """Location of one response record in the uncompressed WARC stream."""

    url: str
    offset: int
    length: int
    record_digest: str


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    """Outcome of one crawl-and-archive run."""

    request_id: str
    success: bool
    file_path: str | None = None
    file_size: int | None = None
    error_message: str | None = None
    page_count: int = 0

    def to_json(self) -> JSONDict:
        return {
            "request_id": self.request_id,
            "success": self.success,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "error_message": self.error_message,
            "page_count": self.page_count,
        }


@dataclass(slots=True)
class CrawlStats:
    """Simple mutable counters used for crawl summary reporting."""

    frontier_enqueued: int = 0
    frontier_skipped_seen: int = 0
    skipped_visited: int = 0
    skipped_depth: int = 0
    skipped_excluded: int = 0

    fetched_ok: int = 0
    fetched_error: int = 0
    bytes_captured: int = 0
    links_extracted: int = 0

    pages_persisted: int = 0
    persistence_retries: int = 0
    persistence_fallbacks: int = 0

    started_at: str = field(default_factory=utc_now_iso)
    finished_at: str | None = None

    def finish(self) -> None:
        self.finished_at = utc_now_iso()

    def to_json(self) -> JSONDict:
        return {
            "frontier_enqueued": self.frontier_enqueued,
            "frontier_skipped_seen": self.frontier_skipped_seen,
            "skipped_visited": self.skipped_visited,
            "skipped_depth": self.skipped_depth,
            "skipped_excluded": self.skipped_excluded,
            "fetched_ok": self.fetched_ok,
            "fetched_error": self.fetched_error,
            "bytes_captured": self.bytes_captured,
            "links_extracted": self.links_extracted,
            "pages_persisted": self.pages_persisted,
            "persistence_retries": self.persistence_retries,
            "persistence_fallbacks": self.persistence_fallbacks,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


__all__ = [
    "ArchiveResult",
    "CrawlOptions",
    "CrawlRequest",
    "CrawlStats",
    "CrawledPage",
    "ExtractedLink",
    "FetchResult",
    "FrontierItem",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "PageStatus",
    "RequestStatus",
    "ResourceType",
    "WarcRecordPosition",
    "cdx_timestamp",
    "format_timestamp",
    "new_request_id",
    "parse_timestamp",
    "utc_now",
    "utc_now_iso",
]
