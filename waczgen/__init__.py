"""waczgen: crawl a site breadth-first and package it as a WACZ web archive."""

from .archive import ArchiveBuilder, BuiltArchive, PageContentStore, verify_digest
from .config import AppConfig, load_config, options_from_dict, request_from_dict, save_config
from .errors import (
    ArchiveBuildError,
    EncodingError,
    InvalidRequestError,
    PersistenceError,
    RequestNotFoundError,
    SigningError,
    WaczError,
    ZeroPagesError,
)
from .extraction import LinkExtractor
from .fetcher import Fetcher
from .frontier import EnqueueResult, EnqueueStatus, Frontier
from .orchestrator import CrawlOrchestrator
from .service import WaczService
from .stats import StatsCollector
from .storage import RequestStore
from .types import (
    ArchiveResult,
    CrawledPage,
    CrawlOptions,
    CrawlRequest,
    ExtractedLink,
    FetchResult,
    PageStatus,
    RequestStatus,
    ResourceType,
)
from .url import is_valid_url, normalize_url, resolve_url, surt

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "ArchiveBuildError",
    "ArchiveBuilder",
    "ArchiveResult",
    "BuiltArchive",
    "CrawlOptions",
    "CrawlOrchestrator",
    "CrawlRequest",
    "CrawledPage",
    "EncodingError",
    "EnqueueResult",
    "EnqueueStatus",
    "ExtractedLink",
    "FetchResult",
    "Fetcher",
    "Frontier",
    "InvalidRequestError",
    "LinkExtractor",
    "PageContentStore",
    "PageStatus",
    "PersistenceError",
    "RequestNotFoundError",
    "RequestStatus",
    "RequestStore",
    "ResourceType",
    "SigningError",
    "StatsCollector",
    "WaczError",
    "WaczService",
    "ZeroPagesError",
    "is_valid_url",
    "load_config",
    "normalize_url",
    "options_from_dict",
    "request_from_dict",
    "resolve_url",
    "save_config",
    "surt",
    "verify_digest",
]
