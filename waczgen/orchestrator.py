"""Breadth-first crawl loop producing CrawledPage records."""

from __future__ import annotations

from fnmatch import fnmatchcase
import logging
import time
from typing import Callable, Iterable, Protocol

from tqdm import tqdm

from .archive.page_content import PageContentStore
from .content import (
    extract_title,
    gunzip_if_needed,
    is_gzip,
    is_html_content,
    is_text_content,
)
from .errors import PersistenceError
from .extraction import LinkExtractor
from .fetcher import Fetcher
from .frontier import Frontier
from .stats import StatsCollector
from .types import CrawledPage, CrawlRequest, FetchResult, FrontierItem, PageStatus
from .url import host_from_url, normalize_url

LOGGER = logging.getLogger(__name__)

SANITIZED_TITLE = "Error"
FALLBACK_TITLE = "DB Error"
FALLBACK_MESSAGE = "Critical database error"
MAX_ERROR_MESSAGE_CHARS = 1000


class PageSink(Protocol):
    """Anything that can durably save one crawled page."""

    def save_page(self, page: CrawledPage) -> CrawledPage:
        ...


def is_excluded(url: str, exclude_urls: Iterable[str], exclude_patterns: Iterable[str]) -> bool:
    """Exact match against `exclude_urls` or glob match against `exclude_patterns`."""

    if url in set(exclude_urls):
        return True
    return any(fnmatchcase(url, pattern) for pattern in exclude_patterns)


class CrawlOrchestrator:
    """Owns one crawl's frontier and turns fetches into CrawledPage records.

    Per-page failures are recorded on the page and never stop the loop.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        link_extractor: LinkExtractor | None = None,
        *,
        page_sink: PageSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = False,
    ) -> None:
        self.fetcher = fetcher
        self.link_extractor = link_extractor or LinkExtractor(fetcher)
        self.page_sink = page_sink
        self._sleep = sleep
        self.show_progress = show_progress

    def crawl(
        self,
        request: CrawlRequest,
        *,
        content_store: PageContentStore | None = None,
        stats: StatsCollector | None = None,
        on_page: Callable[[CrawledPage], None] | None = None,
    ) -> list[CrawledPage]:
        """Crawl `request` breadth-first and return pages in fetch order."""

        content_store = content_store if content_store is not None else PageContentStore()
        stats = stats or StatsCollector()
        options = request.options
        exclude_urls = set(options.exclude_urls)
        exclude_urls.update(normalize_url(url) for url in options.exclude_urls)

        frontier = Frontier()
        stats.record_enqueue(frontier.seed(normalize_url(request.url)))

        pages: list[CrawledPage] = []
        progress = tqdm(
            total=request.max_pages,
            desc=f"Crawling {host_from_url(request.url)}",
            unit="page",
            disable=not self.show_progress,
        )
        try:
            while not frontier.empty() and len(pages) < request.max_pages:
                item = frontier.pop()
                if item is None:
                    break

                if frontier.is_visited(item.url):
                    stats.record_skip("visited")
                    continue
                if item.depth > request.max_depth:
                    stats.record_skip("depth")
                    continue
                if is_excluded(item.url, exclude_urls, options.exclude_patterns):
                    LOGGER.debug("Skipping excluded URL %s", item.url)
                    stats.record_skip("excluded")
                    continue

                frontier.mark_visited(item.url)
                page = self._crawl_item(request, item, content_store)
                page = self._persist(page, stats)
                pages.append(page)
                stats.record_page(page)
                progress.update(1)

                LOGGER.info(
                    "[%d/%d] %s %s depth=%d%s",
                    len(pages),
                    request.max_pages,
                    page.status.value,
                    page.url,
                    page.depth,
                    f" ({page.error_message})" if page.error_message else "",
                )
                if on_page is not None:
                    on_page(page)

                if page.ok and page.content is not None and is_html_content(page.content_type):
                    links = self.link_extractor.extract_links_from_page(
                        page,
                        page.content,
                        options,
                        user_agent=request.user_agent,
                    )
                    stats.record_links(len(links))
                    for link in links:
                        stats.record_enqueue(
                            frontier.push(
                                link.url,
                                depth=link.depth,
                                resource_type=link.type,
                                referrer=page.url,
                            )
                        )

                if (
                    request.crawl_delay_ms > 0
                    and not frontier.empty()
                    and len(pages) < request.max_pages
                ):
                    self._sleep(request.crawl_delay_ms / 1000.0)
        finally:
            progress.close()

        stats.record_frontier_snapshot(frontier.snapshot())
        stats.finish()
        return pages

    def _crawl_item(
        self,
        request: CrawlRequest,
        item: FrontierItem,
        content_store: PageContentStore,
    ) -> CrawledPage:
        result: FetchResult | None = None
        try:
            result = self.fetcher.fetch(item.url, user_agent=request.user_agent)
            return self._page_from_result(request, item, result, content_store)
        except Exception as exc:
            LOGGER.warning("Failed to crawl %s: %s", item.url, exc)
            page = CrawledPage(
                url=item.url,
                depth=item.depth,
                request_id=request.id,
                status=PageStatus.ERROR,
                error_message=f"{exc.__class__.__name__}: {exc}",
                resource_type=item.resource_type,
            )
            if result is not None:
                page.status_code = result.status_code
                page.content_type = result.content_type
                page.response_time_ms = result.elapsed_ms
                page.crawled_at = result.fetched_at
            return page

    @staticmethod
    def _page_from_result(
        request: CrawlRequest,
        item: FrontierItem,
        result: FetchResult,
        content_store: PageContentStore,
    ) -> CrawledPage:
        page = CrawledPage(
            url=item.url,
            depth=item.depth,
            request_id=request.id,
            status_code=result.status_code,
            content_type=result.content_type,
            headers=dict(result.headers),
            response_time_ms=result.elapsed_ms,
            resource_type=item.resource_type,
            crawled_at=result.fetched_at,
        )

        if result.error is not None:
            page.status = PageStatus.ERROR
            page.error_message = result.error
            return page

        if result.status_code is None or not 200 <= result.status_code < 300:
            page.status = PageStatus.ERROR
            page.error_message = f"HTTP {result.status_code}"
            return page

        body = result.body or b""
        content_encoding = _header(result.headers, "Content-Encoding").lower()
        if "gzip" in content_encoding and is_gzip(body):
            body = gunzip_if_needed(body)

        page.status = PageStatus.SUCCESS
        page.content_length = len(body)
        page.title = host_from_url(item.url)

        if is_text_content(result.content_type):
            page.content = body
            if is_html_content(result.content_type):
                page.title = extract_title(body) or page.title
            content_store.put(
                item.url,
                body,
                headers=result.headers,
                status_code=result.status_code,
            )
        return page

    def _persist(self, page: CrawledPage, stats: StatsCollector) -> CrawledPage:
        """Save `page`, degrading to a minimal record and then to memory."""

        if self.page_sink is None:
            return page

        try:
            return self.page_sink.save_page(page)
        except PersistenceError as exc:
            LOGGER.error("Failed to save page %s: %s; retrying with minimal record", page.url, exc)
            stats.record_persistence_retry()
            sanitized = CrawledPage(
                url=page.url,
                depth=page.depth,
                request_id=page.request_id,
                status=PageStatus.ERROR,
                status_code=page.status_code,
                content_type=page.content_type,
                title=SANITIZED_TITLE,
                error_message=f"Database save error: {exc}"[:MAX_ERROR_MESSAGE_CHARS],
                resource_type=page.resource_type,
                crawled_at=page.crawled_at,
            )

        try:
            return self.page_sink.save_page(sanitized)
        except PersistenceError as exc:
            LOGGER.critical("Could not save page %s even as minimal record: %s", page.url, exc)
            stats.record_persistence_fallback()
            return CrawledPage(
                url=page.url,
                depth=page.depth,
                request_id=page.request_id,
                status=PageStatus.ERROR,
                status_code=page.status_code,
                content_type=page.content_type,
                title=FALLBACK_TITLE,
                error_message=FALLBACK_MESSAGE,
                resource_type=page.resource_type,
                crawled_at=page.crawled_at,
            )


def _header(headers: dict[str, str], name: str) -> str:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return ""


__all__ = ["CrawlOrchestrator", "PageSink", "is_excluded"]
