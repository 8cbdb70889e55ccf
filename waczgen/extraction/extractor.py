"""Dispatch page content to the enabled link extraction strategies."""

from __future__ import annotations

import logging
from typing import Iterable

from ..constants import DEFAULT_STYLESHEET_TIMEOUT_SECONDS
from ..content import decode_body, gunzip_if_needed
from ..fetcher import Fetcher
from ..types import CrawledPage, CrawlOptions, ExtractedLink, ResourceType
from ..url import get_base_url
from .base import LinkStrategy
from .html_links import HtmlLinkStrategy
from .images import ImageStrategy
from .scripts import JavaScriptStrategy
from .stylesheets import CssStrategy

LOGGER = logging.getLogger(__name__)


def dedupe_links(links: Iterable[ExtractedLink]) -> list[ExtractedLink]:
    """Drop repeated URLs, keeping the first occurrence."""

    seen: set[str] = set()
    out: list[ExtractedLink] = []
    for link in links:
        if link.url in seen:
            continue
        seen.add(link.url)
        out.append(link)
    return out


class LinkExtractor:
    """Run the strategies selected by a request's options over one page.

    The strategy set is closed: images, css and javascript run when their
    option flag is on, html_links always runs last. With both images and
    css enabled, linked stylesheets are downloaded (short timeout) and mined
    for background images.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        *,
        stylesheet_timeout_seconds: float = DEFAULT_STYLESHEET_TIMEOUT_SECONDS,
    ) -> None:
        self.fetcher = fetcher
        self.stylesheet_timeout_seconds = stylesheet_timeout_seconds

        self.html_links = HtmlLinkStrategy()
        self.images = ImageStrategy()
        self.css = CssStrategy()
        self.javascript = JavaScriptStrategy()
        self.strategies: dict[str, LinkStrategy] = {
            strategy.name: strategy
            for strategy in (self.images, self.css, self.javascript, self.html_links)
        }

    def selected_strategies(self, options: CrawlOptions) -> list[LinkStrategy]:
        """Return enabled strategies in execution order."""

        enabled = {
            self.images.name: options.include_images,
            self.css.name: options.include_css,
            self.javascript.name: options.include_js,
            self.html_links.name: True,
        }
        return [strategy for name, strategy in self.strategies.items() if enabled[name]]

    def extract_links_from_page(
        self,
        page: CrawledPage,
        content: bytes | str,
        options: CrawlOptions,
        *,
        user_agent: str | None = None,
    ) -> list[ExtractedLink]:
        """Return deduplicated child links of `page`."""

        if isinstance(content, bytes):
            content = decode_body(gunzip_if_needed(content), page.content_type)

        base_url = get_base_url(page.url)
        follow_external = options.follow_external_links

        links: list[ExtractedLink] = []
        for strategy in self.selected_strategies(options):
            if not strategy.supports(page.content_type):
                continue
            found = strategy.extract(content, page, base_url, follow_external)
            LOGGER.debug("Strategy %s found %d link(s) on %s", strategy.name, len(found), page.url)
            links.extend(found)

        if options.include_images and options.include_css:
            links.extend(
                self._stylesheet_background_images(
                    links,
                    page=page,
                    base_url=base_url,
                    follow_external=follow_external,
                    user_agent=user_agent,
                )
            )

        return dedupe_links(links)

    def _stylesheet_background_images(
        self,
        links: list[ExtractedLink],
        *,
        page: CrawledPage,
        base_url: str,
        follow_external: bool,
        user_agent: str | None,
    ) -> list[ExtractedLink]:
        if self.fetcher is None:
            return []

        stylesheet_urls = [
            link.url for link in dedupe_links(links) if link.type == ResourceType.CSS
        ]
        found: list[ExtractedLink] = []
        for stylesheet_url in stylesheet_urls:
            result = self.fetcher.fetch(
                stylesheet_url,
                user_agent=user_agent,
                timeout=self.stylesheet_timeout_seconds,
            )
            if result.status_code != 200 or result.body is None:
                LOGGER.debug(
                    "Skipping stylesheet %s: %s",
                    stylesheet_url,
                    result.error or f"HTTP {result.status_code}",
                )
                continue

            css = decode_body(gunzip_if_needed(result.body), result.content_type)
            found.extend(
                self.images.extract_from_stylesheet(
                    css,
                    stylesheet_url=stylesheet_url,
                    page=page,
                    base_url=base_url,
                    follow_external=follow_external,
                )
            )
        return found


__all__ = ["LinkExtractor", "dedupe_links"]
