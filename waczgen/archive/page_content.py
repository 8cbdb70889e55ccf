"""Transient per-request map of captured response bodies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from ..content import is_text_content
from ..types import CrawledPage


@dataclass(frozen=True, slots=True)
class PageContent:
    """Body and response metadata captured for one normalized URL."""

    content: bytes
    headers: dict[str, str] = field(default_factory=dict)
    status_code: int = 200


class PageContentStore:
    """Normalized URL -> captured body, filled by the crawl and read by the
    archive writers. Cleared once the archive has been built."""

    def __init__(self) -> None:
        self._entries: dict[str, PageContent] = {}

    def put(
        self,
        url: str,
        content: bytes,
        *,
        headers: dict[str, str] | None = None,
        status_code: int = 200,
    ) -> None:
        self._entries[url] = PageContent(
            content=content,
            headers=dict(headers or {}),
            status_code=status_code,
        )

    def get(self, url: str) -> PageContent | None:
        return self._entries.get(url)

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def merge_from_pages(self, pages: Iterable[CrawledPage]) -> int:
        """Fill gaps from successful text pages that still carry their body.

        Returns the number of entries added.
        """

        added = 0
        for page in pages:
            if not page.ok or page.content is None or page.url in self._entries:
                continue
            if not is_text_content(page.content_type):
                continue
            self.put(
                page.url,
                page.content,
                headers=page.headers,
                status_code=page.status_code or 200,
            )
            added += 1
        return added


__all__ = ["PageContent", "PageContentStore"]
