"""Shared behavior of the link extraction strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Iterable

from bs4 import BeautifulSoup

from ..content import is_html_content
from ..types import CrawledPage, ExtractedLink, ResourceType
from ..url import is_valid_url, normalize_url, resolve_url

LOGGER = logging.getLogger(__name__)

Candidate = tuple[str, ResourceType]


class LinkStrategy(ABC):
    """Produce candidate child URLs of one resource family from a page.

    Subclasses only enumerate raw references; resolution against the page
    URL, normalization, scope validation and depth assignment happen here.
    Markup that cannot be processed is logged and yields no links.
    """

    name: str = ""
    navigational: bool = False

    def supports(self, content_type: str | None) -> bool:
        return is_html_content(content_type)

    def child_depth(self, depth: int) -> int:
        return depth + 1 if self.navigational else depth

    def extract(
        self,
        content: str,
        page: CrawledPage,
        base_url: str,
        follow_external: bool,
    ) -> list[ExtractedLink]:
        """Return validated links found in `content`, in document order."""

        try:
            candidates = list(self._candidates(content))
        except Exception as exc:
            LOGGER.warning("Strategy %s failed on %s: %s", self.name, page.url, exc)
            return []

        return self._accept_all(
            candidates,
            page_url=page.url,
            depth=self.child_depth(page.depth),
            base_url=base_url,
            follow_external=follow_external,
        )

    @abstractmethod
    def _candidates(self, content: str) -> Iterable[Candidate]:
        """Yield raw `(reference, resource_type)` pairs found in `content`."""

    @staticmethod
    def _soup(content: str) -> BeautifulSoup:
        return BeautifulSoup(content, "lxml")

    @staticmethod
    def _accept_all(
        candidates: Iterable[Candidate],
        *,
        page_url: str,
        depth: int,
        base_url: str,
        follow_external: bool,
    ) -> list[ExtractedLink]:
        links: list[ExtractedLink] = []
        for raw, resource_type in candidates:
            normalized = accept_url(raw, page_url, base_url, follow_external)
            if normalized is None:
                continue
            links.append(ExtractedLink(url=normalized, type=resource_type, depth=depth))
        return links


def accept_url(
    raw: str | None,
    page_url: str,
    base_url: str,
    follow_external: bool,
) -> str | None:
    """Resolve, normalize and validate one reference; None when rejected."""

    if raw is None:
        return None
    candidate = str(raw).strip()
    if not candidate:
        return None

    normalized = normalize_url(resolve_url(candidate, page_url))
    if not is_valid_url(normalized, base_url, follow_external):
        return None
    return normalized


__all__ = ["Candidate", "LinkStrategy", "accept_url"]
