"""Anchor link discovery."""

from __future__ import annotations

from typing import Iterable

from ..types import ResourceType
from .base import Candidate, LinkStrategy


class HtmlLinkStrategy(LinkStrategy):
    """Follow `<a href>` anchors one level deeper than the page."""

    name = "html_links"
    navigational = True

    def _candidates(self, content: str) -> Iterable[Candidate]:
        soup = self._soup(content)
        for anchor in soup.find_all("a", href=True):
            yield anchor.get("href"), ResourceType.LINK


__all__ = ["HtmlLinkStrategy"]
