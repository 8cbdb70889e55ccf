"""Stylesheet discovery."""

from __future__ import annotations

from typing import Iterable

from ..types import ResourceType
from .base import Candidate, LinkStrategy


class CssStrategy(LinkStrategy):
    """Collect `<link rel="stylesheet" href>` targets at the page's depth."""

    name = "css"

    def _candidates(self, content: str) -> Iterable[Candidate]:
        soup = self._soup(content)
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if "stylesheet" in {value.lower() for value in rel}:
                yield link.get("href"), ResourceType.CSS


__all__ = ["CssStrategy"]
