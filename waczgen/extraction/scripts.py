"""Script discovery."""

from __future__ import annotations

from typing import Iterable

from ..types import ResourceType
from .base import Candidate, LinkStrategy


class JavaScriptStrategy(LinkStrategy):
    name = "javascript"

    def _candidates(self, content: str) -> Iterable[Candidate]:
        soup = self._soup(content)
        for script in soup.find_all("script", src=True):
            yield script.get("src"), ResourceType.JAVASCRIPT


__all__ = ["JavaScriptStrategy"]
