"""Image discovery from `<img>` tags and CSS background images.

Background images are found with regular expressions over raw HTML and CSS
rather than a CSS parser, so the match set is heuristic.
"""

from __future__ import annotations

import re
from typing import Iterable

from ..types import CrawledPage, ExtractedLink, ResourceType
from .base import Candidate, LinkStrategy

INLINE_STYLE_RE = re.compile(
    r"""style\s*=\s*["'][^"']*background-image\s*:\s*url\(["']?([^)"'\s]+)["']?\)[^"']*["']""",
    re.IGNORECASE,
)
STYLE_BLOCK_RE = re.compile(r"<style[^>]*>(.*?)</style>", re.IGNORECASE | re.DOTALL)
CSS_BACKGROUND_IMAGE_RE = re.compile(
    r"""background-image\s*:\s*url\(["']?([^)"'\s]+)["']?\)""",
    re.IGNORECASE,
)
CSS_BACKGROUND_RE = re.compile(
    r"""background\s*:\s*[^;]*url\(["']?([^)"'\s]+)["']?\)[^;]*""",
    re.IGNORECASE,
)


def background_images_in_css(css: str) -> list[str]:
    """Return `url(...)` targets of background declarations in a stylesheet."""

    found = CSS_BACKGROUND_IMAGE_RE.findall(css)
    found.extend(CSS_BACKGROUND_RE.findall(css))
    return [value for value in found if value.strip() and not value.startswith("data:")]


class ImageStrategy(LinkStrategy):
    """Collect images as same-depth subresources of the page."""

    name = "images"

    def _candidates(self, content: str) -> Iterable[Candidate]:
        soup = self._soup(content)
        for image in soup.find_all("img", src=True):
            yield image.get("src"), ResourceType.IMAGE

        for value in INLINE_STYLE_RE.findall(content):
            if value.strip() and not value.startswith("data:"):
                yield value, ResourceType.BACKGROUND_IMAGE

        for block in STYLE_BLOCK_RE.findall(content):
            for value in background_images_in_css(block):
                yield value, ResourceType.BACKGROUND_IMAGE

    def extract_from_stylesheet(
        self,
        css: str,
        *,
        stylesheet_url: str,
        page: CrawledPage,
        base_url: str,
        follow_external: bool,
    ) -> list[ExtractedLink]:
        """Mine an external stylesheet; references resolve against its URL."""

        candidates = [
            (value, ResourceType.BACKGROUND_IMAGE) for value in background_images_in_css(css)
        ]
        return self._accept_all(
            candidates,
            page_url=stylesheet_url,
            depth=self.child_depth(page.depth),
            base_url=base_url,
            follow_external=follow_external,
        )


__all__ = [
    "CSS_BACKGROUND_IMAGE_RE",
    "CSS_BACKGROUND_RE",
    "INLINE_STYLE_RE",
    "STYLE_BLOCK_RE",
    "ImageStrategy",
    "background_images_in_css",
]
