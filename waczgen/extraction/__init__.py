"""Link extraction package exports."""

from .base import LinkStrategy, accept_url
from .extractor import LinkExtractor, dedupe_links
from .html_links import HtmlLinkStrategy
from .images import ImageStrategy, background_images_in_css
from .scripts import JavaScriptStrategy
from .stylesheets import CssStrategy

__all__ = [
    "CssStrategy",
    "HtmlLinkStrategy",
    "ImageStrategy",
    "JavaScriptStrategy",
    "LinkExtractor",
    "LinkStrategy",
    "accept_url",
    "background_images_in_css",
    "dedupe_links",
]
