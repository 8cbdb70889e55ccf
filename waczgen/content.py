"""MIME classification, gzip sniffing and plain-text extraction."""

from __future__ import annotations

import codecs
import gzip
import logging
import re
import zlib

from bs4 import BeautifulSoup

from .constants import MAX_EXTRACTED_TEXT_CHARS, MAX_PAGE_TITLE_CHARS

LOGGER = logging.getLogger(__name__)

TEXT_CONTENT_TYPES = (
    "text/html",
    "text/plain",
    "text/xml",
    "text/css",
    "application/xml",
    "application/xhtml+xml",
    "application/json",
    "application/ld+json",
    "application/javascript",
    "text/javascript",
)
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
GZIP_MAGIC = b"\x1f\x8b"

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE_RE = re.compile(r"\s+")
_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


def is_text_content(content_type: str | None) -> bool:
    """Return True when the MIME type is on the text allow-list."""

    lowered = (content_type or "").lower()
    return any(candidate in lowered for candidate in TEXT_CONTENT_TYPES)


def is_html_content(content_type: str | None) -> bool:
    lowered = (content_type or "").lower()
    return any(candidate in lowered for candidate in HTML_CONTENT_TYPES)


def mime_type(content_type: str | None) -> str:
    """Return the bare MIME type without parameters."""

    return (content_type or "").split(";", maxsplit=1)[0].strip().lower()


def is_gzip(data: bytes | None) -> bool:
    return bool(data) and data[:2] == GZIP_MAGIC


def gunzip_if_needed(data: bytes) -> bytes:
    """Inflate `data` when it carries the gzip magic bytes.

    Payloads that look compressed but fail to inflate are returned unchanged.
    """

    if not is_gzip(data):
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        LOGGER.warning("Failed to gunzip %d bytes: %s", len(data), exc)
        return data


def charset_from_content_type(content_type: str | None) -> str | None:
    match = _CHARSET_RE.search(content_type or "")
    if not match:
        return None
    try:
        return codecs.lookup(match.group(1)).name
    except LookupError:
        return None


def decode_body(body: bytes | str, content_type: str | None = None) -> str:
    """Best-effort transcode of a response body to text.

    Tries the declared charset, then UTF-8, then falls back to UTF-8 with
    replacement characters.
    """

    if isinstance(body, str):
        return body

    candidates: list[str] = []
    declared = charset_from_content_type(content_type)
    if declared:
        candidates.append(declared)
    if "utf-8" not in candidates:
        candidates.append("utf-8")

    for encoding in candidates:
        try:
            return body.decode(encoding)
        except UnicodeDecodeError:
            continue

    LOGGER.debug("Body is not valid %s; decoding with replacement", "/".join(candidates))
    return body.decode("utf-8", errors="replace")


def sanitize_for_json(text: str, max_length: int = MAX_EXTRACTED_TEXT_CHARS) -> str:
    """Drop control characters and lone surrogates, truncate, and trim."""

    cleaned = _CONTROL_CHARS_RE.sub("", text)
    cleaned = cleaned.encode("utf-8", errors="ignore").decode("utf-8")
    if max_length > 0 and len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."
    return cleaned.strip()


def extract_text(html: str | bytes, max_length: int = MAX_EXTRACTED_TEXT_CHARS) -> str:
    """Return collapsed plain text for the page manifest's `text` field."""

    markup = decode_body(html) if isinstance(html, bytes) else html
    if not markup.strip():
        return ""

    soup = BeautifulSoup(markup, "lxml")
    for element in soup(["script", "style"]):
        element.decompose()

    text = _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()
    return sanitize_for_json(text, max_length)


def extract_title(html: str | bytes) -> str | None:
    """Return the `<title>` text, truncated to the stored title limit."""

    markup = decode_body(html) if isinstance(html, bytes) else html
    soup = BeautifulSoup(markup, "lxml")
    if soup.title is None:
        return None

    title = _WHITESPACE_RE.sub(" ", soup.title.get_text(" ", strip=True)).strip()
    if not title:
        return None
    if len(title) > MAX_PAGE_TITLE_CHARS:
        title = title[: MAX_PAGE_TITLE_CHARS - 3] + "..."
    return sanitize_for_json(title, max_length=0)


__all__ = [
    "GZIP_MAGIC",
    "HTML_CONTENT_TYPES",
    "TEXT_CONTENT_TYPES",
    "charset_from_content_type",
    "decode_body",
    "extract_text",
    "extract_title",
    "gunzip_if_needed",
    "is_gzip",
    "is_html_content",
    "is_text_content",
    "mime_type",
    "sanitize_for_json",
]
