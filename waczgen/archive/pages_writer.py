"""pages/pages.jsonl manifest writer."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import secrets
import string
from typing import Any, Iterable, Mapping

from ..constants import PAGE_ID_LENGTH, PAGES_HEADER
from ..content import decode_body, extract_text, is_html_content, is_text_content, sanitize_for_json
from ..errors import ArchiveBuildError, EncodingError
from ..types import CrawledPage, JSONDict, format_timestamp
from .page_content import PageContentStore

LOGGER = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_page_id(length: int = PAGE_ID_LENGTH) -> str:
    """Return a random base36 identifier."""

    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def encode_line(payload: Mapping[str, Any]) -> str:
    """Serialize one JSONL line, raising EncodingError if it is not valid UTF-8."""

    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
        line.encode("utf-8")
    except (TypeError, ValueError, UnicodeEncodeError) as exc:
        raise EncodingError(f"Cannot encode page record: {exc}") from exc
    return line


class PagesWriter:
    """Write the header line plus one record per successful page."""

    def page_text(self, page: CrawledPage, content_store: PageContentStore) -> str:
        content = content_store.get(page.url)
        body = content.content if content is not None else page.content
        if not body or not is_text_content(page.content_type):
            return ""
        if is_html_content(page.content_type):
            return extract_text(body)
        return sanitize_for_json(decode_body(body, page.content_type))

    def build_record(self, page: CrawledPage, content_store: PageContentStore) -> JSONDict:
        return {
            "id": new_page_id(),
            "url": page.url,
            "title": page.title or page.url,
            "ts": format_timestamp(page.crawled_at),
            "load_state": 1,
            "size": page.content_length or 0,
            "seed_id": 0,
            "text": self.page_text(page, content_store),
        }

    def build_lines(
        self,
        pages: Iterable[CrawledPage],
        content_store: PageContentStore,
    ) -> list[str]:
        lines = [encode_line(PAGES_HEADER)]
        for page in pages:
            if not page.ok:
                continue
            record = self.build_record(page, content_store)
            try:
                lines.append(encode_line(record))
            except EncodingError as exc:
                LOGGER.warning("Writing reduced record for %s: %s", page.url, exc)
                lines.append(encode_line(_fallback_record(record)))
        return lines

    def write(
        self,
        pages: Iterable[CrawledPage],
        content_store: PageContentStore,
        path: str | Path,
    ) -> int:
        """Write the manifest and return the number of page records."""

        lines = self.build_lines(pages, content_store)
        out_path = Path(path)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            with out_path.open("w", encoding="utf-8", newline="\n") as handle:
                for line in lines:
                    handle.write(line + "\n")
        except OSError as exc:
            raise ArchiveBuildError(f"Failed to write pages manifest {out_path}: {exc}") from exc

        LOGGER.info("Wrote %d page record(s) to %s", len(lines) - 1, out_path)
        return len(lines) - 1


def _fallback_record(record: Mapping[str, Any]) -> JSONDict:
    def _clean(value: Any) -> str:
        return str(value).encode("utf-8", errors="replace").decode("utf-8")

    return {
        "id": _clean(record.get("id", new_page_id())),
        "url": _clean(record.get("url", "")),
        "title": _clean(record.get("title", "")),
        "ts": _clean(record.get("ts", "")),
        "load_state": 1,
        "size": record.get("size", 0) if isinstance(record.get("size"), int) else 0,
        "seed_id": 0,
        "text": "",
    }


__all__ = ["PagesWriter", "encode_line", "new_page_id"]
