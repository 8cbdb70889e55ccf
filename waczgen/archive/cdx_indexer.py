"""CDXJ index generation for captured pages."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Iterable, Mapping

from ..constants import WARC_FILENAME
from ..content import mime_type
from ..errors import ArchiveBuildError
from ..types import CrawledPage, JSONDict, WarcRecordPosition, cdx_timestamp
from ..url import surt
from .page_content import PageContentStore

LOGGER = logging.getLogger(__name__)


class CdxIndexer:
    """Emit `<SURT> <17-digit timestamp> <JSON>` lines, sorted by key."""

    def __init__(self, *, warc_filename: str = WARC_FILENAME) -> None:
        self.warc_filename = warc_filename

    def build_lines(
        self,
        pages: Iterable[CrawledPage],
        positions: Mapping[str, WarcRecordPosition],
        content_store: PageContentStore,
    ) -> list[str]:
        entries: list[tuple[str, str, str]] = []
        for page in pages:
            position = positions.get(page.url)
            if not page.ok or position is None:
                continue
            content = content_store.get(page.url)
            body = content.content if content is not None else (page.content or b"")

            block: JSONDict = {
                "url": page.url,
                "digest": "sha-256:" + hashlib.sha256(body).hexdigest(),
                "mime": mime_type(page.content_type) or "application/octet-stream",
                "offset": position.offset,
                "length": position.length,
                "recordDigest": position.record_digest,
                "status": page.status_code or 200,
                "filename": self.warc_filename,
            }
            key = surt(page.url)
            timestamp = cdx_timestamp(page.crawled_at)
            encoded = json.dumps(block, ensure_ascii=False, separators=(",", ":"))
            entries.append((key, timestamp, encoded))

        entries.sort(key=lambda entry: (entry[0], entry[1]))
        return [f"{key} {timestamp} {block}" for key, timestamp, block in entries]

    def write(
        self,
        pages: Iterable[CrawledPage],
        positions: Mapping[str, WarcRecordPosition],
        content_store: PageContentStore,
        path: str | Path,
    ) -> int:
        """Write the index file and return the number of lines."""

        lines = self.build_lines(pages, positions, content_store)
        out_path = Path(path)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            with out_path.open("w", encoding="utf-8", newline="\n") as handle:
                for line in lines:
                    handle.write(line + "\n")
        except OSError as exc:
            raise ArchiveBuildError(f"Failed to write CDX index {out_path}: {exc}") from exc

        LOGGER.info("Wrote %d CDXJ line(s) to %s", len(lines), out_path)
        return len(lines)


__all__ = ["CdxIndexer"]
