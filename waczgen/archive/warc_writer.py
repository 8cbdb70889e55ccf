"""WARC/1.1 serialization of captured pages.

Records are written uncompressed to a scratch file so their byte offsets can
be measured, then the whole stream is gzip-compressed into the archive.
Offsets and lengths therefore refer to the uncompressed stream.
"""

from __future__ import annotations

import gzip
import hashlib
from io import BytesIO
import logging
from pathlib import Path
import shutil
import tempfile
from typing import IO, Iterable

from warcio.statusandheaders import StatusAndHeaders
from warcio.warcwriter import WARCWriter

from ..constants import DEFAULT_OPERATOR, DEFAULT_SOFTWARE, WARC_FILENAME
from ..errors import ArchiveBuildError
from ..types import CrawledPage, WarcRecordPosition, format_timestamp, utc_now
from .page_content import PageContent, PageContentStore

LOGGER = logging.getLogger(__name__)

WARC_VERSION = "1.1"
DROPPED_RESPONSE_HEADERS = {"content-encoding", "transfer-encoding", "content-length"}
HTTP_REASONS = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    203: "Non-Authoritative Information",
    204: "No Content",
    206: "Partial Content",
}


def http_headers_for(content: PageContent, page: CrawledPage) -> StatusAndHeaders:
    """Build the synthetic HTTP/1.1 response head stored with a body.

    The stored body is already decoded, so transfer/content encodings and the
    origin's length are replaced by the stored body's length.
    """

    status_code = content.status_code or page.status_code or 200
    headers = [
        (name, value)
        for name, value in content.headers.items()
        if name.lower() not in DROPPED_RESPONSE_HEADERS
    ]
    if page.content_type and not any(name.lower() == "content-type" for name, _ in headers):
        headers.append(("Content-Type", page.content_type))
    headers.append(("Content-Length", str(len(content.content))))

    status_line = f"{status_code} {HTTP_REASONS.get(status_code, 'OK')}"
    return StatusAndHeaders(status_line, headers, protocol="HTTP/1.1")


class WarcWriter:
    """Write one warcinfo record plus one response record per captured page."""

    def __init__(
        self,
        *,
        software: str = DEFAULT_SOFTWARE,
        operator: str = DEFAULT_OPERATOR,
    ) -> None:
        self.software = software
        self.operator = operator

    def write(
        self,
        pages: Iterable[CrawledPage],
        content_store: PageContentStore,
        path: str | Path,
    ) -> dict[str, WarcRecordPosition]:
        """Write `path` (gzip) and return record positions keyed by URL."""

        out_path = Path(path)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryFile() as raw:
                positions = self.write_uncompressed(pages, content_store, raw)
                raw.seek(0)
                with gzip.open(out_path, "wb") as compressed:
                    shutil.copyfileobj(raw, compressed)
        except OSError as exc:
            raise ArchiveBuildError(f"Failed to write WARC file {out_path}: {exc}") from exc

        LOGGER.info("Wrote %d response record(s) to %s", len(positions), out_path)
        return positions

    def write_uncompressed(
        self,
        pages: Iterable[CrawledPage],
        content_store: PageContentStore,
        stream: IO[bytes],
    ) -> dict[str, WarcRecordPosition]:
        """Write records to a seekable binary stream, measuring each one."""

        writer = WARCWriter(stream, gzip=False, warc_version=WARC_VERSION)
        writer.write_record(
            writer.create_warcinfo_record(
                WARC_FILENAME,
                {
                    "software": self.software,
                    "created": format_timestamp(utc_now()),
                    "operator": self.operator,
                    "format": "WARC File Format 1.1",
                },
            )
        )

        positions: dict[str, WarcRecordPosition] = {}
        for page in pages:
            if not page.ok or page.url in positions:
                continue
            content = content_store.get(page.url)
            if content is None:
                continue

            record = writer.create_warc_record(
                page.url,
                "response",
                payload=BytesIO(content.content),
                warc_headers_dict={"WARC-Date": format_timestamp(page.crawled_at)},
                http_headers=http_headers_for(content, page),
            )

            offset = stream.tell()
            writer.write_record(record)
            end = stream.tell()

            stream.seek(offset)
            record_bytes = stream.read(end - offset)
            stream.seek(end)

            positions[page.url] = WarcRecordPosition(
                url=page.url,
                offset=offset,
                length=end - offset,
                record_digest="sha256:" + hashlib.sha256(record_bytes).hexdigest(),
            )
        return positions


__all__ = ["WarcWriter", "http_headers_for"]
