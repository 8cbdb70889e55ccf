"""Archive pipeline: WARC, then CDX and pages, then descriptor, then ZIP."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Sequence

from ..config import AppConfig
from ..constants import CDX_FILENAME, DATAPACKAGE_FILENAME, PAGES_FILENAME, WARC_FILENAME
from ..types import CrawledPage, CrawlRequest, utc_now
from .cdx_indexer import CdxIndexer
from .datapackage import DatapackageBuilder
from .packager import ZipPackager
from .page_content import PageContentStore
from .pages_writer import PagesWriter
from .warc_writer import WarcWriter

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BuiltArchive:
    path: Path
    size: int
    record_count: int
    page_count: int


class ArchiveBuilder:
    """Turn a finished crawl into a `.wacz` file.

    Every stage error propagates to the caller; the scratch directory is
    removed whether or not the build succeeds.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        packager: ZipPackager | None = None,
        warc_writer: WarcWriter | None = None,
        cdx_indexer: CdxIndexer | None = None,
        pages_writer: PagesWriter | None = None,
        datapackage: DatapackageBuilder | None = None,
    ) -> None:
        self.config = config
        self.packager = packager or ZipPackager(config.output_dir, config.temp_root)
        self.warc_writer = warc_writer or WarcWriter(
            software=config.software,
            operator=config.operator,
        )
        self.cdx_indexer = cdx_indexer or CdxIndexer()
        self.pages_writer = pages_writer or PagesWriter()
        self.datapackage = datapackage or DatapackageBuilder(software=config.software)

    def build(
        self,
        request: CrawlRequest,
        pages: Sequence[CrawledPage],
        content_store: PageContentStore,
    ) -> BuiltArchive:
        content_store.merge_from_pages(pages)
        try:
            with self.packager.workspace(request.id) as root:
                positions = self.warc_writer.write(
                    pages,
                    content_store,
                    root / "archive" / WARC_FILENAME,
                )
                self.cdx_indexer.write(
                    pages,
                    positions,
                    content_store,
                    root / "indexes" / CDX_FILENAME,
                )
                page_count = self.pages_writer.write(
                    pages,
                    content_store,
                    root / "pages" / PAGES_FILENAME,
                )
                self.datapackage.write_descriptor(
                    root,
                    title=request.title,
                    created=request.created_at,
                    modified=utc_now(),
                )
                self.datapackage.write_digest(root)
                LOGGER.debug("Descriptor written to %s", root / DATAPACKAGE_FILENAME)

                path = self.packager.package(root, title=request.title, request_id=request.id)
        finally:
            content_store.clear()

        return BuiltArchive(
            path=path,
            size=path.stat().st_size,
            record_count=len(positions),
            page_count=page_count,
        )


__all__ = ["ArchiveBuilder", "BuiltArchive"]
