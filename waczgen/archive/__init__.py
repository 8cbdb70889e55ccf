"""Archive generation package exports."""

from .builder import ArchiveBuilder, BuiltArchive
from .cdx_indexer import CdxIndexer
from .datapackage import DatapackageBuilder, sha256_file, verify_digest
from .packager import ZipPackager, archive_filename
from .page_content import PageContent, PageContentStore
from .pages_writer import PagesWriter, new_page_id
from .warc_writer import WarcWriter

__all__ = [
    "ArchiveBuilder",
    "BuiltArchive",
    "CdxIndexer",
    "DatapackageBuilder",
    "PageContent",
    "PageContentStore",
    "PagesWriter",
    "WarcWriter",
    "ZipPackager",
    "archive_filename",
    "new_page_id",
    "sha256_file",
    "verify_digest",
]
