"""Shared defaults and fixed format constants."""

from __future__ import annotations

# Request limits.
MIN_MAX_DEPTH = 1
MAX_MAX_DEPTH = 10
DEFAULT_MAX_DEPTH = 10

MIN_MAX_PAGES = 1
MAX_MAX_PAGES = 10000
DEFAULT_MAX_PAGES = 100

MIN_CRAWL_DELAY_MS = 500
MAX_CRAWL_DELAY_MS = 30000
DEFAULT_CRAWL_DELAY_MS = 1000

MAX_URL_LENGTH = 2000
MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
EXCLUDE_PATTERN_REGEX = r"^[a-zA-Z0-9*/\-_.]+$"

# Fetching.
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_STYLESHEET_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
DEFAULT_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# Page metadata.
MAX_PAGE_TITLE_CHARS = 500
MAX_EXTRACTED_TEXT_CHARS = 10000

# Lease handling.
DEFAULT_STUCK_THRESHOLD_MINUTES = 30

# Archive format.
WACZ_VERSION = "1.1.1"
DEFAULT_SOFTWARE = "waczgen 0.1.0"
DEFAULT_OPERATOR = "WACZ Generator"
WARC_FILENAME = "data.warc.gz"
CDX_FILENAME = "index.cdx"
PAGES_FILENAME = "pages.jsonl"
DATAPACKAGE_FILENAME = "datapackage.json"
DIGEST_FILENAME = "datapackage-digest.json"
ARCHIVE_SUBDIRS = ("archive", "indexes", "pages")
PAGES_HEADER = {
    "format": "json-pages-1.0",
    "id": "pages",
    "title": "All Pages",
    "hasText": True,
}
PAGE_ID_LENGTH = 22

# Local layout.
DEFAULT_OUTPUT_DIR = "wacz_output"
DEFAULT_STORE_DIR = "wacz_store"
JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
