"""Exception hierarchy for crawl and archive processing.

Fetch failures never raise: they are recorded on the page as `error_message`.
Undecodable manifest text raises EncodingError and is replaced, not fatal.
Archive-stage errors are fatal to the request that raised them.

Hierarchy::

    WaczError
    ├── EncodingError
    ├── PersistenceError
    ├── ArchiveBuildError
    │   └── SigningError
    ├── ZeroPagesError
    ├── InvalidRequestError
    └── RequestNotFoundError
"""

from __future__ import annotations


class WaczError(Exception):
    """Base class for all waczgen errors."""


class EncodingError(WaczError):
    """Raised when text cannot be represented as UTF-8."""


class PersistenceError(WaczError):
    """Raised when the request/page store cannot save or load a record."""


class ArchiveBuildError(WaczError):
    """Raised when an archive artifact cannot be written."""


class SigningError(ArchiveBuildError):
    """Raised when key generation or signing of the package digest fails."""


class ZeroPagesError(WaczError):
    """Raised when a crawl captured nothing that can be archived."""


class InvalidRequestError(WaczError, ValueError):
    """Raised when a crawl request fails validation."""


class RequestNotFoundError(WaczError, KeyError):
    """Raised when a request id is unknown to the store."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Request not found"


__all__ = [
    "ArchiveBuildError",
    "EncodingError",
    "InvalidRequestError",
    "PersistenceError",
    "RequestNotFoundError",
    "SigningError",
    "WaczError",
    "ZeroPagesError",
]
