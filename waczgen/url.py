"""URL normalization, resolution, validation and SURT key helpers.

None of these helpers raise on malformed input: URLs that cannot be parsed
come back unchanged (or are reported invalid) so callers can filter them.
"""

from __future__ import annotations

import re
from urllib.parse import SplitResult, urljoin, urlsplit


INVALID_PROTOCOLS = (
    "javascript:",
    "tel:",
    "mailto:",
    "ftp:",
    "file:",
    "data:",
    "blob:",
    "about:",
)
VOID_PATTERNS = ("void(0)", "return false")
DEFAULT_ALLOWED_SCHEMES = ("http", "https")

_ABSOLUTE_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s")


def has_invalid_protocol(url: str) -> bool:
    """Return True for URLs with a scheme that is never fetched."""

    return (url or "").strip().lower().startswith(INVALID_PROTOCOLS)


def _split(url: str) -> SplitResult | None:
    try:
        parsed = urlsplit(url)
        # Accessing the port validates it.
        parsed.port
    except ValueError:
        return None
    return parsed


def _format_host(host: str) -> str:
    return f"[{host}]" if ":" in host else host


def _authority(parsed: SplitResult, *, include_userinfo: bool) -> str:
    host = _format_host(parsed.hostname or "")
    userinfo = ""
    if include_userinfo and parsed.username:
        userinfo = parsed.username
        if parsed.password:
            userinfo += ":" + parsed.password
        userinfo += "@"
    port = f":{parsed.port}" if parsed.port is not None else ""
    return f"{userinfo}{host}{port}"


def normalize_url(url: str) -> str:
    """Canonicalize an absolute URL for dedup and frontier consistency.

    Drops the fragment and rebuilds the URL from its components in canonical
    order: scheme, userinfo, host, port, path, query. Scheme and host are
    lowercased and an empty path becomes `/`. Non-fetchable schemes and
    unparsable or relative inputs are returned unchanged.
    """

    if not url or has_invalid_protocol(url):
        return url

    parsed = _split(url)
    if parsed is None or not parsed.scheme or not parsed.hostname:
        return url

    path = parsed.path or "/"
    normalized = f"{parsed.scheme.lower()}://{_authority(parsed, include_userinfo=True)}{path}"
    if parsed.query:
        normalized += "?" + parsed.query
    return normalized


def get_base_url(url: str) -> str:
    """Return `scheme://host[:port]` for a URL, or an empty string."""

    parsed = _split(url or "")
    if parsed is None or not parsed.scheme or not parsed.hostname:
        return ""
    return f"{parsed.scheme.lower()}://{_authority(parsed, include_userinfo=False)}"


def host_from_url(url: str) -> str:
    """Extract the lowercased host from a URL."""

    parsed = _split(url or "")
    if parsed is None:
        return ""
    return (parsed.hostname or "").lower()


def resolve_url(url: str, base_url: str) -> str:
    """Resolve a possibly relative reference against `base_url`.

    Handles absolute http(s) URLs, protocol-relative `//host/...`, absolute
    paths and relative paths. Anchors, void links and non-fetchable schemes
    are returned as-is, as is everything when the base cannot be parsed.
    """

    candidate = (url or "").strip()
    if not candidate or candidate == "#" or candidate.startswith("#"):
        return url
    if has_invalid_protocol(candidate):
        return url
    if any(pattern in candidate.lower() for pattern in VOID_PATTERNS):
        return url
    if _ABSOLUTE_HTTP_RE.match(candidate):
        return candidate

    base = _split(base_url or "")
    if base is None or not base.scheme or not base.hostname:
        return url

    if candidate.startswith("//"):
        return f"{base.scheme}:{candidate}"
    if candidate.startswith("/"):
        return get_base_url(base_url) + candidate
    return urljoin(base_url, candidate)


def is_valid_url(url: str, base_url: str, follow_external: bool = False) -> bool:
    """Return True when a resolved URL is crawlable from `base_url`."""

    if not url or has_invalid_protocol(url):
        return False
    lowered = url.lower()
    if "#" in url or any(pattern in lowered for pattern in VOID_PATTERNS):
        return False
    if _WHITESPACE_RE.search(url):
        return False

    parsed = _split(url)
    if parsed is None or not parsed.hostname:
        return False
    if parsed.scheme.lower() not in DEFAULT_ALLOWED_SCHEMES:
        return False

    if not follow_external:
        base_host = host_from_url(base_url)
        if not base_host or parsed.hostname.lower() != base_host:
            return False
    return True


def surt(url: str) -> str:
    """Return the Sort-friendly URI Reordering Transform key of a URL.

    >>> surt("https://a.b.com/x?y")
    'com,b,a)/x?y'
    """

    lowered = (url or "").strip().lower()
    parsed = _split(lowered)
    if parsed is None or not parsed.hostname:
        return lowered

    key = ",".join(reversed(parsed.hostname.strip(".").split(".")))
    if parsed.port is not None:
        key += f":{parsed.port}"
    key += ")" + (parsed.path or "/")
    if parsed.query:
        key += "?" + parsed.query
    if parsed.fragment:
        key += "#" + parsed.fragment
    return key


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "INVALID_PROTOCOLS",
    "VOID_PATTERNS",
    "get_base_url",
    "has_invalid_protocol",
    "host_from_url",
    "is_valid_url",
    "normalize_url",
    "resolve_url",
    "surt",
]
