"""Typed application configuration and crawl request parsing.

`AppConfig` holds process-wide settings loaded from JSON/YAML. The request
helpers turn loosely-typed submission payloads into validated records.
"""

from __future__ import annotations

import json
import re
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_CRAWL_DELAY_MS,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_OPERATOR,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SOFTWARE,
    DEFAULT_STORE_DIR,
    DEFAULT_STUCK_THRESHOLD_MINUTES,
    DEFAULT_STYLESHEET_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    EXCLUDE_PATTERN_REGEX,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import InvalidRequestError
from .types import CrawlOptions, CrawlRequest, JSONDict

_EXCLUDE_PATTERN_RE = re.compile(EXCLUDE_PATTERN_REGEX)

OPTION_ALIASES: dict[str, str] = {
    "followExternalLinks": "follow_external_links",
    "includeImages": "include_images",
    "includeCSS": "include_css",
    "includeJS": "include_js",
    "excludeUrls": "exclude_urls",
    "excludePatterns": "exclude_patterns",
}

REQUEST_ALIASES: dict[str, str] = {
    "maxDepth": "max_depth",
    "maxPages": "max_pages",
    "crawlDelay": "crawl_delay_ms",
    "crawlDelayMs": "crawl_delay_ms",
    "userAgent": "user_agent",
}


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid int for '{key}': {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"Invalid bool for '{key}': {value!r}")


def _as_str_list(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.splitlines()
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError(f"Invalid list for '{key}': {value!r}")
    return tuple(item.strip() for item in items if item and item.strip())


def _canonical_keys(payload: Mapping[str, Any], aliases: Mapping[str, str]) -> dict[str, Any]:
    return {aliases.get(str(key), str(key)): value for key, value in payload.items()}


def options_from_dict(payload: Mapping[str, Any] | None) -> CrawlOptions:
    """Build CrawlOptions, rejecting unknown keys."""

    if not payload:
        return CrawlOptions()

    values = _canonical_keys(payload, OPTION_ALIASES)
    known = {item.name for item in fields(CrawlOptions)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise InvalidRequestError(f"Unknown crawl option(s): {', '.join(unknown)}")

    try:
        exclude_patterns = _as_str_list(values.get("exclude_patterns"), "exclude_patterns")
        for pattern in exclude_patterns:
            if not _EXCLUDE_PATTERN_RE.match(pattern):
                raise InvalidRequestError(f"Invalid exclude pattern: {pattern!r}")

        return CrawlOptions(
            follow_external_links=_as_bool(
                values.get("follow_external_links", False), "follow_external_links"
            ),
            include_images=_as_bool(values.get("include_images", True), "include_images"),
            include_css=_as_bool(values.get("include_css", True), "include_css"),
            include_js=_as_bool(values.get("include_js", True), "include_js"),
            exclude_urls=_as_str_list(values.get("exclude_urls"), "exclude_urls"),
            exclude_patterns=exclude_patterns,
        )
    except InvalidRequestError:
        raise
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc


def normalize_seed_url(url: str) -> str:
    """Prefix scheme-less seed URLs with https://."""

    candidate = (url or "").strip()
    if candidate and not re.match(r"^https?://", candidate, flags=re.IGNORECASE):
        candidate = "https://" + candidate
    return candidate


def request_from_dict(
    payload: Mapping[str, Any],
    *,
    default_user_agent: str = DEFAULT_USER_AGENT,
) -> CrawlRequest:
    """Validate a submission payload and build a pending CrawlRequest."""

    values = _canonical_keys(payload, REQUEST_ALIASES)
    if "url" not in values:
        raise InvalidRequestError("Request missing required key: 'url'")
    if "title" not in values:
        raise InvalidRequestError("Request missing required key: 'title'")

    try:
        return CrawlRequest(
            url=normalize_seed_url(str(values["url"])),
            title=str(values["title"]),
            description=(
                None if values.get("description") is None else str(values["description"])
            ),
            max_depth=_as_int(values.get("max_depth", DEFAULT_MAX_DEPTH), "max_depth"),
            max_pages=_as_int(values.get("max_pages", DEFAULT_MAX_PAGES), "max_pages"),
            crawl_delay_ms=_as_int(
                values.get("crawl_delay_ms", DEFAULT_CRAWL_DELAY_MS), "crawl_delay_ms"
            ),
            options=options_from_dict(values.get("options")),
            user_agent=str(values.get("user_agent") or default_user_agent),
        )
    except InvalidRequestError:
        raise
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc


@dataclass(slots=True)
class AppConfig:
    """Process-wide settings for crawling, archiving and storage."""

    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    store_dir: Path = Path(DEFAULT_STORE_DIR)
    temp_dir: Path | None = None

    software: str = DEFAULT_SOFTWARE
    operator: str = DEFAULT_OPERATOR

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    stylesheet_timeout_seconds: float = DEFAULT_STYLESHEET_TIMEOUT_SECONDS

    stuck_threshold_minutes: int = DEFAULT_STUCK_THRESHOLD_MINUTES
    show_progress: bool = False

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        self.store_dir = Path(self.store_dir)
        if self.temp_dir is not None:
            self.temp_dir = Path(self.temp_dir)

        if not self.software.strip():
            raise ValueError("software must be non-empty")
        if self.fetch_timeout_seconds <= 0:
            raise ValueError("fetch_timeout_seconds must be > 0")
        if self.stylesheet_timeout_seconds <= 0:
            raise ValueError("stylesheet_timeout_seconds must be > 0")
        if self.stuck_threshold_minutes <= 0:
            raise ValueError("stuck_threshold_minutes must be > 0")

    @property
    def temp_root(self) -> Path:
        """Directory that holds per-build scratch directories."""

        return self.temp_dir if self.temp_dir is not None else Path(tempfile.gettempdir())

    @property
    def logs_dir(self) -> Path:
        return self.output_dir / "logs"

    def headers_for(self, user_agent: str | None = None) -> dict[str, str]:
        """Return request headers with the request-scoped user agent applied."""

        merged: dict[str, str] = dict(self.default_headers)
        merged["User-Agent"] = user_agent or self.user_agent
        return merged

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "output_dir": str(self.output_dir),
            "store_dir": str(self.store_dir),
            "temp_dir": None if self.temp_dir is None else str(self.temp_dir),
            "software": self.software,
            "operator": self.operator,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
            "fetch_timeout_seconds": self.fetch_timeout_seconds,
            "stylesheet_timeout_seconds": self.stylesheet_timeout_seconds,
            "stuck_threshold_minutes": self.stuck_threshold_minutes,
            "show_progress": self.show_progress,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AppConfig":
        """Build config from a parsed dictionary."""

        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")

        temp_dir = payload.get("temp_dir")
        return cls(
            output_dir=Path(payload.get("output_dir", DEFAULT_OUTPUT_DIR)),
            store_dir=Path(payload.get("store_dir", DEFAULT_STORE_DIR)),
            temp_dir=None if temp_dir in (None, "") else Path(temp_dir),
            software=str(payload.get("software", DEFAULT_SOFTWARE)),
            operator=str(payload.get("operator", DEFAULT_OPERATOR)),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            fetch_timeout_seconds=_as_float(
                payload.get("fetch_timeout_seconds", DEFAULT_FETCH_TIMEOUT_SECONDS),
                "fetch_timeout_seconds",
            ),
            stylesheet_timeout_seconds=_as_float(
                payload.get("stylesheet_timeout_seconds", DEFAULT_STYLESHEET_TIMEOUT_SECONDS),
                "stylesheet_timeout_seconds",
            ),
            stuck_threshold_minutes=_as_int(
                payload.get("stuck_threshold_minutes", DEFAULT_STUCK_THRESHOLD_MINUTES),
                "stuck_threshold_minutes",
            ),
            show_progress=_as_bool(payload.get("show_progress", False), "show_progress"),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> AppConfig:
    """Load AppConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ValueError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ValueError(f"Config at {config_path} must be a mapping")

    return AppConfig.from_dict(payload)


def save_config(config: AppConfig, path: str | Path) -> None:
    """Save AppConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValueError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "AppConfig",
    "OPTION_ALIASES",
    "REQUEST_ALIASES",
    "load_config",
    "normalize_seed_url",
    "options_from_dict",
    "request_from_dict",
    "save_config",
]
