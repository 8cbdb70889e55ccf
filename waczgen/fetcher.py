"""HTTP fetching with a shared requests session and fixed timeouts."""

from __future__ import annotations

import logging
import time

import requests

from .config import AppConfig
from .types import FetchResult

LOGGER = logging.getLogger(__name__)


class Fetcher:
    """Fetch URLs with one `requests.Session`.

    Fetch failures never raise: transport errors are reported on
    `FetchResult.error` as `"<ExceptionClass>: <message>"` and HTTP errors
    through `FetchResult.status_code`.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self._session = session
        self._owns_session = session is None
        self._closed = False

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def fetch(
        self,
        url: str,
        *,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> FetchResult:
        """GET one URL with the request-scoped user agent."""

        if self._closed:
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="Fetcher is closed",
            )

        started = time.perf_counter()
        try:
            response = self.session.get(
                url,
                headers=self.config.headers_for(user_agent),
                timeout=timeout or self.config.fetch_timeout_seconds,
                allow_redirects=True,
            )
            elapsed_ms = int((time.perf_counter() - started) * 1000)

            body = response.content if response.content is not None else b""
            headers = {str(key): str(value) for key, value in response.headers.items()}
            LOGGER.debug(
                "GET %s -> %s (%d bytes, %d ms)",
                url,
                response.status_code,
                len(body),
                elapsed_ms,
            )
            return FetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
                body=body,
                headers=headers,
                elapsed_ms=elapsed_ms,
                error=None,
            )
        except requests.RequestException as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            LOGGER.debug("GET %s failed: %s", url, exc)
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=elapsed_ms,
                error=f"{exc.__class__.__name__}: {exc}",
            )

    def close(self) -> None:
        """Close the underlying session when this fetcher created it."""

        self._closed = True
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["Fetcher"]
