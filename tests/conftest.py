from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping
from unittest import mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from waczgen.config import AppConfig
from waczgen.fetcher import Fetcher

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

HOME_HTML = b"""<!DOCTYPE html>
<html>
<head>
  <title>Example Domain</title>
  <link rel="stylesheet" href="/style.css">
  <script src="/app.js"></script>
  <style>.x { color: red; }</style>
</head>
<body>
  <h1>Example Domain</h1>
  <p>This domain is for use in illustrative examples.</p>
  <img src="/logo.png" alt="logo">
  <div style="background-image: url('/bg.png')">banner</div>
  <a href="/about">About</a>
  <a href="contact">Contact</a>
  <a href="#top">Top</a>
  <a href="mailto:info@example.com">Mail</a>
  <a href="https://other.org/x">Elsewhere</a>
  <script>var hidden = "not text";</script>
</body>
</html>
"""

ABOUT_HTML = b"""<html><head><title>About us</title></head>
<body><p>About page</p><a href="/">Home</a><a href="/about/team">Team</a></body></html>
"""

STYLE_CSS = b".hero { background: #fff url(/img/hero.jpg) no-repeat; }\n"
APP_JS = b"console.log('hello');\n"


def make_response(
    url: str,
    status: int = 200,
    body: bytes = b"",
    content_type: str | None = "text/html; charset=utf-8",
    headers: Mapping[str, str] | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = body
    response.url = url
    merged: dict[str, str] = {}
    if content_type is not None:
        merged["Content-Type"] = content_type
    merged.update(headers or {})
    response.headers = CaseInsensitiveDict(merged)
    return response


Route = Any


def make_session(routes: Mapping[str, Route]) -> mock.Mock:
    """Mock `requests.Session` whose `get` serves canned responses.

    A route is a dict of `make_response` kwargs, an exception instance to
    raise, or missing (raises ConnectionError).
    """

    def _get(url: str, **_kwargs: Any) -> requests.Response:
        route = routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"Failed to resolve host for {url}")
        if isinstance(route, Exception):
            raise route
        return make_response(url, **route)

    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = _get
    return session


def example_routes() -> dict[str, Route]:
    return {
        "https://example.com/": {"body": HOME_HTML},
        "https://example.com/about": {"body": ABOUT_HTML},
        "https://example.com/about/team": {"body": b"<html><title>Team</title></html>"},
        "https://example.com/contact": {"status": 404, "body": b"not found"},
        "https://example.com/style.css": {"body": STYLE_CSS, "content_type": "text/css"},
        "https://example.com/app.js": {
            "body": APP_JS,
            "content_type": "application/javascript",
        },
        "https://example.com/logo.png": {"body": PNG_BYTES, "content_type": "image/png"},
        "https://example.com/bg.png": {"body": PNG_BYTES, "content_type": "image/png"},
        "https://example.com/img/hero.jpg": {"body": PNG_BYTES, "content_type": "image/jpeg"},
    }


@pytest.fixture
def site_session() -> mock.Mock:
    return make_session(example_routes())


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        output_dir=tmp_path / "output",
        store_dir=tmp_path / "store",
        temp_dir=tmp_path / "tmp",
    )


@pytest.fixture
def fetcher_factory(app_config: AppConfig) -> Callable[[mock.Mock], Fetcher]:
    def _factory(session: mock.Mock) -> Fetcher:
        return Fetcher(app_config, session=session)

    return _factory
