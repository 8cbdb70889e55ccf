from __future__ import annotations

import pytest

from waczgen.url import (
    get_base_url,
    has_invalid_protocol,
    host_from_url,
    is_valid_url,
    normalize_url,
    resolve_url,
    surt,
)


def test_surt_reverses_host_labels():
    assert surt("https://a.b.com/x?y") == "com,b,a)/x?y"


def test_surt_keeps_port_and_fragment():
    assert surt("http://Example.com:8080/Path#frag") == "com,example:8080)/path#frag"
    assert surt("https://example.com") == "com,example)/"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("HTTPS://Example.COM/Path?q=1#section", "https://example.com/Path?q=1"),
        ("https://example.com", "https://example.com/"),
        ("http://user:pw@example.com:8080/a", "http://user:pw@example.com:8080/a"),
        ("https://example.com/a/b/?x=1&y=2", "https://example.com/a/b/?x=1&y=2"),
    ],
)
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "HTTPS://Example.COM/Path?q=1#section",
        "https://example.com",
        "http://[::1]:8000/x",
        "https://example.com/a%20b",
        "not a url",
        "/relative/path",
    ],
)
def test_normalize_url_is_idempotent(url):
    once = normalize_url(url)
    assert normalize_url(once) == once


@pytest.mark.parametrize(
    "url",
    ["javascript:void(0)", "mailto:a@b.c", "data:text/plain,hi", "tel:+100", ""],
)
def test_normalize_url_leaves_unfetchable_schemes_unchanged(url):
    assert normalize_url(url) == url


def test_normalize_url_does_not_raise_on_bad_port():
    assert normalize_url("http://example.com:99999/") == "http://example.com:99999/"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://other.org/x", "https://other.org/x"),
        ("//cdn.example.com/lib.js", "https://cdn.example.com/lib.js"),
        ("/root.html", "https://example.com/root.html"),
        ("sibling.html", "https://example.com/dir/sibling.html"),
        ("../up.html", "https://example.com/up.html"),
        ("#anchor", "#anchor"),
        ("javascript:void(0)", "javascript:void(0)"),
    ],
)
def test_resolve_url(raw, expected):
    assert resolve_url(raw, "https://example.com/dir/page.html") == expected


def test_resolve_url_with_unparsable_base_returns_input():
    assert resolve_url("page.html", "not a base") == "page.html"
    assert resolve_url("page.html", "http://example.com:bad/") == "page.html"


def test_is_valid_url_rules():
    base = "https://example.com"
    assert is_valid_url("https://example.com/a", base)
    assert not is_valid_url("https://other.org/a", base)
    assert is_valid_url("https://other.org/a", base, follow_external=True)
    assert not is_valid_url("ftp://example.com/file", base)
    assert not is_valid_url("mailto:someone@example.com", base)
    assert not is_valid_url("https://example.com/a#frag", base)
    assert not is_valid_url("https://example.com/a b", base)
    assert not is_valid_url("", base)


def test_host_and_base_helpers():
    assert host_from_url("https://WWW.Example.com:8443/x") == "www.example.com"
    assert get_base_url("https://Example.com:8443/x?y") == "https://example.com:8443"
    assert get_base_url("/relative") == ""
    assert has_invalid_protocol("  JavaScript:alert(1)")
