from __future__ import annotations

from conftest import HOME_HTML, STYLE_CSS, make_session

from waczgen.extraction import (
    CssStrategy,
    HtmlLinkStrategy,
    ImageStrategy,
    JavaScriptStrategy,
    LinkExtractor,
    background_images_in_css,
    dedupe_links,
)
from waczgen.fetcher import Fetcher
from waczgen.types import CrawledPage, CrawlOptions, ExtractedLink, ResourceType

BASE = "https://example.com"


def _page(url: str = "https://example.com/", depth: int = 0) -> CrawledPage:
    return CrawledPage(url=url, depth=depth, content_type="text/html; charset=utf-8")


def _urls(links):
    return [link.url for link in links]


def test_html_links_are_one_level_deeper_and_in_scope():
    links = HtmlLinkStrategy().extract(HOME_HTML.decode(), _page(depth=2), BASE, False)

    assert _urls(links) == ["https://example.com/about", "https://example.com/contact"]
    assert all(link.depth == 3 for link in links)
    assert all(link.type == ResourceType.LINK for link in links)


def test_html_links_follow_external_when_enabled():
    links = HtmlLinkStrategy().extract(HOME_HTML.decode(), _page(), BASE, True)
    assert "https://other.org/x" in _urls(links)


def test_subresource_strategies_keep_page_depth():
    html = HOME_HTML.decode()
    page = _page(depth=1)

    images = ImageStrategy().extract(html, page, BASE, False)
    assert _urls(images) == ["https://example.com/logo.png", "https://example.com/bg.png"]
    assert [link.type for link in images] == [ResourceType.IMAGE, ResourceType.BACKGROUND_IMAGE]
    assert {link.depth for link in images} == {1}

    css = CssStrategy().extract(html, page, BASE, False)
    assert _urls(css) == ["https://example.com/style.css"]
    assert css[0].type == ResourceType.CSS and css[0].depth == 1

    scripts = JavaScriptStrategy().extract(html, page, BASE, False)
    assert _urls(scripts) == ["https://example.com/app.js"]
    assert scripts[0].depth == 1


def test_style_blocks_are_mined_for_background_images():
    html = (
        "<html><head><style>"
        ".a { background-image: url(\"/one.png\"); }"
        ".b { background: no-repeat url(two.jpg) center; }"
        ".c { background-image: url(data:image/png;base64,AAAA); }"
        "</style></head><body></body></html>"
    )
    links = ImageStrategy().extract(html, _page(), BASE, False)
    assert _urls(links) == ["https://example.com/one.png", "https://example.com/two.jpg"]


def test_background_images_in_css():
    assert background_images_in_css(STYLE_CSS.decode()) == ["/img/hero.jpg"]


def test_strategy_errors_yield_no_links(monkeypatch):
    strategy = HtmlLinkStrategy()

    def _boom(_content):
        raise RuntimeError("parser exploded")

    monkeypatch.setattr(strategy, "_candidates", _boom)
    assert strategy.extract("<a href='/x'>", _page(), BASE, False) == []


def test_dedupe_links_keeps_first_occurrence():
    links = [
        ExtractedLink("https://example.com/a", ResourceType.CSS, 0),
        ExtractedLink("https://example.com/a", ResourceType.LINK, 1),
        ExtractedLink("https://example.com/b", ResourceType.LINK, 1),
    ]
    deduped = dedupe_links(links)
    assert _urls(deduped) == ["https://example.com/a", "https://example.com/b"]
    assert deduped[0].type == ResourceType.CSS


def test_extractor_runs_selected_strategies_and_mines_stylesheets(app_config):
    session = make_session(
        {"https://example.com/style.css": {"body": STYLE_CSS, "content_type": "text/css"}}
    )
    extractor = LinkExtractor(Fetcher(app_config, session=session))

    links = extractor.extract_links_from_page(_page(), HOME_HTML, CrawlOptions())

    assert _urls(links) == [
        "https://example.com/logo.png",
        "https://example.com/bg.png",
        "https://example.com/style.css",
        "https://example.com/app.js",
        "https://example.com/about",
        "https://example.com/contact",
        "https://example.com/img/hero.jpg",
    ]
    hero = links[-1]
    assert hero.type == ResourceType.BACKGROUND_IMAGE
    assert hero.depth == 0
    session.get.assert_called_once()


def test_extractor_honors_option_flags(app_config):
    session = make_session({})
    extractor = LinkExtractor(Fetcher(app_config, session=session))
    options = CrawlOptions(include_images=False, include_css=False, include_js=False)

    links = extractor.extract_links_from_page(_page(), HOME_HTML, options)

    assert _urls(links) == ["https://example.com/about", "https://example.com/contact"]
    session.get.assert_not_called()


def test_extractor_skips_unreachable_stylesheets(app_config):
    extractor = LinkExtractor(Fetcher(app_config, session=make_session({})))
    links = extractor.extract_links_from_page(_page(), HOME_HTML, CrawlOptions())
    assert "https://example.com/img/hero.jpg" not in _urls(links)
    assert "https://example.com/style.css" in _urls(links)


def test_selected_strategies_follow_options_in_registry_order():
    extractor = LinkExtractor()

    every = [strategy.name for strategy in extractor.selected_strategies(CrawlOptions())]
    links_only = extractor.selected_strategies(
        CrawlOptions(include_images=False, include_css=False, include_js=False)
    )
    no_css = extractor.selected_strategies(CrawlOptions(include_css=False))

    assert every == ["images", "css", "javascript", "html_links"]
    assert [strategy.name for strategy in links_only] == ["html_links"]
    assert [strategy.name for strategy in no_css] == ["images", "javascript", "html_links"]
