"""Tests for URL mapping, rewrite rules and the page transformer."""

from __future__ import annotations

import logging

import pytest

from sitepress.config.loader import SiteSettings
from sitepress.transform import ContentKind, Transformer, classify_content, url_to_path
from sitepress.transform.links import extract_internal_links
from sitepress.transform.rewrite import (
    make_root_relative,
    origin_variants,
    remove_archive_links,
    rewrite_asset,
    rewrite_style_blocks,
    strip_dynamic_markup,
)

ORIGINS = origin_variants("https://example.com")


@pytest.fixture
def transformer():
    return Transformer(SiteSettings(site_url="https://example.com"), logging.getLogger("tests.transform"))


class TestUrlToPath:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/", "index.html"),
            ("https://example.com", "index.html"),
            ("https://example.com/about/", "about/index.html"),
            ("https://example.com/feed/", "feed/index.xml"),
            ("https://example.com/blog/feed", "blog/feed/index.xml"),
            ("https://example.com/feed/atom/", "feed/atom/index.xml"),
            ("https://example.com/rss", "rss/index.xml"),
            ("https://example.com/sitemap.xml", "sitemap.xml"),
            ("https://example.com/wp-content/a.CSS", "wp-content/a.CSS"),
            ("https://example.com/feedback/", "feedback/index.html"),
            ("https://example.com/2024/05/", "2024/05/index.html"),
        ],
    )
    def test_mapping(self, url, expected):
        assert url_to_path(url) == expected

    def test_trailing_slash_and_query_share_a_target(self):
        paths = {
            url_to_path("https://example.com/post/"),
            url_to_path("https://example.com/post"),
            url_to_path("https://example.com/post?x=1"),
            url_to_path("https://example.com/post/#comments"),
        }
        assert paths == {"post/index.html"}

    @pytest.mark.parametrize(
        "url",
        ["", "/", "?", "#", "http://[::1", "https://example.com/../../etc/passwd", "..", "//"],
    )
    def test_total_and_never_empty(self, url):
        path = url_to_path(url)
        assert path
        assert not path.startswith("/")
        assert ".." not in path.split("/")


class TestRewrite:
    def test_origin_variants_cover_both_schemes_longest_first(self):
        variants = origin_variants("http://example.com/", "https://example.com/blog")

        assert set(variants) == {
            "https://example.com",
            "http://example.com",
            "https://example.com/blog",
            "http://example.com/blog",
        }
        assert len(variants[0]) >= len(variants[-1])

    def test_make_root_relative(self):
        html = (
            '<a href="https://example.com/about/">About</a>'
            '<a href="http://example.com">Home</a>'
            '<img src="https://example.com//img/a.png">'
            '<a href="https://other.org/x">Other</a>'
        )

        assert make_root_relative(html, ORIGINS) == (
            '<a href="/about/">About</a>'
            '<a href="/">Home</a>'
            '<img src="/img/a.png">'
            '<a href="https://other.org/x">Other</a>'
        )

    def test_lookalike_hosts_untouched(self):
        html = '<a href="https://example.com.evil.org/">x</a> https://example.community/'

        assert make_root_relative(html, ORIGINS) == html

    def test_scheme_prefix_and_protocol_relative_untouched(self):
        text = 'src="//cdn.example.net/x.js" href="https://example.com/a" // comment'

        assert make_root_relative(text, ORIGINS) == 'src="//cdn.example.net/x.js" href="/a" // comment'

    def test_rewrite_is_idempotent(self):
        html = '<a href="https://example.com/a/">a</a><link href="http://example.com/s.css">'

        once = make_root_relative(html, ORIGINS)
        assert make_root_relative(once, ORIGINS) == once

    def test_style_blocks(self):
        html = (
            "<style media=\"all\">.a{background:url('https://example.com/img/a.png')}"
            ".b{background:url(data:image/png;base64,AAAA)}"
            ".c{background:url(#frag)}"
            '.d{background:url("https://cdn.other.org/d.png")}</style>'
        )

        assert rewrite_style_blocks(html, ORIGINS) == (
            "<style media=\"all\">.a{background:url('/img/a.png')}"
            ".b{background:url(data:image/png;base64,AAAA)}"
            ".c{background:url(#frag)}"
            '.d{background:url("https://cdn.other.org/d.png")}</style>'
        )

    def test_strip_dynamic_markup(self):
        html = (
            '<form><input type="hidden" name="_wpnonce" value="abc" />'
            '<input type="hidden" name="_wp_http_referer" value="/x" />'
            '<input type="text" name="q"></form>'
            '<link rel="https://api.w.org/" href="/wp-json/">'
            '<link rel="alternate" type="application/json+oembed" href="/o">'
            '<link rel="alternate" type="text/xml+oembed" href="/o">'
            '<link rel="stylesheet" href="/s.css">'
        )

        assert strip_dynamic_markup(html) == (
            '<form><input type="text" name="q"></form><link rel="stylesheet" href="/s.css">'
        )

    def test_remove_archive_links(self):
        html = (
            '<a href="/tag/news/" rel="tag">news</a>'
            '<a href="/2024/05/">May 2024</a>'
            '<a href="/author/bob/">Bob</a>'
            '<a href="/about/">About</a>'
        )

        result = remove_archive_links(html, tag_archive=False, date_archive=False, author_archive=False)

        assert result == "<span>May 2024</span><span>Bob</span><a href=\"/about/\">About</a>"
        assert remove_archive_links(html, tag_archive=True, date_archive=True, author_archive=True) == html

    def test_rewrite_css_asset_keeps_quotes(self):
        css = "body{background:url(\"https://example.com/a.png\")}\n@import 'https://example.com/b.css';"

        assert rewrite_asset(css, "css", ORIGINS) == "body{background:url(\"/a.png\")}\n@import '/b.css';"

    def test_rewrite_js_asset_neutralizes_endpoints(self):
        js = 'var u="https://example.com/wp-admin/admin-ajax.php";fetch("/wp-json/wp/v2/posts")'

        assert rewrite_asset(js, "js", ORIGINS) == 'var u="#";fetch("#")'


class TestClassify:
    @pytest.mark.parametrize(
        "url,body,content_type,expected",
        [
            ("https://example.com/feed/", b"<rss></rss>", "application/rss+xml", ContentKind.XML),
            ("https://example.com/sitemap.xml", b"<urlset/>", None, ContentKind.XML),
            ("https://example.com/x/", b'<?xml version="1.0"?><a/>', "text/html", ContentKind.XML),
            ("https://example.com/", b"<!DOCTYPE html><html>", "text/html; charset=UTF-8", ContentKind.HTML),
            ("https://example.com/feedback/", b"<html></html>", "text/html", ContentKind.HTML),
            ("https://example.com/about/", b"<html></html>", None, ContentKind.HTML),
            ("https://example.com/logo.png", b"\x89PNG", "image/png", ContentKind.OTHER),
            ("https://example.com/data.json", b"{}", None, ContentKind.OTHER),
        ],
    )
    def test_classify(self, url, body, content_type, expected):
        assert classify_content(url, body, content_type) is expected


class TestTransformer:
    def test_html_page(self, transformer):
        body = (
            b'<html><head><link rel="https://api.w.org/" href="https://example.com/wp-json/"></head>'
            b'<body><a href="https://example.com/about/">About</a></body></html>'
        )

        result = transformer.transform("https://example.com/", body, ContentKind.HTML)

        assert result.path == "index.html"
        assert result.content == b'<html><head></head><body><a href="/about/">About</a></body></html>'
        assert result.warnings == []

    def test_xml_only_rewrites_origins(self, transformer):
        body = b'<?xml version="1.0"?><rss><link>https://example.com/post/</link><x name="_wpnonce"/></rss>'

        result = transformer.transform("https://example.com/feed/", body, ContentKind.XML)

        assert result.path == "feed/index.xml"
        assert result.content == b'<?xml version="1.0"?><rss><link>/post/</link><x name="_wpnonce"/></rss>'

    def test_other_content_passes_through(self, transformer):
        body = b"\x89PNG https://example.com/"

        result = transformer.transform("https://example.com/logo.png", body, ContentKind.OTHER)

        assert result.content == body
        assert result.path == "logo.png"

    def test_absolute_mode_keeps_origins(self):
        site = SiteSettings(site_url="https://example.com", url_mode="absolute")
        transformer = Transformer(site, logging.getLogger("tests.transform"))
        body = b'<html><body><a href="https://example.com/a/">a</a><input name="_wpnonce" value="1"></body></html>'

        result = transformer.transform("https://example.com/", body, ContentKind.HTML)

        assert result.content == b'<html><body><a href="https://example.com/a/">a</a></body></html>'

    def test_invalid_utf8_round_trips(self, transformer):
        body = b"<html><body>\xff\xfe caf\xc3\xa9</body></html>"

        result = transformer.transform("https://example.com/", body, ContentKind.HTML)

        assert result.content == body

    def test_warnings_are_reported_not_raised(self, transformer):
        nonce = b'<input type="hidden" name="_wpnonce" value="0123456789">'
        body = b"<html><body>" + nonce * 100 + b"</body></html>"

        shrunk = transformer.transform("https://example.com/", body, ContentKind.HTML)
        assert any("shrank" in warning for warning in shrunk.warnings)

        broken = transformer.transform("https://example.com/", b"<div>fragment</div>", ContentKind.HTML)
        assert broken.content == b"<div>fragment</div>"
        assert any("Incomplete" in warning for warning in broken.warnings)

    def test_transform_asset(self, transformer):
        assert transformer.transform_asset(b"a{b:url(https://example.com/x.png)}", "css") == b"a{b:url(/x.png)}"
        assert transformer.transform_asset(b"https://example.com/x.png", ".txt") == b"https://example.com/x.png"


def test_extract_internal_links():
    html = (
        '<a href="/about/">About</a>'
        '<a href="https://example.com/about/#team">Team</a>'
        '<a href="post/">Relative</a>'
        '<a href="https://other.org/">Other</a>'
        '<a href="mailto:me@example.com">Mail</a>'
        '<a href="#top">Top</a>'
        '<a href="http://[::1">Broken</a>'
    )

    links = extract_internal_links(html, "https://example.com/blog/", {"example.com"})

    assert links == ["https://example.com/about/", "https://example.com/blog/post/"]
