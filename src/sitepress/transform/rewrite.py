"""Regex rewrite rules applied to fetched pages and copied assets.

Every rule is a pure `str -> str` token scan, not a parser. Anything a rule does not match
is left byte-for-byte intact.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Literal

INERT_URL = "#"
ADMIN_AJAX_PATH = "/wp-admin/admin-ajax.php"

_STYLE_BLOCK = re.compile(r"<style([^>]*)>(.*?)</style>", re.IGNORECASE | re.DOTALL)
_CSS_URL = re.compile(r"""url\s*\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)
_CSS_IMPORT = re.compile(r"""@import\s+(['"])([^'")]+)\1""", re.IGNORECASE)
_API_ROOT = re.compile(r"""/wp-json/[^'"\s]*""", re.IGNORECASE)

_DYNAMIC_MARKUP = (
    re.compile(r"""<input[^>]*name=['"]_wpnonce['"][^>]*>""", re.IGNORECASE),
    re.compile(r"""<input[^>]*name=['"]_wp_http_referer['"][^>]*>""", re.IGNORECASE),
    re.compile(r"""<link[^>]*rel=['"]https://api\.w\.org/?['"][^>]*>""", re.IGNORECASE),
    re.compile(r"""<link[^>]*type=['"]application/json\+oembed['"][^>]*>""", re.IGNORECASE),
    re.compile(r"""<link[^>]*type=['"]text/xml\+oembed['"][^>]*>""", re.IGNORECASE),
)

_TAG_LINK = re.compile(r"""<a\s+[^>]*?rel=['"]tag['"][^>]*?>.*?</a>""", re.IGNORECASE | re.DOTALL)
_TAG_CONTAINER = re.compile(
    r"""<(div|span|ul)[^>]*?class=['"][^"']*\b(?:tags?|post-tags?|entry-tags?)\b[^"']*['"][^>]*?>.*?</\1>""",
    re.IGNORECASE | re.DOTALL,
)
_DATE_LINK = re.compile(
    r"""<a\s+[^>]*?href=['"][^"']*?\d{4}/\d{2}(?:/\d{2})?/['"][^>]*?>(.*?)</a>""",
    re.IGNORECASE | re.DOTALL,
)
_AUTHOR_LINK = re.compile(
    r"""<a\s+[^>]*?href=['"][^"']*?/author/[^"']+['"][^>]*?>(.*?)</a>""",
    re.IGNORECASE | re.DOTALL,
)
_AUTHOR_REL_LINK = re.compile(
    r"""<a\s+[^>]*?rel=['"]author['"][^>]*?>(.*?)</a>""", re.IGNORECASE | re.DOTALL
)


def origin_variants(*urls: str) -> tuple[str, ...]:
    """Return the origins to strip: both schemes of each URL, longest first, without
    trailing slash."""

    variants: dict[str, None] = {}
    for url in urls:
        if not url:
            continue
        base = url.strip().rstrip("/")
        for scheme in ("https://", "http://"):
            for prefix in ("https://", "http://"):
                if base.startswith(prefix):
                    variants.setdefault(scheme + base[len(prefix):], None)
    return tuple(sorted(variants, key=len, reverse=True))


def _origin_pattern(origins: Sequence[str]) -> re.Pattern[str] | None:
    if not origins:
        return None
    alternatives = "|".join(re.escape(origin) for origin in origins)
    # An origin followed by slashes, or ending at a delimiter, becomes a single "/".
    return re.compile(rf"""(?:{alternatives})(?:/+|(?=["'\s<>)]|$))""")


def make_root_relative(text: str, origins: Sequence[str]) -> str:
    """Replace absolute references to the site's origins with root-relative ones."""

    pattern = _origin_pattern(origins)
    if pattern is None:
        return text
    return pattern.sub("/", text)


def rewrite_style_blocks(html: str, origins: Sequence[str]) -> str:
    """Rewrite `url(...)` targets inside inline `<style>` blocks.

    `data:` and fragment targets are returned untouched, as is any `url(...)` token that
    does not reference the site origin.
    """

    pattern = _origin_pattern(origins)
    if pattern is None:
        return html

    def _rewrite_url(match: re.Match[str]) -> str:
        quote, target = match.group(1), match.group(2)
        stripped = target.strip()
        if stripped.startswith(("data:", "#")):
            return match.group(0)
        rewritten = pattern.sub("/", stripped)
        if rewritten == stripped:
            return match.group(0)
        return f"url({quote}{rewritten}{quote})"

    def _rewrite_block(match: re.Match[str]) -> str:
        css = _CSS_URL.sub(_rewrite_url, match.group(2))
        return f"<style{match.group(1)}>{css}</style>"

    return _STYLE_BLOCK.sub(_rewrite_block, html)


def strip_dynamic_markup(html: str) -> str:
    """Remove nonce/referer hidden inputs and REST-discovery/oEmbed `<link>` tags."""

    for pattern in _DYNAMIC_MARKUP:
        html = pattern.sub("", html)
    return html


def remove_archive_links(
    html: str,
    *,
    tag_archive: bool,
    date_archive: bool,
    author_archive: bool,
) -> str:
    """Drop or flatten links to archive pages that are not being published."""

    if not tag_archive:
        html = _TAG_LINK.sub("", html)
        html = _TAG_CONTAINER.sub("", html)
    if not date_archive:
        html = _DATE_LINK.sub(lambda m: f"<span>{m.group(1)}</span>", html)
    if not author_archive:
        html = _AUTHOR_LINK.sub(lambda m: f"<span>{m.group(1)}</span>", html)
        html = _AUTHOR_REL_LINK.sub(lambda m: f"<span>{m.group(1)}</span>", html)
    return html


def rewrite_html(html: str, origins: Sequence[str]) -> str:
    """Full origin rewrite for an HTML page: style blocks first, then attributes/text."""

    return make_root_relative(rewrite_style_blocks(html, origins), origins)


def rewrite_asset(content: str, kind: Literal["css", "js"], origins: Sequence[str]) -> str:
    """Rewrite a copied stylesheet or script for the static target."""

    pattern = _origin_pattern(origins)
    if kind == "css" and pattern is not None:

        def _rewrite_url(match: re.Match[str]) -> str:
            quote, target = match.group(1), match.group(2)
            return f"url({quote}{pattern.sub('/', target)}{quote})"

        def _rewrite_import(match: re.Match[str]) -> str:
            quote = match.group(1)
            return f"@import {quote}{pattern.sub('/', match.group(2))}{quote}"

        content = _CSS_URL.sub(_rewrite_url, content)
        content = _CSS_IMPORT.sub(_rewrite_import, content)

    content = make_root_relative(content, origins)

    if kind == "js":
        content = content.replace(ADMIN_AJAX_PATH, INERT_URL)
        content = _API_ROOT.sub(INERT_URL, content)
    return content
