"""Turn fetched origin output into portable static artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

from sitepress.config.loader import SiteSettings

from .links import extract_internal_links
from .paths import FEED_PATTERN, url_to_path
from .rewrite import (
    make_root_relative,
    origin_variants,
    remove_archive_links,
    rewrite_asset,
    rewrite_html,
    strip_dynamic_markup,
)

SHRINK_WARNING_RATIO = 0.1
_HTML_EXTENSIONS = ("", ".html", ".htm", ".php")


class ContentKind(str, Enum):
    HTML = "html"
    XML = "xml"
    OTHER = "other"


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="surrogateescape")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def classify_content(url: str, body: bytes, content_type: str | None = None) -> ContentKind:
    """Classify a response as HTML, XML (feeds, sitemaps) or anything else."""

    head = body[:512].lstrip().lower()
    try:
        path = urlsplit(url).path.rstrip("/")
    except ValueError:
        path = ""
    if FEED_PATTERN.search(path) or path.lower().endswith(".xml") or head.startswith(b"<?xml"):
        return ContentKind.XML

    if content_type:
        mime = content_type.split(";")[0].strip().lower()
        if mime in ("text/html", "application/xhtml+xml"):
            return ContentKind.HTML
        if mime.endswith("xml"):
            return ContentKind.XML
        return ContentKind.OTHER

    if head.startswith((b"<!doctype html", b"<html")):
        return ContentKind.HTML
    try:
        last_segment = urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
    except ValueError:
        return ContentKind.OTHER
    extension = "." + last_segment.rsplit(".", 1)[-1].lower() if "." in last_segment else ""
    return ContentKind.HTML if extension in _HTML_EXTENSIONS else ContentKind.OTHER


@dataclass(slots=True)
class TransformResult:
    path: str
    content: bytes
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Transformer:
    """Apply the site-specific rewrite rules for one run."""

    site: SiteSettings
    logger: logging.Logger
    origins: tuple[str, ...] = field(init=False)
    site_hosts: set[str] = field(init=False)

    def __post_init__(self) -> None:
        self.origins = origin_variants(self.site.site_url, self.site.effective_home_url)
        self.site_hosts = set()
        for url in (self.site.site_url, self.site.effective_home_url):
            try:
                host = urlsplit(url).hostname
            except ValueError:
                host = None
            if host:
                self.site_hosts.add(host.lower())

    @property
    def relative(self) -> bool:
        return self.site.url_mode == "relative"

    def transform(self, url: str, body: bytes, kind: ContentKind) -> TransformResult:
        """Return the artifact for `url`; heuristics only produce warnings."""

        path = url_to_path(url)
        if kind is ContentKind.OTHER:
            return TransformResult(path=path, content=body)

        text = _decode(body)
        if kind is ContentKind.XML:
            if self.relative:
                text = make_root_relative(text, self.origins)
            return TransformResult(path=path, content=_encode(text))

        original_size = len(body)
        if self.relative:
            text = rewrite_html(text, self.origins)
        text = strip_dynamic_markup(text)
        text = remove_archive_links(
            text,
            tag_archive=self.site.enable_tag_archive,
            date_archive=self.site.enable_date_archive,
            author_archive=self.site.enable_author_archive,
        )
        content = _encode(text)

        warnings: list[str] = []
        if len(content) < original_size * SHRINK_WARNING_RATIO:
            warnings.append(
                f"HTML shrank sharply: {url} - {original_size:,} -> {len(content):,} bytes"
            )
        lowered = text.lower()
        if "</html>" not in lowered or "<body" not in lowered:
            warnings.append(f"Incomplete HTML structure: {url}")
        return TransformResult(path=path, content=content, warnings=warnings)

    def transform_asset(self, data: bytes, extension: str) -> bytes:
        """Rewrite CSS/JS copied during the asset phase; other files pass through."""

        kind = extension.lower().lstrip(".")
        if not self.relative or kind not in ("css", "js"):
            return data
        return _encode(rewrite_asset(_decode(data), kind, self.origins))

    def internal_links(self, html: bytes, page_url: str) -> list[str]:
        return extract_internal_links(_decode(html), page_url, self.site_hosts)
