"""Mapping from crawl URLs to output-relative file paths."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

INDEX_HTML = "index.html"
INDEX_XML = "index.xml"

FEED_PATTERN = re.compile(r"/(?:feed|rss|atom)(?:/.*)?$")
_EXTENSION_PATTERN = re.compile(r"\.[a-z0-9]+$", re.IGNORECASE)


def _url_path(url: str) -> str:
    try:
        return urlsplit(url).path
    except ValueError:
        return url.split("#", 1)[0].split("?", 1)[0]


def url_to_path(url: str) -> str:
    """Return the workspace-relative file path for `url`.

    Query and fragment are dropped and the trailing slash is ignored, so `/post/`,
    `/post` and `/post?x=1` share one target. Feed paths (`/feed`, `/rss`, `/atom`,
    optionally followed by more segments) become `.../index.xml`; paths whose last
    segment has no extension become `.../index.html`; everything else is kept.
    """

    segments = [part for part in _url_path(url).split("/") if part not in ("", ".", "..")]
    if not segments:
        return INDEX_HTML

    path = "/" + "/".join(segments)
    if FEED_PATTERN.search(path):
        path = f"{path}/{INDEX_XML}"
    elif not _EXTENSION_PATTERN.search(path):
        path = f"{path}/{INDEX_HTML}"
    return path.lstrip("/")
