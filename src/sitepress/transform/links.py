"""Internal link extraction used to observe page dependencies."""

from __future__ import annotations

from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def extract_internal_links(html: str, base_url: str, site_hosts: set[str]) -> list[str]:
    """Return absolute same-site URLs referenced by `<a href>` in `html`, in document order."""

    soup = BeautifulSoup(html, "html.parser")
    discovered: dict[str, None] = {}
    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href")
        if not href or not isinstance(href, str):
            continue
        href = href.strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue

        try:
            absolute = urldefrag(urljoin(base_url, href))[0]
            parsed = urlparse(absolute)
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            continue
        if site_hosts and _host(absolute) not in site_hosts:
            continue
        discovered.setdefault(absolute, None)
    return list(discovered)
