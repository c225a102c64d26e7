"""HTTP fetch strategies for rendered pages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx

from sitepress import get_version
from sitepress.cache import CacheStore
from sitepress.config.loader import CrawlerSettings
from sitepress.content import ContentGraph
from sitepress.core.executor import (
    FetchError,
    Fetcher,
    FetchResult,
    TransientFetchError,
    build_retry_policy,
    chunked,
)

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def default_user_agent() -> str:
    return f"sitepress/{get_version()}"


def is_loopback(url: str) -> bool:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return False
    return (host or "").lower() in LOOPBACK_HOSTS


@dataclass(slots=True)
class HttpPageFetcher:
    """Shared request logic: cache short-circuit, GET, retry, error classification."""

    settings: CrawlerSettings
    graph: ContentGraph
    logger: logging.Logger
    cache: CacheStore | None = None
    basic_auth: tuple[str, str] | None = None
    transport: httpx.AsyncBaseTransport | None = None
    _clients: dict[bool, httpx.AsyncClient] = field(default_factory=dict, init=False, repr=False)

    @property
    def timeout(self) -> float:
        return self.settings.timeout_seconds

    def plan(self, urls: Sequence[str]) -> list[list[str]]:
        return chunked(urls, 1)

    async def __aenter__(self) -> HttpPageFetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()

    def _client_for(self, url: str) -> httpx.AsyncClient:
        verify = not is_loopback(url)
        client = self._clients.get(verify)
        if client is None:
            options: dict[str, Any] = {
                "timeout": self.timeout,
                "verify": verify,
                "follow_redirects": True,
                "headers": {"User-Agent": self.settings.user_agent or default_user_agent()},
            }
            if self.basic_auth is not None:
                options["auth"] = self.basic_auth
            if self.transport is not None:
                options["transport"] = self.transport
            client = httpx.AsyncClient(**options)
            self._clients[verify] = client
        return client

    async def fetch_batch(self, urls: Sequence[str]) -> list[FetchResult]:
        results: list[FetchResult] = []
        for url in urls:
            results.append(await self.fetch_one(url))
        return results

    async def fetch_one(self, url: str) -> FetchResult:
        """Fetch a URL, serving it from the cache when the cache record is still valid."""

        entity_id = self.graph.entity_id_for_url(url)
        if self.cache is not None and self.cache.is_valid(url, entity_id):
            cached = self.cache.get(url)
            if cached is not None:
                self.logger.debug("Cache hit url=%s", url)
                return FetchResult(
                    url=url,
                    status_code=200,
                    body=cached,
                    from_cache=True,
                    content_type=self.cache.content_type(url),
                    entity_id=entity_id,
                )

        try:
            response = await self._get_with_retry(url)
        except (FetchError, TransientFetchError) as exc:
            self.logger.warning("Fetch failed url=%s error=%s", url, exc)
            return FetchResult(url=url, status_code=0, entity_id=entity_id, error=str(exc))

        return FetchResult(
            url=url,
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type"),
            entity_id=entity_id,
        )

    async def _get_with_retry(self, url: str) -> httpx.Response:
        client = self._client_for(url)
        async for attempt in build_retry_policy(self.settings):
            with attempt:
                try:
                    response = await client.get(url)
                except httpx.TimeoutException as exc:
                    raise TransientFetchError(f"Timeout fetching {url}: {exc}") from exc
                except httpx.UnsupportedProtocol as exc:
                    raise FetchError(f"Unsupported URL {url}: {exc}") from exc
                except httpx.TransportError as exc:
                    raise TransientFetchError(f"Connection error for {url}: {exc}") from exc
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    raise FetchError(f"HTTP error for {url}: {exc}") from exc
                if response.status_code >= 500:
                    raise TransientFetchError(f"HTTP {response.status_code} for {url}")
                return response
        raise TransientFetchError(f"No attempt made for {url}")  # pragma: no cover


@dataclass(slots=True)
class SequentialFetcher(HttpPageFetcher):
    """One request at a time, in crawl order."""


@dataclass(slots=True)
class ConcurrentFetcher(HttpPageFetcher):
    """Fixed-size batches fetched by a bounded pool of concurrent requests.

    A batch is a barrier: `fetch_batch` returns only when every URL in it has finished,
    but each URL succeeds or fails on its own.
    """

    @property
    def timeout(self) -> float:
        return self.settings.request_timeout_seconds

    def plan(self, urls: Sequence[str]) -> list[list[str]]:
        return chunked(urls, self.settings.batch_size)

    async def fetch_batch(self, urls: Sequence[str]) -> list[FetchResult]:
        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def _bounded(url: str) -> FetchResult:
            async with semaphore:
                return await self.fetch_one(url)

        return list(await asyncio.gather(*(_bounded(url) for url in urls)))


def build_fetcher(
    settings: CrawlerSettings,
    *,
    graph: ContentGraph,
    logger: logging.Logger,
    cache: CacheStore | None = None,
    basic_auth_password: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Fetcher:
    """Instantiate the fetch strategy selected by `settings.mode`."""

    basic_auth = None
    if settings.basic_auth_user and basic_auth_password:
        basic_auth = (settings.basic_auth_user, basic_auth_password)
    fetcher_cls = ConcurrentFetcher if settings.mode == "concurrent" else SequentialFetcher
    return fetcher_cls(
        settings=settings,
        graph=graph,
        logger=logger,
        cache=cache,
        basic_auth=basic_auth,
        transport=transport,
    )
