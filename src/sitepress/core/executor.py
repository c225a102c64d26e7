"""Fetch contracts shared by the fetch strategies and the orchestrator."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from sitepress.config.loader import CrawlerSettings


class FetchError(Exception):
    """Raised for fetch failures that retrying cannot fix."""


class TransientFetchError(Exception):
    """Raised for retryable fetch failures."""


@dataclass(slots=True)
class FetchResult:
    """Outcome of fetching one URL."""

    url: str
    status_code: int
    body: bytes = b""
    from_cache: bool = False
    content_type: str | None = None
    entity_id: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code == 200 and bool(self.body)

    def failure_reason(self) -> str:
        if self.error:
            return self.error
        if self.status_code != 200:
            return f"HTTP {self.status_code}"
        return "empty response"


class Fetcher(Protocol):
    """Protocol for fetch strategies."""

    def plan(self, urls: Sequence[str]) -> list[list[str]]:
        """Split the crawl list into the batches the strategy processes one at a time."""

    async def fetch_batch(self, urls: Sequence[str]) -> list[FetchResult]:
        """Fetch one batch; never raises for per-URL failures."""

    async def __aenter__(self) -> Fetcher:
        """Open any pooled connections."""

    async def __aexit__(self, *exc_info: Any) -> None:
        """Close pooled connections."""


def build_retry_policy(settings: CrawlerSettings) -> AsyncRetrying:
    """Retry transient failures with jittered exponential backoff."""

    return AsyncRetrying(
        stop=stop_after_attempt(settings.max_retries),
        wait=wait_exponential_jitter(
            multiplier=settings.backoff_min_seconds,
            max=settings.backoff_max_seconds,
        ),
        retry=retry_if_exception_type(TransientFetchError),
        reraise=True,
    )


def chunked(items: Sequence[str], size: int) -> list[list[str]]:
    """Split `items` into consecutive lists of at most `size` entries."""

    if size < 1:
        raise ValueError("Batch size must be at least 1.")
    return [list(items[index : index + size]) for index in range(0, len(items), size)]
