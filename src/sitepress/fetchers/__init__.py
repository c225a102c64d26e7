"""Fetch strategies for Sitepress."""

from .http import ConcurrentFetcher, HttpPageFetcher, SequentialFetcher, build_fetcher

__all__ = ["ConcurrentFetcher", "HttpPageFetcher", "SequentialFetcher", "build_fetcher"]
