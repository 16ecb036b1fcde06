"""Fetch layer: the page fetcher contract and its Playwright implementation."""

from jobharvest.fetch.base import FetchResponse, PageFetcher
from jobharvest.fetch.session import FetcherConfig, PlaywrightFetcher

__all__ = ["FetchResponse", "FetcherConfig", "PageFetcher", "PlaywrightFetcher"]
