"""Scrape target layer: per-site configuration and its registry."""

from jobharvest.targets.models import (
    DEFAULT_USER_AGENT,
    PaginationKind,
    PaginationStrategy,
    RateLimitPolicy,
    ScrapeTarget,
    TargetSelectors,
)
from jobharvest.targets.registry import ScrapeTargetRegistry

__all__ = [
    "DEFAULT_USER_AGENT",
    "PaginationKind",
    "PaginationStrategy",
    "RateLimitPolicy",
    "ScrapeTarget",
    "ScrapeTargetRegistry",
    "TargetSelectors",
]
