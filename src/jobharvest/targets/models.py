"""Scrape target configuration: one immutable record per external site."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import urlencode, urljoin

DEFAULT_USER_AGENT = "JobHarvest-Bot/0.1 (+job listing research; polite crawler)"


class PaginationKind(StrEnum):
    """How a target's search results advance from one page to the next."""

    PAGE = "page"
    OFFSET = "offset"
    CURSOR = "cursor"


@dataclass(frozen=True)
class TargetSelectors:
    """CSS selectors locating listing fields inside a results page.

    ``job_container`` matches one element per listing; every other
    selector is evaluated relative to that container.  ``next_cursor``
    is evaluated against the whole page.
    """

    job_container: str
    title: str
    url: str
    company: str | None = None
    location: str | None = None
    description: str | None = None
    salary: str | None = None
    requirements: str | None = None
    skills: str | None = None
    posted_date: str | None = None
    benefits: str | None = None
    employment_type: str | None = None
    deadline: str | None = None
    next_cursor: str | None = None


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-target politeness limits.

    ``delay_between_requests`` is in seconds and paces the gap after
    every successfully fetched page.
    """

    requests_per_minute: int
    delay_between_requests: float = 2.0


@dataclass(frozen=True)
class PaginationStrategy:
    """Pagination rules: which query parameter carries the position."""

    kind: PaginationKind = PaginationKind.PAGE
    parameter: str = "page"
    max_pages: int = 5
    page_size: int = 10


@dataclass(frozen=True)
class ScrapeTarget:
    """Configuration for one external job site.

    Created once at startup from ``[targets.<id>]`` and never mutated;
    configuration changes go through a registry reload.
    """

    id: str
    name: str
    base_url: str
    search_endpoint: str
    selectors: TargetSelectors
    rate_limit: RateLimitPolicy
    pagination: PaginationStrategy = field(default_factory=PaginationStrategy)
    headers: dict[str, str] = field(default_factory=dict)
    keyword_param: str = "q"
    location_param: str = "l"
    is_active: bool = True

    @property
    def user_agent(self) -> str:
        """The bot identity sent with every request to this target."""
        for key, value in self.headers.items():
            if key.lower() == "user-agent":
                return value
        return DEFAULT_USER_AGENT

    def request_headers(self) -> dict[str, str]:
        """Headers for page fetches, always carrying a User-Agent."""
        headers = dict(self.headers)
        if not any(key.lower() == "user-agent" for key in headers):
            headers["User-Agent"] = DEFAULT_USER_AGENT
        return headers

    def search_url(
        self,
        keywords: list[str],
        location: str | None = None,
        page_index: int = 0,
        cursor: str | None = None,
    ) -> str:
        """Build the results-page URL for *page_index* (0-based).

        ``page`` pagination sends a 1-based page number, ``offset`` sends
        ``page_index * page_size``, and ``cursor`` sends the cursor read
        from the previous page (nothing on the first page).
        """
        params: dict[str, str] = {}
        if keywords:
            params[self.keyword_param] = " ".join(keywords)
        if location:
            params[self.location_param] = location

        strategy = self.pagination
        if strategy.kind is PaginationKind.PAGE:
            params[strategy.parameter] = str(page_index + 1)
        elif strategy.kind is PaginationKind.OFFSET:
            params[strategy.parameter] = str(page_index * strategy.page_size)
        elif cursor:
            params[strategy.parameter] = cursor

        endpoint = urljoin(self.base_url.rstrip("/") + "/", self.search_endpoint.lstrip("/"))
        if not params:
            return endpoint
        return f"{endpoint}?{urlencode(params)}"
