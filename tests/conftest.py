"""Global test configuration — shared fixtures and fakes.

This conftest provides:

1. **Target and listing factories** — ``make_target`` and
   ``make_listing`` build fully valid domain records with overridable
   fields, so tests state only what they care about.

2. **Fake collaborators** — :class:`FakeFetcher` serves generated
   result pages and an optional robots.txt from memory, and
   :class:`FakeStore` records persisted listings (optionally failing
   for chosen ids).  The orchestrator is tested against these; only
   Playwright and Ollama are ever mocked with ``unittest.mock``.

3. **Shared I/O-boundary fixtures** — ``mock_embedder`` (Embedder with
   stubbed Ollama methods) and ``vector_store`` (real ChromaDB backed
   by ``tmp_path``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlsplit

import pytest

from jobharvest.errors import ActionableError
from jobharvest.extract.listing import JobListing, ListingMetadata
from jobharvest.fetch.base import FetchResponse, PageFetcher
from jobharvest.storage.embedder import Embedder
from jobharvest.storage.listing_store import ListingStore
from jobharvest.storage.store import VectorStore
from jobharvest.targets.models import (
    PaginationKind,
    PaginationStrategy,
    RateLimitPolicy,
    ScrapeTarget,
    TargetSelectors,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path

# Canonical fake embedding used across test files.
EMBED_FAKE: list[float] = [0.1, 0.2, 0.3, 0.4, 0.5]

BASE_URL = "https://jobs.example.org"

SELECTORS = TargetSelectors(
    job_container="div.job",
    title="h2.title",
    url="h2.title a",
    company=".company",
    location=".location",
    description=".desc",
    salary=".salary",
    requirements="ul.reqs li",
    posted_date="time",
)


# ---------------------------------------------------------------------------
# Page builders
# ---------------------------------------------------------------------------


def job_card(
    n: int,
    *,
    title: str | None = None,
    description: str = "Build Python services on AWS with Docker.",
    location: str = "Remote",
) -> str:
    """One ``div.job`` container matching :data:`SELECTORS`."""
    return f"""
    <div class="job">
      <h2 class="title"><a href="/jobs/{n}">{title or f"Python Developer {n}"}</a></h2>
      <span class="company">Acme Corp</span>
      <span class="location">{location}</span>
      <div class="desc">{description}</div>
      <span class="salary">$80,000 - $120,000 a year</span>
      <ul class="reqs"><li>3+ years of Python</li><li>Experience with PostgreSQL</li></ul>
      <time datetime="2026-01-05">5 days ago</time>
    </div>"""


def results_page(cards: list[str], *, next_cursor: str | None = None) -> str:
    cursor = f'<a class="next" data-cursor="{next_cursor}" href="#">Next</a>' if next_cursor else ""
    return f"<html><body><main>{''.join(cards)}</main>{cursor}</body></html>"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFetcher(PageFetcher):
    """In-memory fetcher serving numbered result pages.

    Page *i* (0-based, read from the ``page`` query parameter) holds
    ``per_page`` listings numbered ``i * per_page`` onward.  ``robots``
    of ``None`` makes ``/robots.txt`` a 404.  ``fail_pages`` return HTTP
    500; ``on_page`` hooks run just before page *i* is returned, which is
    how tests pause or cancel a job mid-fetch.
    """

    def __init__(
        self,
        *,
        per_page: int = 10,
        robots: str | None = None,
        fail_pages: set[int] | None = None,
        on_page: dict[int, Callable[[], None]] | None = None,
        proxy: bool = False,
    ) -> None:
        self.per_page = per_page
        self.robots = robots
        self.fail_pages = fail_pages or set()
        self.on_page = on_page or {}
        self.proxy = proxy
        self.urls: list[str] = []
        self.headers: list[dict[str, str]] = []

    @property
    def supports_proxy(self) -> bool:
        return self.proxy

    @property
    def page_requests(self) -> list[int]:
        """0-based page indexes requested so far, in order."""
        return [
            int(parse_qs(urlsplit(u).query)["page"][0]) - 1
            for u in self.urls
            if not u.endswith("/robots.txt")
        ]

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str],
        *,
        use_proxy: bool = False,
    ) -> FetchResponse:
        self.urls.append(url)
        self.headers.append(dict(headers))

        if url.endswith("/robots.txt"):
            if self.robots is None:
                return FetchResponse(url=url, status=404, text="Not Found")
            return FetchResponse(url=url, status=200, text=self.robots)

        index = int(parse_qs(urlsplit(url).query).get("page", ["1"])[0]) - 1
        hook = self.on_page.get(index)
        if hook is not None:
            hook()
        if index in self.fail_pages:
            return FetchResponse(url=url, status=500, text="Server Error")

        start = index * self.per_page
        cards = [job_card(n) for n in range(start, start + self.per_page)]
        return FetchResponse(url=url, status=200, text=results_page(cards))


class FakeStore(ListingStore):
    """Records stored listings; raises PERSISTENCE for ids in ``fail_ids``."""

    def __init__(self, fail_ids: set[str] | None = None) -> None:
        self.fail_ids = fail_ids or set()
        self.stored: list[JobListing] = []

    async def store(self, listing: JobListing) -> str:
        if listing.id in self.fail_ids:
            raise ActionableError.persistence(listing.id, "disk full")
        self.stored.append(listing)
        return listing.id


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_target():
    """Factory fixture — returns a callable that produces a ScrapeTarget.

    Defaults are fast for tests: no pacing delay and a generous rate
    limit, page-number pagination over three pages.

    Usage::

        def test_something(make_target):
            target = make_target()
            target = make_target(max_pages=10, is_active=False)
    """

    def _factory(
        target_id: str = "testsite",
        *,
        max_pages: int = 3,
        kind: PaginationKind = PaginationKind.PAGE,
        parameter: str = "page",
        requests_per_minute: int = 600,
        delay: float = 0.0,
        is_active: bool = True,
        selectors: TargetSelectors = SELECTORS,
        headers: dict[str, str] | None = None,
    ) -> ScrapeTarget:
        return ScrapeTarget(
            id=target_id,
            name=target_id.title(),
            base_url=BASE_URL,
            search_endpoint="/search",
            selectors=selectors,
            rate_limit=RateLimitPolicy(
                requests_per_minute=requests_per_minute,
                delay_between_requests=delay,
            ),
            pagination=PaginationStrategy(kind=kind, parameter=parameter, max_pages=max_pages),
            headers=headers if headers is not None else {"User-Agent": "TestBot/1.0"},
            is_active=is_active,
        )

    return _factory


@pytest.fixture
def make_listing():
    """Factory fixture — returns a callable that produces a JobListing.

    Usage::

        def test_something(make_listing):
            listing = make_listing()
            listing = make_listing(listing_id="testsite-2", skills=frozenset({"python"}))
    """

    def _factory(
        listing_id: str = "testsite-1",
        *,
        title: str = "Senior Python Engineer",
        description: str = "Build data pipelines with Python and Kubernetes.",
        requirements: tuple[str, ...] = ("5+ years Python",),
        skills: frozenset[str] = frozenset(),
    ) -> JobListing:
        return JobListing(
            id=listing_id,
            title=title,
            company="Acme Corp",
            location="Remote",
            description=description,
            url=f"{BASE_URL}/jobs/{listing_id}",
            source="testsite",
            requirements=requirements,
            skills=skills,
            metadata=ListingMetadata(confidence=0.5),
        )

    return _factory


# ---------------------------------------------------------------------------
# Shared I/O-boundary fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_embedder() -> Embedder:
    """Embedder with stubbed I/O methods — no Ollama connection needed.

    Uses ``Embedder.__new__`` to create a real instance without calling
    ``__init__`` (which would create an ``ollama.AsyncClient``).
    """
    embedder = Embedder.__new__(Embedder)
    embedder.base_url = "http://localhost:11434"
    embedder.embed_model = "nomic-embed-text"
    embedder.max_retries = 3
    embedder.base_delay = 0.0
    embedder.embed = AsyncMock(return_value=EMBED_FAKE)  # type: ignore[method-assign]
    embedder.health_check = AsyncMock()  # type: ignore[method-assign]
    return embedder


@pytest.fixture
def vector_store(tmp_path: Path) -> VectorStore:
    """Real ChromaDB VectorStore backed by a per-test temp directory."""
    return VectorStore(persist_dir=str(tmp_path / "chroma"))
