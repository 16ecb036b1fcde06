"""robots.txt policy tests.

Maps to BDD scenarios: TestRobotsParsing, TestPolicyDecisions, TestRobotsCache
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from conftest import BASE_URL, FakeFetcher

from jobharvest.errors import ActionableError
from jobharvest.fetch.base import FetchResponse
from jobharvest.policy.robots import RobotsPolicyChecker, parse_robots

if TYPE_CHECKING:
    from collections.abc import Mapping

_AGENT = "TestBot/1.0"

_ROBOTS = """\
# example policy
User-agent: *
Disallow: /jobs/private
Allow: /jobs/private/public
Crawl-delay: 4

User-agent: BadBot
Disallow: /
"""


class _FailingFetcher(FakeFetcher):
    def __init__(self, exc: Exception) -> None:
        super().__init__()
        self.exc = exc

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str],
        *,
        use_proxy: bool = False,
    ) -> FetchResponse:
        self.urls.append(url)
        raise self.exc


class _YieldingFetcher(FakeFetcher):
    """Yields to the event loop before answering, like a real request."""

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str],
        *,
        use_proxy: bool = False,
    ) -> FetchResponse:
        await asyncio.sleep(0)
        return await super().fetch(url, headers, use_proxy=use_proxy)


def _robots_fetches(fetcher: FakeFetcher) -> int:
    return sum(1 for u in fetcher.urls if u.endswith("/robots.txt"))


# ---------------------------------------------------------------------------
# TestRobotsParsing
# ---------------------------------------------------------------------------


class TestRobotsParsing:
    """REQUIREMENT: robots.txt groups, rules and delays are parsed per agent.

    WHO: The policy checker evaluating a site's crawl policy
    WHAT: Rules attach to the preceding User-agent group; consecutive
          User-agent lines share one group; comments and unknown
          directives are ignored; agents match by full string, product
          token, then the * group
    WHY: Misattributing a Disallow to the wrong group either blocks a
         permitted crawl or, worse, permits a forbidden one
    """

    def test_rules_attach_to_their_group(self) -> None:
        """The * group and the BadBot group each get only their own rules."""
        rules = parse_robots(_ROBOTS)
        star = rules.agents["*"]
        assert star.disallow == ["/jobs/private"]
        assert star.allow == ["/jobs/private/public"]
        assert star.crawl_delay == 4.0
        assert rules.agents["badbot"].disallow == ["/"]

    def test_consecutive_user_agents_share_a_group(self) -> None:
        """Two User-agent lines before any rule both receive the rules."""
        rules = parse_robots("User-agent: alpha\nUser-agent: beta\nDisallow: /x\n")
        assert rules.agents["alpha"].disallow == ["/x"]
        assert rules.agents["beta"].disallow == ["/x"]

    def test_product_token_matches_versioned_agent(self) -> None:
        """A group named 'badbot' applies to 'BadBot/2.1 (+info)'."""
        rules = parse_robots(_ROBOTS)
        agent_rules = rules.for_agent("BadBot/2.1 (+info)")
        assert agent_rules is not None
        assert agent_rules.disallow == ["/"]

    def test_unknown_agent_falls_back_to_star(self) -> None:
        """An agent with no group of its own uses the * rules."""
        rules = parse_robots(_ROBOTS)
        assert rules.for_agent(_AGENT) is rules.agents["*"]

    def test_empty_disallow_blocks_nothing(self) -> None:
        """'Disallow:' with no value is an allow-all rule."""
        rules = parse_robots("User-agent: *\nDisallow:\n")
        assert rules.agents["*"].permits("/anything")

    def test_non_numeric_crawl_delay_is_ignored(self) -> None:
        """A garbage Crawl-delay leaves the delay unset instead of failing."""
        rules = parse_robots("User-agent: *\nCrawl-delay: soon\n")
        assert rules.agents["*"].crawl_delay is None


# ---------------------------------------------------------------------------
# TestPolicyDecisions
# ---------------------------------------------------------------------------


class TestPolicyDecisions:
    """REQUIREMENT: can_fetch() follows Disallow/Allow prefixes and fails closed.

    WHO: The orchestrator before scraping a target
    WHAT: Paths under a Disallow prefix are blocked unless an Allow prefix
          also matches; a missing robots.txt allows everything; transport
          errors and relative URLs return False
    WHY: When the policy cannot be read the only safe answer is no
    """

    async def test_disallowed_path_is_blocked(self) -> None:
        """/jobs/private/secret falls under Disallow with no matching Allow."""
        checker = RobotsPolicyChecker(FakeFetcher(robots=_ROBOTS))
        assert await checker.can_fetch(f"{BASE_URL}/jobs/private/secret", _AGENT) is False

    async def test_allow_overrides_matching_disallow(self) -> None:
        """/jobs/private/public/x is re-allowed by the Allow prefix."""
        checker = RobotsPolicyChecker(FakeFetcher(robots=_ROBOTS))
        assert await checker.can_fetch(f"{BASE_URL}/jobs/private/public/x", _AGENT) is True

    async def test_unlisted_path_is_allowed(self) -> None:
        """/about matches no rule and is allowed."""
        checker = RobotsPolicyChecker(FakeFetcher(robots=_ROBOTS))
        assert await checker.can_fetch(f"{BASE_URL}/about", _AGENT) is True

    async def test_agent_specific_group_blocks_everything(self) -> None:
        """BadBot is refused everywhere by its own group."""
        checker = RobotsPolicyChecker(FakeFetcher(robots=_ROBOTS))
        assert await checker.can_fetch(f"{BASE_URL}/about", "BadBot/1.0") is False

    async def test_missing_robots_file_allows_everything(self) -> None:
        """A 404 for /robots.txt means the site sets no policy."""
        checker = RobotsPolicyChecker(FakeFetcher(robots=None))
        assert await checker.can_fetch(f"{BASE_URL}/jobs/private", _AGENT) is True

    async def test_transport_error_fails_closed(self) -> None:
        """A network error reading robots.txt returns False."""
        checker = RobotsPolicyChecker(_FailingFetcher(OSError("connection reset")))
        assert await checker.can_fetch(f"{BASE_URL}/jobs", _AGENT) is False

    async def test_fetcher_actionable_error_fails_closed(self) -> None:
        """A wrapped fetcher error is treated the same as a transport error."""
        exc = ActionableError.connection("page fetcher", BASE_URL, "net::ERR_NAME_NOT_RESOLVED")
        checker = RobotsPolicyChecker(_FailingFetcher(exc))
        assert await checker.can_fetch(f"{BASE_URL}/jobs", _AGENT) is False

    async def test_relative_url_fails_closed(self) -> None:
        """A URL without scheme and host cannot be checked and returns False."""
        fetcher = FakeFetcher(robots=_ROBOTS)
        checker = RobotsPolicyChecker(fetcher)
        assert await checker.can_fetch("/jobs", _AGENT) is False
        assert fetcher.urls == []

    async def test_robots_request_carries_user_agent(self) -> None:
        """robots.txt is requested with the agent being checked."""
        fetcher = FakeFetcher(robots=_ROBOTS)
        await RobotsPolicyChecker(fetcher).can_fetch(f"{BASE_URL}/jobs", _AGENT)
        assert fetcher.urls == [f"{BASE_URL}/robots.txt"]
        assert fetcher.headers[0]["User-Agent"] == _AGENT


# ---------------------------------------------------------------------------
# TestRobotsCache
# ---------------------------------------------------------------------------


class TestRobotsCache:
    """REQUIREMENT: robots.txt is fetched at most once per origin per TTL.

    WHO: Many jobs checking the same site
    WHAT: Repeat and concurrent checks within the TTL share one fetch;
          after the TTL the file is re-fetched; clear_cache() forces a re-fetch;
          crawl_delay() reads only the cache
    WHY: Fetching robots.txt before every page would itself be impolite
    """

    async def test_repeat_checks_within_ttl_fetch_once(self) -> None:
        """Two checks on one origin inside the TTL make one request."""
        fetcher = FakeFetcher(robots=_ROBOTS)
        checker = RobotsPolicyChecker(fetcher, cache_ttl=60)
        await checker.can_fetch(f"{BASE_URL}/a", _AGENT)
        await checker.can_fetch(f"{BASE_URL}/b", _AGENT)
        assert _robots_fetches(fetcher) == 1

    async def test_concurrent_checks_share_one_request(self) -> None:
        """Checks racing on a cold origin wait for a single robots.txt fetch."""
        fetcher = _YieldingFetcher(robots=_ROBOTS)
        checker = RobotsPolicyChecker(fetcher)

        results = await asyncio.gather(
            checker.can_fetch(f"{BASE_URL}/jobs/private", _AGENT),
            checker.can_fetch(f"{BASE_URL}/jobs/private/public", _AGENT),
            checker.can_fetch(f"{BASE_URL}/about", _AGENT),
        )

        assert results == [False, True, True]
        assert _robots_fetches(fetcher) == 1

    async def test_expired_entry_is_refetched(self) -> None:
        """Once the TTL passes the next check fetches robots.txt again."""
        now = [0.0]
        fetcher = FakeFetcher(robots=_ROBOTS)
        checker = RobotsPolicyChecker(fetcher, cache_ttl=60, clock=lambda: now[0])

        await checker.can_fetch(f"{BASE_URL}/a", _AGENT)
        now[0] = 61.0
        await checker.can_fetch(f"{BASE_URL}/a", _AGENT)

        assert _robots_fetches(fetcher) == 2

    async def test_missing_file_result_is_cached(self) -> None:
        """A 404 is cached as allow-all rather than re-requested each time."""
        fetcher = FakeFetcher(robots=None)
        checker = RobotsPolicyChecker(fetcher)
        await checker.can_fetch(f"{BASE_URL}/a", _AGENT)
        await checker.can_fetch(f"{BASE_URL}/b", _AGENT)
        assert _robots_fetches(fetcher) == 1

    async def test_clear_cache_forces_refetch(self) -> None:
        """clear_cache() drops every cached origin."""
        fetcher = FakeFetcher(robots=_ROBOTS)
        checker = RobotsPolicyChecker(fetcher)
        await checker.can_fetch(f"{BASE_URL}/a", _AGENT)
        checker.clear_cache()
        await checker.can_fetch(f"{BASE_URL}/a", _AGENT)
        assert _robots_fetches(fetcher) == 2

    async def test_crawl_delay_comes_from_cached_rules(self) -> None:
        """crawl_delay() is None before a check and the group's delay after."""
        fetcher = FakeFetcher(robots=_ROBOTS)
        checker = RobotsPolicyChecker(fetcher)

        assert checker.crawl_delay(f"{BASE_URL}/jobs", _AGENT) is None
        await checker.can_fetch(f"{BASE_URL}/jobs", _AGENT)
        assert checker.crawl_delay(f"{BASE_URL}/jobs", _AGENT) == 4.0
        assert _robots_fetches(fetcher) == 1
