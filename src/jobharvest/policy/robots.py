"""robots.txt policy checker with a per-origin TTL cache.

Answers "may this agent fetch this URL?" for the orchestrator, once per
scrape job.  The matching rule is deliberately the simple one: a path
under any ``Disallow`` prefix is blocked unless *some* ``Allow`` prefix
also matches it.  That is looser than the longest-match-wins rule of
RFC 9309: a site that disallows ``/jobs/p`` but allows ``/jobs`` is
treated as allowing ``/jobs/p``.

Failure handling is asymmetric:

  - A robots file that is simply absent (any non-2xx status) means the
    site has no policy, so everything is allowed.
  - A transport or parse failure means the policy is *unknown*, and the
    checker fails closed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from jobharvest.errors import ActionableError
from jobharvest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from jobharvest.fetch.base import PageFetcher

DEFAULT_CACHE_TTL = 24 * 60 * 60


@dataclass
class AgentRules:
    """Allow/Disallow prefixes and crawl delay for one user-agent group."""

    allow: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)
    crawl_delay: float | None = None

    def permits(self, path: str) -> bool:
        for blocked in self.disallow:
            if path.startswith(blocked):
                return any(path.startswith(allowed) for allowed in self.allow)
        return True


@dataclass
class RobotsRules:
    """Parsed robots.txt, keyed by lower-cased user-agent token."""

    agents: dict[str, AgentRules] = field(default_factory=dict)

    def for_agent(self, user_agent: str) -> AgentRules | None:
        """Rules for *user_agent*, falling back to the ``*`` group.

        A group named by the agent's product token (``JobHarvest-Bot``
        in ``JobHarvest-Bot/0.1 (...)``) also matches.
        """
        agent = user_agent.strip().lower()
        if agent in self.agents:
            return self.agents[agent]
        token = agent.split("/", 1)[0].split(" ", 1)[0]
        if token and token in self.agents:
            return self.agents[token]
        return self.agents.get("*")


def parse_robots(content: str) -> RobotsRules:
    """Parse robots.txt text into :class:`RobotsRules`.

    Consecutive ``User-agent`` lines open one shared group; the first
    rule line after them closes the header.  Unknown directives are
    ignored, as are lines without a colon.
    """
    rules = RobotsRules()
    current: list[AgentRules] = []
    in_header = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if not in_header:
                current = []
                in_header = True
            agent = value.lower() or "*"
            current.append(rules.agents.setdefault(agent, AgentRules()))
            continue

        in_header = False
        if not current:
            # Rules before any User-agent line apply to everyone
            current = [rules.agents.setdefault("*", AgentRules())]

        if directive == "disallow":
            # An empty Disallow blocks nothing
            if value:
                for group in current:
                    group.disallow.append(value)
        elif directive == "allow":
            if value:
                for group in current:
                    group.allow.append(value)
        elif directive == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                logger.debug("Ignoring non-numeric Crawl-delay: %r", value)
                continue
            for group in current:
                group.crawl_delay = delay

    return rules


@dataclass
class _CacheEntry:
    rules: RobotsRules
    fetched_at: float


class RobotsPolicyChecker:
    """Fetches, caches and evaluates robots.txt per origin.

    Usage::

        checker = RobotsPolicyChecker(fetcher)
        if await checker.can_fetch("https://example.org/jobs", "JobHarvest-Bot/0.1"):
            ...
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def can_fetch(self, url: str, user_agent: str) -> bool:
        """Return whether *user_agent* may fetch *url*.

        Missing robots files allow everything; network or parse errors
        return ``False``.
        """
        try:
            parts = urlsplit(url)
            if not parts.scheme or not parts.netloc:
                raise ValueError(f"not an absolute URL: {url!r}")
            rules = await self._rules_for(f"{parts.scheme}://{parts.netloc}", user_agent)
        except (ActionableError, OSError, TimeoutError, ValueError, UnicodeError) as exc:
            logger.warning("Failed to check robots.txt for %s: %s", url, exc)
            return False

        agent_rules = rules.for_agent(user_agent)
        if agent_rules is None:
            return True
        allowed = agent_rules.permits(parts.path or "/")
        logger.debug("robots.txt %s %s for %s", "allows" if allowed else "blocks", url, user_agent)
        return allowed

    def crawl_delay(self, url: str, user_agent: str) -> float | None:
        """Return the Crawl-delay (seconds) for the URL's origin, if cached.

        Never triggers a fetch; call :meth:`can_fetch` first.
        """
        parts = urlsplit(url)
        entry = self._cache.get(f"{parts.scheme}://{parts.netloc}")
        if entry is None:
            return None
        agent_rules = entry.rules.for_agent(user_agent)
        return agent_rules.crawl_delay if agent_rules else None

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _rules_for(self, origin: str, user_agent: str) -> RobotsRules:
        # One robots.txt request per origin at a time; waiters reuse its result
        async with self._locks.setdefault(origin, asyncio.Lock()):
            now = self._clock()
            entry = self._cache.get(origin)
            if entry is not None and now - entry.fetched_at < self._cache_ttl:
                return entry.rules
            return await self._fetch_rules(origin, user_agent, now)

    async def _fetch_rules(self, origin: str, user_agent: str, now: float) -> RobotsRules:
        robots_url = f"{origin}/robots.txt"
        response = await self._fetcher.fetch(robots_url, {"User-Agent": user_agent})
        if not response.ok:
            logger.info(
                "No robots.txt at %s (HTTP %d) — treating as allowed",
                robots_url,
                response.status,
            )
            rules = RobotsRules()
        else:
            rules = parse_robots(response.text)

        self._cache[origin] = _CacheEntry(rules=rules, fetched_at=now)
        return rules
