"""CLI command handlers for jobharvest.

Each public function corresponds to a CLI subcommand and encapsulates
the wiring, orchestration, and output for that command.  Handlers
return a process exit code.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import TYPE_CHECKING

from jobharvest.config import Settings, load_settings
from jobharvest.fetch.session import FetcherConfig, PlaywrightFetcher
from jobharvest.logging import configure_file_logging, logger
from jobharvest.pipeline.jobs import JobSettings, JobStatus
from jobharvest.pipeline.orchestrator import JobOrchestrator, job_settings_from
from jobharvest.policy.robots import RobotsPolicyChecker
from jobharvest.storage.listing_store import ChromaListingStore, ListingStore
from jobharvest.targets.registry import ScrapeTargetRegistry

if TYPE_CHECKING:
    from jobharvest.extract.listing import JobListing


def load_cli_settings(args: argparse.Namespace) -> Settings:
    """Load settings and attach a file handler when a log dir is set.

    ``--log-dir`` on the command line overrides ``[logging] log_dir``.
    """
    settings = load_settings(args.config)
    log_dir = args.log_dir or settings.logging.log_dir
    if log_dir:
        level = logging.DEBUG if args.verbose else getattr(logging, settings.logging.level)
        path = configure_file_logging(log_dir, level=level).baseFilename
        logger.debug("Writing log file %s", path)
    return settings


def handle_targets(settings: Settings) -> int:
    """List configured targets with their pacing policy."""
    registry = ScrapeTargetRegistry.from_settings(settings)
    if not len(registry):
        print("No targets configured.")
        return 0
    print("Configured targets:")
    for target in registry.list_all():
        state = "active" if target.is_active else "inactive"
        print(
            f"  - {target.id:<12} {target.name} [{state}] "
            f"{target.rate_limit.requests_per_minute}/min, "
            f"{target.rate_limit.delay_between_requests:.1f}s delay, "
            f"{target.pagination.max_pages} page(s) by {target.pagination.kind}"
        )
    return 0


def handle_check(settings: Settings, args: argparse.Namespace) -> int:
    """Probe robots.txt and rate-limit readiness for one target."""
    registry = ScrapeTargetRegistry.from_settings(settings)

    async def _run() -> int:
        async with PlaywrightFetcher(FetcherConfig.from_scraper_config(settings.scraper)) as fetcher:
            orchestrator = JobOrchestrator.from_settings(
                settings, registry, fetcher, _NullStore()
            )
            result = await orchestrator.test_target(args.target)
        if result.success:
            print(f"Target '{args.target}' is ready to scrape.")
            return 0
        print(f"Target '{args.target}' is not ready: {result.error}")
        return 1

    return asyncio.run(_run())


def handle_robots(settings: Settings, args: argparse.Namespace) -> int:
    """Report whether robots.txt lets an agent fetch a URL."""
    agent = args.agent or settings.scraper.user_agent

    async def _run() -> int:
        async with PlaywrightFetcher(FetcherConfig.from_scraper_config(settings.scraper)) as fetcher:
            checker = RobotsPolicyChecker(fetcher, cache_ttl=settings.scraper.robots_cache_ttl)
            allowed = await checker.can_fetch(args.url, agent)
            delay = checker.crawl_delay(args.url, agent)
        print(f"{'ALLOWED' if allowed else 'BLOCKED'}: {args.url} for '{agent}'")
        if delay is not None:
            print(f"  Crawl-delay: {delay:g}s")
        return 0 if allowed else 1

    return asyncio.run(_run())


def handle_scrape(settings: Settings, args: argparse.Namespace) -> int:
    """Run one scrape job to completion and print its outcome."""
    registry = ScrapeTargetRegistry.from_settings(settings)
    defaults = job_settings_from(settings.jobs)
    job_settings = JobSettings(
        max_listings=args.max_listings or defaults.max_listings,
        respect_policy=defaults.respect_policy and not args.ignore_robots,
        use_proxy=args.use_proxy or defaults.use_proxy,
        retry_attempts=defaults.retry_attempts,
    )
    store = ChromaListingStore.from_settings(settings)

    async def _run() -> int:
        async with PlaywrightFetcher(FetcherConfig.from_scraper_config(settings.scraper)) as fetcher:
            orchestrator = JobOrchestrator.from_settings(settings, registry, fetcher, store)
            try:
                job_id = await orchestrator.start(
                    args.target, args.keywords, args.location, job_settings
                )
                job = await orchestrator.wait(job_id)
            finally:
                await orchestrator.shutdown()

        if args.json:
            print(json.dumps(job.to_dict(), indent=2))
        else:
            print(f"\n{'=' * 60}")
            print(f" Scrape job {job.id}: {job.status}")
            print(f"{'=' * 60}")
            print(f" Target:             {job.target_id}")
            print(f" Keywords:           {' '.join(job.keywords)}")
            print(f" Pages scraped:      {job.progress.pages_scraped}/{job.progress.total_pages}")
            print(f" Listings found:     {job.progress.listings_found}")
            print(f" Listings stored:    {job.progress.listings_processed}")
            print(f" Errors:             {len(job.errors)}")
            print(f"{'=' * 60}")
            for error in job.errors:
                print(f"  - {error}")
        return 1 if job.status is JobStatus.FAILED else 0

    return asyncio.run(_run())


def handle_similar(settings: Settings, args: argparse.Namespace) -> int:
    """Print stored listings most similar to free text."""
    store = ChromaListingStore.from_settings(settings)

    async def _run() -> int:
        hits = await store.search(args.text, n_results=args.n)
        if not hits:
            print("No stored listings yet. Run 'scrape' first.")
            return 0
        for i, hit in enumerate(hits, 1):
            print(f"{i}. [{hit.similarity:.2f}] {hit.title}")
            print(f"   {hit.company} | {hit.url}")
            if hit.skills:
                print(f"   Skills: {', '.join(hit.skills)}")
        return 0

    return asyncio.run(_run())


class _NullStore(ListingStore):
    """Store for commands that never persist listings."""

    async def store(self, listing: JobListing) -> str:
        return listing.id
