"""Job orchestrator: lifecycle, page loop and persistence for scrape jobs.

The orchestrator is the composition point for the scraping core:

1. Validate the target and register a ``pending`` job
2. Check robots.txt once per job (when the job respects policy)
3. Walk result pages in order, each gated by the per-target rate limiter
4. Extract listings and filter them by keyword
5. Tag skills and persist every listing through the store
6. Mark the job terminal

Each job runs as its own asyncio task.  Callers get the job id back
immediately and poll :meth:`JobOrchestrator.get` for progress; failures
land in the job's error list rather than propagating to the caller.

Pause and cancel are cooperative: they flip the job status, and the
page loop (or, once paging is done, the store loop) notices at its next
step.  Task and target bookkeeping is dropped once a job is terminal;
the job record itself stays queryable.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from jobharvest.errors import ActionableError
from jobharvest.extract.extractor import ListingExtractor, matches_keywords
from jobharvest.extract.skills import extract_skills
from jobharvest.logging import logger
from jobharvest.pipeline.jobs import JobSettings, JobStatus, ScrapeJob, TargetCheck
from jobharvest.policy.rate_limit import RateLimiter
from jobharvest.policy.robots import RobotsPolicyChecker
from jobharvest.targets.models import PaginationKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from jobharvest.config import JobDefaults, Settings
    from jobharvest.extract.listing import JobListing
    from jobharvest.fetch.base import PageFetcher
    from jobharvest.policy.rate_limit import RateLimiterState
    from jobharvest.storage.listing_store import ListingStore
    from jobharvest.targets.models import ScrapeTarget
    from jobharvest.targets.registry import ScrapeTargetRegistry

CANCELLED_MESSAGE = "Job cancelled by user"
INTERRUPTED_MESSAGE = "Job interrupted before completion"


class JobOrchestrator:
    """Runs scrape jobs against registered targets.

    Usage::

        orchestrator = JobOrchestrator(registry, fetcher, store)
        job_id = await orchestrator.start("indeed", ["python"], "Remote")
        job = await orchestrator.wait(job_id)
    """

    def __init__(
        self,
        registry: ScrapeTargetRegistry,
        fetcher: PageFetcher,
        store: ListingStore,
        *,
        policy_checker: RobotsPolicyChecker | None = None,
        rate_limiter: RateLimiter | None = None,
        extractor: ListingExtractor | None = None,
        job_defaults: JobSettings | None = None,
        page_timeout: float = 30.0,
        rate_limit_max_waits: int = 5,
    ) -> None:
        self._registry = registry
        self._fetcher = fetcher
        self._store = store
        self._policy = policy_checker or RobotsPolicyChecker(fetcher)
        self._rate_limiter = rate_limiter or RateLimiter()
        self._extractor = extractor or ListingExtractor()
        self._job_defaults = job_defaults or JobSettings()
        self._page_timeout = page_timeout
        self._rate_limit_max_waits = rate_limit_max_waits

        self._jobs: dict[str, ScrapeJob] = {}
        self._targets: dict[str, ScrapeTarget] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        registry: ScrapeTargetRegistry,
        fetcher: PageFetcher,
        store: ListingStore,
    ) -> JobOrchestrator:
        """Wire an orchestrator from validated settings."""
        return cls(
            registry,
            fetcher,
            store,
            policy_checker=RobotsPolicyChecker(
                fetcher, cache_ttl=settings.scraper.robots_cache_ttl
            ),
            job_defaults=job_settings_from(settings.jobs),
            page_timeout=settings.scraper.page_timeout,
            rate_limit_max_waits=settings.scraper.rate_limit_max_waits,
        )

    # -- lifecycle ----------------------------------------------------------

    async def start(
        self,
        target_id: str,
        keywords: Sequence[str],
        location: str | None = None,
        settings: JobSettings | None = None,
    ) -> str:
        """Register a ``pending`` job and launch it in the background.

        Raises:
            ActionableError: ``TARGET_UNAVAILABLE`` when the target is
                unknown or inactive; ``CONFIG`` when a proxy is requested
                but the fetcher has none.
        """
        target = self._registry.get(target_id)
        if target is None:
            raise ActionableError.target_unavailable(target_id, "no such target is registered")
        if not target.is_active:
            raise ActionableError.target_unavailable(target_id, "target is inactive")

        job_settings = settings or self._job_defaults
        if job_settings.use_proxy and not self._fetcher.supports_proxy:
            raise ActionableError.config(
                field_name="scraper.proxy_server",
                reason="use_proxy was requested but no proxy server is configured",
                suggestion="Set proxy_server in [scraper] or start the job without use_proxy",
            )

        job = ScrapeJob(
            id=f"scrape-{uuid.uuid4().hex[:12]}",
            target_id=target_id,
            keywords=[k for k in keywords if k.strip()],
            location=location,
            settings=job_settings,
        )
        job.progress.total_pages = target.pagination.max_pages
        self._jobs[job.id] = job
        # Snapshot: a registry reload mid-job must not change this job's target
        self._targets[job.id] = target
        self._tasks[job.id] = asyncio.create_task(self._run(job, target), name=job.id)

        logger.info(
            "Started job %s on %s for %r (location=%s)",
            job.id,
            target_id,
            " ".join(job.keywords),
            location or "any",
        )
        return job.id

    def pause(self, job_id: str) -> bool:
        """Pause a running job at its next page or listing boundary.

        Returns ``False`` (and changes nothing) unless the job is ``running``.
        """
        job = self._job(job_id)
        if job.status is not JobStatus.RUNNING:
            return False
        job.transition(JobStatus.PAUSED)
        logger.info(
            "Paused job %s after %d page(s), %d listing(s) stored",
            job_id,
            job.progress.pages_scraped,
            job.persisted,
        )
        return True

    def resume(self, job_id: str) -> bool:
        """Resume a paused job from where it stopped.

        Paging continues from ``progress.pages_scraped``; a job paused while
        storing continues with the next unstored listing.
        """
        job = self._job(job_id)
        if job.status is not JobStatus.PAUSED:
            return False
        job.transition(JobStatus.RUNNING)

        task = self._tasks.get(job_id)
        if task is None or task.done():
            self._tasks[job_id] = asyncio.create_task(
                self._run(job, self._targets[job_id], resumed=True), name=job_id
            )
        logger.info(
            "Resumed job %s at page %d, %d listing(s) stored",
            job_id,
            job.progress.pages_scraped,
            job.persisted,
        )
        return True

    def cancel(self, job_id: str) -> bool:
        """Fail a pending, running or paused job with a cancellation error."""
        job = self._job(job_id)
        if job.status.is_terminal:
            return False
        job.errors.append(CANCELLED_MESSAGE)
        job.transition(JobStatus.FAILED)
        task = self._tasks.get(job_id)
        if task is None or task.done():
            # Paused: no task left to notice the cancellation
            self._forget(job_id)
        logger.info("Cancelled job %s", job_id)
        return True

    async def wait(self, job_id: str) -> ScrapeJob:
        """Await the job's current task and return the job.

        A paused job's task exits, so this returns with status ``paused``.
        """
        job = self._job(job_id)
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return job

    async def shutdown(self) -> None:
        """Cancel outstanding job tasks; every unfinished job ends ``failed``."""
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        # Paused jobs, and tasks cancelled before their first step
        for job in self._jobs.values():
            self._fail(job, INTERRUPTED_MESSAGE)
        self._tasks.clear()
        self._targets.clear()

    # -- queries ------------------------------------------------------------

    def get(self, job_id: str) -> ScrapeJob | None:
        return self._jobs.get(job_id)

    def list_all(self) -> list[ScrapeJob]:
        return list(self._jobs.values())

    def list_active(self) -> list[ScrapeJob]:
        return [
            j
            for j in self._jobs.values()
            if j.status in (JobStatus.RUNNING, JobStatus.PENDING)
        ]

    def list_targets(self) -> list[ScrapeTarget]:
        return self._registry.list_all()

    def list_active_targets(self) -> list[ScrapeTarget]:
        return self._registry.list_active()

    def rate_limit_status(self, target_id: str) -> RateLimiterState | None:
        return self._rate_limiter.status(target_id)

    async def test_target(self, target_id: str) -> TargetCheck:
        """Probe whether a job against *target_id* could start right now.

        Checks existence, robots.txt for the base URL, and a rate-limit
        slot (which is released again, not consumed).
        """
        target = self._registry.get(target_id)
        if target is None:
            return TargetCheck(success=False, error=f"Target {target_id} not found")
        if not target.is_active:
            return TargetCheck(success=False, error=f"Target {target_id} is inactive")

        if not await self._policy.can_fetch(target.base_url, target.user_agent):
            return TargetCheck(success=False, error="Robots.txt disallows scraping")

        if not self._rate_limiter.can_proceed(target.id, target.rate_limit):
            wait = self._rate_limiter.retry_after(target.id)
            return TargetCheck(
                success=False, error=f"Rate limit exceeded; retry in {wait:.0f}s"
            )
        self._rate_limiter.release(target.id)
        return TargetCheck(success=True)

    # -- run ----------------------------------------------------------------

    async def _run(self, job: ScrapeJob, target: ScrapeTarget, *, resumed: bool = False) -> None:
        try:
            if not resumed:
                if job.status is not JobStatus.PENDING:
                    # Cancelled before the task got scheduled
                    return
                job.transition(JobStatus.RUNNING)
                job.started_at = datetime.now(timezone.utc)

                if job.settings.respect_policy and not await self._policy.can_fetch(
                    target.base_url, target.user_agent
                ):
                    raise ActionableError.policy_disallowed(target.base_url, target.user_agent)

            if not job.pages_done:
                if not await self._scrape_pages(job, target):
                    return
                job.pages_done = True

            if not await self._persist(job):
                return

            if job.status is JobStatus.RUNNING:
                job.transition(JobStatus.COMPLETED)
                logger.info(
                    "Job %s completed: %d page(s), %d/%d listing(s) stored, %d error(s)",
                    job.id,
                    job.progress.pages_scraped,
                    job.progress.listings_processed,
                    job.progress.listings_found,
                    len(job.errors),
                )
        except asyncio.CancelledError:
            self._fail(job, INTERRUPTED_MESSAGE)
            raise
        except ActionableError as exc:
            logger.error("Job %s failed: %s", job.id, exc.error)
            self._fail(job, exc.error)
        except Exception as exc:
            logger.exception("Job %s failed unexpectedly", job.id)
            self._fail(job, ActionableError.from_exception(exc, "orchestrator", "run").error)
        finally:
            if job.status.is_terminal and self._tasks.get(job.id) is asyncio.current_task():
                self._forget(job.id)

    async def _scrape_pages(self, job: ScrapeJob, target: ScrapeTarget) -> bool:
        """Walk pages from ``progress.pages_scraped``.

        Returns ``True`` when the loop ran to its natural end and the job
        should be persisted, ``False`` when it was paused or cancelled.
        """
        max_pages = target.pagination.max_pages
        is_cursor = target.pagination.kind is PaginationKind.CURSOR
        page = job.progress.pages_scraped

        while page < max_pages:
            if job.status is not JobStatus.RUNNING:
                break
            if len(job.listings) >= job.settings.max_listings:
                logger.info(
                    "Job %s reached max_listings=%d", job.id, job.settings.max_listings
                )
                break
            if is_cursor and page > 0 and job.cursor is None:
                logger.info("Job %s: no further cursor after page %d", job.id, page)
                break

            failure: str | None = None
            try:
                if not await self._acquire_slot(job, target):
                    break
                try:
                    found = await self._scrape_page(job, target, page)
                except BaseException:
                    self._rate_limiter.release(target.id)
                    raise
                self._rate_limiter.record_request(target.id)
            except ActionableError as exc:
                failure = exc.error
            except TimeoutError:
                failure = f"Timed out after {self._page_timeout:.0f}s"
            except Exception as exc:
                failure = ActionableError.from_exception(exc, target.id, f"page {page}").error

            if failure is not None:
                job.errors.append(f"Page {page} failed: {failure}")
                logger.warning("Job %s page %d failed: %s", job.id, page, failure)
                if len(job.errors) > job.settings.retry_attempts:
                    raise ActionableError.too_many_failures(
                        job.id, len(job.errors), job.settings.retry_attempts
                    )
                page += 1
                continue

            job.listings.extend(found)
            job.progress.pages_scraped = page + 1
            job.progress.listings_found = len(job.listings)
            logger.info(
                "Job %s page %d: %d listing(s) (%d total)",
                job.id,
                page,
                len(found),
                len(job.listings),
            )

            crawl_delay = self._policy.crawl_delay(target.base_url, target.user_agent) or 0.0
            await self._rate_limiter.wait(
                max(target.rate_limit.delay_between_requests, crawl_delay)
            )
            page += 1

        return job.status is JobStatus.RUNNING

    async def _acquire_slot(self, job: ScrapeJob, target: ScrapeTarget) -> bool:
        """Wait (bounded) for a rate-limit slot.

        Returns ``False`` if the job stopped running while waiting.
        """
        waits = 0
        while not self._rate_limiter.can_proceed(target.id, target.rate_limit):
            if waits >= self._rate_limit_max_waits:
                raise ActionableError.rate_limited(target.id, waits)
            delay = max(
                target.rate_limit.delay_between_requests,
                self._rate_limiter.retry_after(target.id),
            )
            logger.info("Job %s rate limited on %s; waiting %.1fs", job.id, target.id, delay)
            await self._rate_limiter.wait(delay)
            waits += 1
            if job.status is not JobStatus.RUNNING:
                return False
        return True

    async def _scrape_page(
        self, job: ScrapeJob, target: ScrapeTarget, page: int
    ) -> list[JobListing]:
        url = target.search_url(
            job.keywords,
            job.location,
            page_index=page,
            cursor=job.cursor,
        )
        logger.debug("Job %s fetching %s", job.id, url)
        response = await asyncio.wait_for(
            self._fetcher.fetch(
                url, target.request_headers(), use_proxy=job.settings.use_proxy
            ),
            timeout=self._page_timeout,
        )
        if not response.ok:
            raise ActionableError.page_fetch(target.id, url, f"HTTP {response.status}")

        if target.pagination.kind is PaginationKind.CURSOR:
            job.cursor = self._extractor.extract_cursor(response.text, target)

        listings = self._extractor.extract(response.text, target, page_url=response.url or url)
        return [item for item in listings if matches_keywords(item, job.keywords)]

    async def _persist(self, job: ScrapeJob) -> bool:
        """Tag skills and store accumulated listings from ``job.persisted``.

        Per-listing failures become job errors; the job still completes.
        Returns ``False`` when the job was paused or cancelled part way.
        """
        while job.persisted < len(job.listings):
            if job.status is not JobStatus.RUNNING:
                return False
            listing = job.listings[job.persisted]
            tagged = replace(
                listing,
                skills=listing.skills | extract_skills(listing.description, listing.requirements),
            )
            try:
                await self._store.store(tagged)
            except ActionableError as exc:
                job.errors.append(f"Failed to process listing {listing.id}: {exc.error}")
                logger.warning("Job %s: %s", job.id, exc.error)
            except Exception as exc:
                job.errors.append(f"Failed to process listing {listing.id}: {exc}")
                logger.warning("Job %s: could not store %s: %s", job.id, listing.id, exc)
            else:
                job.progress.listings_processed += 1
            job.persisted += 1
        return job.status is JobStatus.RUNNING

    # -- helpers ------------------------------------------------------------

    def _job(self, job_id: str) -> ScrapeJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise ActionableError.unknown_job(job_id)
        return job

    def _forget(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        self._targets.pop(job_id, None)

    @staticmethod
    def _fail(job: ScrapeJob, message: str) -> None:
        if job.status.is_terminal:
            return
        job.errors.append(message)
        job.transition(JobStatus.FAILED)


def job_settings_from(defaults: JobDefaults) -> JobSettings:
    """Build per-job settings from the ``[jobs]`` config defaults."""
    return JobSettings(
        max_listings=defaults.max_listings,
        respect_policy=defaults.respect_policy,
        use_proxy=defaults.use_proxy,
        retry_attempts=defaults.retry_attempts,
    )
