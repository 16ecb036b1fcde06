"""Scrape job record and its status state machine.

Status moves only along these edges::

    pending ──> running ──> completed
       │          │  ^
       │          v  │
       │        paused
       │          │
       └──────────┴──────> failed   (running/paused/pending)

``completed`` and ``failed`` are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from jobharvest.errors import ActionableError
from jobharvest.extract.listing import JobListing


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


@dataclass
class JobProgress:
    pages_scraped: int = 0
    total_pages: int = 0
    listings_found: int = 0
    listings_processed: int = 0


@dataclass(frozen=True)
class JobSettings:
    """Per-job knobs; defaults come from the ``[jobs]`` config section."""

    max_listings: int = 1000
    respect_policy: bool = True
    use_proxy: bool = False
    retry_attempts: int = 3


@dataclass(frozen=True)
class TargetCheck:
    """Outcome of a target readiness probe."""

    success: bool
    error: str | None = None


@dataclass
class ScrapeJob:
    """One run of one target for one keyword query.

    Owned and mutated by the orchestrator; callers read it by polling.
    Accumulated listings and the positions of both the page loop and the
    store loop are kept here so a paused job can resume where it stopped.
    """

    id: str
    target_id: str
    keywords: list[str]
    location: str | None = None
    status: JobStatus = JobStatus.PENDING
    started_at: datetime | None = None
    ended_at: datetime | None = None
    progress: JobProgress = field(default_factory=JobProgress)
    errors: list[str] = field(default_factory=list)
    settings: JobSettings = field(default_factory=JobSettings)
    listings: list[JobListing] = field(default_factory=list, repr=False)
    cursor: str | None = field(default=None, repr=False)
    # Set once the page loop has finished; resume then goes straight to storing
    pages_done: bool = field(default=False, repr=False)
    # Index of the next listing to store
    persisted: int = field(default=0, repr=False)

    def can_transition(self, new_status: JobStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def transition(self, new_status: JobStatus) -> None:
        """Move to *new_status* or raise if the edge does not exist."""
        if not self.can_transition(new_status):
            raise ActionableError.invalid_transition(self.id, self.status, new_status)
        self.status = new_status
        if new_status.is_terminal:
            self.ended_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target_id": self.target_id,
            "keywords": list(self.keywords),
            "location": self.location,
            "status": str(self.status),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "progress": {
                "pages_scraped": self.progress.pages_scraped,
                "total_pages": self.progress.total_pages,
                "listings_found": self.progress.listings_found,
                "listings_processed": self.progress.listings_processed,
            },
            "errors": list(self.errors),
            "settings": {
                "max_listings": self.settings.max_listings,
                "respect_policy": self.settings.respect_policy,
                "use_proxy": self.settings.use_proxy,
                "retry_attempts": self.settings.retry_attempts,
            },
        }
