"""Scraped listing data contract, consumed by the orchestrator and store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class SalaryRange:
    """Normalized salary figure; ``period`` is ``hourly`` or ``yearly``."""

    min: float | None = None
    max: float | None = None
    currency: str = "USD"
    period: str = "yearly"


@dataclass(frozen=True)
class ListingMetadata:
    """Provenance of a listing: when it was scraped and how complete it is."""

    scraped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    confidence: float = 0.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"confidence must be within [0, 1], got {self.confidence}"
            raise ValueError(msg)


@dataclass(frozen=True)
class JobListing:
    """One scraped job posting.

    Created by the extractor from a single results page and never
    mutated afterwards; enrichment produces a new instance via
    :func:`dataclasses.replace`.
    """

    id: str
    title: str
    company: str
    location: str
    description: str
    url: str
    source: str
    requirements: tuple[str, ...] = ()
    salary: SalaryRange | None = None
    benefits: tuple[str, ...] = ()
    employment_type: str = "full-time"
    remote: bool = False
    experience_level: str = "mid"
    skills: frozenset[str] = frozenset()
    posted_date: datetime | None = None
    application_deadline: datetime | None = None
    metadata: ListingMetadata = field(default_factory=ListingMetadata)

    def document_text(self) -> str:
        """Plain-text rendering used for embedding and similarity search."""
        parts = [
            self.title,
            f"{self.company}, {self.location}",
            self.description,
            *self.requirements,
        ]
        if self.skills:
            parts.append("Skills: " + ", ".join(sorted(self.skills)))
        return "\n".join(p for p in parts if p)

    def to_metadata(self) -> dict[str, Any]:
        """Flat scalar mapping for vector-store metadata.

        Sequences are JSON-encoded; ``None`` values are dropped because
        the store only accepts str, int, float and bool.
        """
        meta: dict[str, Any] = {
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "url": self.url,
            "source": self.source,
            "employment_type": self.employment_type,
            "remote": self.remote,
            "experience_level": self.experience_level,
            "requirements": json.dumps(list(self.requirements)),
            "benefits": json.dumps(list(self.benefits)),
            "skills": json.dumps(sorted(self.skills)),
            "scraped_at": self.metadata.scraped_at.isoformat(),
            "confidence": self.metadata.confidence,
        }
        if self.salary is not None:
            meta["salary_currency"] = self.salary.currency
            meta["salary_period"] = self.salary.period
            if self.salary.min is not None:
                meta["salary_min"] = self.salary.min
            if self.salary.max is not None:
                meta["salary_max"] = self.salary.max
        if self.posted_date is not None:
            meta["posted_date"] = self.posted_date.isoformat()
        if self.application_deadline is not None:
            meta["application_deadline"] = self.application_deadline.isoformat()
        return meta
