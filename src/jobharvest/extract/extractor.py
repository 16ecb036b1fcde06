"""Selector-driven listing extraction from a fetched results page.

Each :class:`~jobharvest.targets.models.ScrapeTarget` names CSS
selectors for one results page.  The extractor applies them with
BeautifulSoup and turns every ``job_container`` match into a
:class:`~jobharvest.extract.listing.JobListing`.

Extraction never raises.  A container that cannot be read is skipped
with a warning; a page that cannot be parsed at all yields ``[]``.
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from jobharvest.extract.listing import JobListing, ListingMetadata
from jobharvest.extract.salary import normalize_salary
from jobharvest.extract.skills import extract_skills
from jobharvest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bs4 import Tag

    from jobharvest.targets.models import ScrapeTarget

# Optional fields counted toward ListingMetadata.confidence
_OPTIONAL_FIELDS = (
    "company",
    "location",
    "description",
    "requirements",
    "salary",
    "benefits",
    "posted_date",
    "application_deadline",
)

# ---------------------------------------------------------------------------
# Classification heuristics
# ---------------------------------------------------------------------------

_REMOTE_PATTERN = re.compile(r"\b(remote|work from home|wfh|anywhere)\b", re.IGNORECASE)

_EMPLOYMENT_TYPES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("internship", re.compile(r"\bintern(ship)?\b", re.IGNORECASE)),
    ("contract", re.compile(r"\b(contract|contractor|freelance|temporary)\b", re.IGNORECASE)),
    ("part-time", re.compile(r"\bpart[\s-]?time\b", re.IGNORECASE)),
    ("full-time", re.compile(r"\bfull[\s-]?time\b", re.IGNORECASE)),
)

_EXPERIENCE_LEVELS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("executive", re.compile(r"\b(vp|vice president|director|chief|head of|cto|ceo)\b", re.IGNORECASE)),
    ("senior", re.compile(r"\b(senior|sr\.?|staff|principal|lead)\b", re.IGNORECASE)),
    ("entry", re.compile(r"\b(junior|jr\.?|entry[\s-]level|graduate|new grad)\b", re.IGNORECASE)),
)

_DAYS_AGO = re.compile(r"(\d+)\+?\s*days?\s+ago", re.IGNORECASE)
_HOURS_AGO = re.compile(r"(\d+)\+?\s*hours?\s+ago", re.IGNORECASE)
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}(?:[T ][\d:.+\-Z]+)?")


def classify_employment_type(text: str) -> str:
    """Return the first employment type mentioned, defaulting to full-time."""
    for label, pattern in _EMPLOYMENT_TYPES:
        if pattern.search(text):
            return label
    return "full-time"


def classify_experience_level(title: str) -> str:
    """Infer seniority from the job title; ``mid`` when nothing matches."""
    for label, pattern in _EXPERIENCE_LEVELS:
        if pattern.search(title):
            return label
    return "mid"


def is_remote(*texts: str) -> bool:
    return any(_REMOTE_PATTERN.search(t) for t in texts if t)


def parse_posted_date(text: str, *, now: datetime | None = None) -> datetime | None:
    """Parse relative ("3 days ago", "today") or ISO-8601 date text.

    Returns a timezone-aware UTC datetime, or ``None`` if unrecognized.
    """
    if not text:
        return None
    now = now or datetime.now(timezone.utc)
    lowered = text.strip().lower()

    if "just posted" in lowered or "today" in lowered:
        return now
    if "yesterday" in lowered:
        return now - timedelta(days=1)
    match = _DAYS_AGO.search(lowered)
    if match:
        return now - timedelta(days=int(match.group(1)))
    match = _HOURS_AGO.search(lowered)
    if match:
        return now - timedelta(hours=int(match.group(1)))

    match = _ISO_DATE.search(text)
    if match:
        try:
            parsed = datetime.fromisoformat(match.group(0).replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def listing_id(target_id: str, url: str) -> str:
    """Stable listing id: the same URL on the same target maps to one id."""
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]
    return f"{target_id}-{digest}"


def matches_keywords(listing: JobListing, keywords: Iterable[str]) -> bool:
    """Keep a listing when any keyword appears in its title or description.

    An empty keyword list keeps everything.
    """
    wanted = [k.strip().lower() for k in keywords if k.strip()]
    if not wanted:
        return True
    haystack = f"{listing.title}\n{listing.description}".lower()
    return any(k in haystack for k in wanted)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class ListingExtractor:
    """Turns a raw results page into listings using a target's selectors."""

    def __init__(self, *, parser: str = "html.parser") -> None:
        self._parser = parser

    def extract(
        self,
        raw_page: str,
        target: ScrapeTarget,
        *,
        page_url: str | None = None,
    ) -> list[JobListing]:
        """Return one listing per ``job_container`` that has a title.

        Relative listing URLs are resolved against *page_url* (or the
        target's base URL).
        """
        base = page_url or target.base_url
        try:
            soup = BeautifulSoup(raw_page, self._parser)
            containers = soup.select(target.selectors.job_container)
        except Exception:
            logger.exception("Failed to parse results page for %s", target.id)
            return []

        listings: list[JobListing] = []
        for index, container in enumerate(containers):
            try:
                listing = self._listing_from(container, target, base)
            except Exception as exc:
                logger.warning(
                    "Skipping container %d on %s: %s", index, target.id, exc
                )
                continue
            if listing is not None:
                listings.append(listing)

        logger.debug(
            "Extracted %d/%d listings from %s", len(listings), len(containers), base
        )
        return listings

    def extract_cursor(self, raw_page: str, target: ScrapeTarget) -> str | None:
        """Read the next-page cursor named by the ``next_cursor`` selector.

        Looks for ``data-cursor``, then ``href``, then the element text.
        Returns ``None`` when there is no further page.
        """
        selector = target.selectors.next_cursor
        if not selector:
            return None
        try:
            soup = BeautifulSoup(raw_page, self._parser)
            node = soup.select_one(selector)
        except Exception:
            logger.exception("Failed to read pagination cursor for %s", target.id)
            return None
        if node is None:
            return None
        for attr in ("data-cursor", "href"):
            value = node.get(attr)
            if isinstance(value, str) and value.strip():
                return value.strip()
        text = node.get_text(strip=True)
        return text or None

    # -- per-container ------------------------------------------------------

    def _listing_from(
        self, container: Tag, target: ScrapeTarget, base: str
    ) -> JobListing | None:
        sel = target.selectors

        title = _text(container, sel.title)
        if not title:
            return None

        url = _href(container, sel.url, base)
        if not url:
            logger.debug("Container on %s has no URL; skipping %r", target.id, title)
            return None

        company = _text(container, sel.company)
        location = _text(container, sel.location)
        description = _text(container, sel.description, separator=" ")
        requirements = _texts(container, sel.requirements)
        benefits = _texts(container, sel.benefits)
        salary_text = _text(container, sel.salary)
        salary = normalize_salary(salary_text) if salary_text else None
        posted_date = _date(container, sel.posted_date)
        deadline = _date(container, sel.deadline)

        skills = set(_texts(container, sel.skills, lower=True))
        skills |= extract_skills(description, requirements)

        employment_source = _text(container, sel.employment_type) or f"{title} {description}"

        values = {
            "company": company,
            "location": location,
            "description": description,
            "requirements": requirements,
            "salary": salary,
            "benefits": benefits,
            "posted_date": posted_date,
            "application_deadline": deadline,
        }
        populated = sum(1 for name in _OPTIONAL_FIELDS if values[name])
        confidence = min(1.0, max(0.0, populated / len(_OPTIONAL_FIELDS)))

        return JobListing(
            id=listing_id(target.id, url),
            title=title,
            company=company or "Unknown",
            location=location or "Unknown",
            description=description,
            url=url,
            source=target.id,
            requirements=requirements,
            salary=salary,
            benefits=benefits,
            employment_type=classify_employment_type(employment_source),
            remote=is_remote(location, title),
            experience_level=classify_experience_level(title),
            skills=frozenset(skills),
            posted_date=posted_date,
            application_deadline=deadline,
            metadata=ListingMetadata(confidence=confidence),
        )


# ---------------------------------------------------------------------------
# Selector helpers
# ---------------------------------------------------------------------------


def _text(container: Tag, selector: str | None, *, separator: str = "") -> str:
    if not selector:
        return ""
    node = container.select_one(selector)
    if node is None:
        return ""
    return re.sub(r"\s+", " ", node.get_text(separator, strip=True)).strip()


def _texts(container: Tag, selector: str | None, *, lower: bool = False) -> tuple[str, ...]:
    if not selector:
        return ()
    items = []
    for node in container.select(selector):
        value = node.get_text(" ", strip=True)
        if value:
            items.append(value.lower() if lower else value)
    return tuple(items)


def _href(container: Tag, selector: str, base: str) -> str:
    node = container.select_one(selector)
    if node is None:
        # The container itself may be the link
        node = container if container.name == "a" else None
    if node is None:
        return ""
    href = node.get("href")
    if isinstance(href, str) and href.strip():
        return urljoin(base, href.strip())
    return ""


def _date(container: Tag, selector: str | None) -> datetime | None:
    if not selector:
        return None
    node = container.select_one(selector)
    if node is None:
        return None
    stamp = node.get("datetime")
    if isinstance(stamp, str) and stamp.strip():
        parsed = parse_posted_date(stamp)
        if parsed is not None:
            return parsed
    return parse_posted_date(node.get_text(" ", strip=True))
