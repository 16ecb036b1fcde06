"""Listing extraction: page payload to :class:`JobListing` records."""

from jobharvest.extract.extractor import ListingExtractor, matches_keywords
from jobharvest.extract.listing import JobListing, ListingMetadata, SalaryRange
from jobharvest.extract.salary import normalize_salary
from jobharvest.extract.skills import SKILL_KEYWORDS, extract_skills

__all__ = [
    "SKILL_KEYWORDS",
    "JobListing",
    "ListingExtractor",
    "ListingMetadata",
    "SalaryRange",
    "extract_skills",
    "matches_keywords",
    "normalize_salary",
]
