"""Salary text normalization.

Turns snippets like ``"$80,000 - $120,000"`` or ``"$25/hour"`` into a
:class:`~jobharvest.extract.listing.SalaryRange`.  Amounts are kept in
the period the posting states; hourly figures are *not* annualized.

No LLM involvement, pure regex on raw text.
"""

from __future__ import annotations

import re

from jobharvest.extract.listing import SalaryRange

# $NNN[,NNN][.NN] optionally followed by a range to a second amount
_SALARY_PATTERN = re.compile(
    r"\$\s*(\d[\d,]*(?:\.\d+)?)"
    r"(?:\s*(?:-|\N{EN DASH}|to)\s*\$?\s*(\d[\d,]*(?:\.\d+)?))?",
    re.IGNORECASE,
)


def _to_number(raw: str) -> float:
    return float(raw.replace(",", ""))


def normalize_salary(text: str) -> SalaryRange | None:
    """Parse the first dollar amount (or range) in *text*.

    Returns ``None`` when no ``$`` amount is present.  The period is
    ``hourly`` when the text mentions "hour", otherwise ``yearly``.

    >>> normalize_salary("$80,000 - $120,000")
    SalaryRange(min=80000.0, max=120000.0, currency='USD', period='yearly')
    """
    match = _SALARY_PATTERN.search(text)
    if not match:
        return None

    low = _to_number(match.group(1))
    high = _to_number(match.group(2)) if match.group(2) else None
    if high is not None and high < low:
        low, high = high, low

    return SalaryRange(
        min=low,
        max=high,
        currency="USD",
        period="hourly" if "hour" in text.lower() else "yearly",
    )
