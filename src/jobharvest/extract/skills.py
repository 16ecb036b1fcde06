"""Fixed skill vocabulary and containment-based tagging."""

from __future__ import annotations

from collections.abc import Iterable

SKILL_KEYWORDS: tuple[str, ...] = (
    "javascript",
    "typescript",
    "python",
    "java",
    "react",
    "angular",
    "vue",
    "node.js",
    "express",
    "django",
    "flask",
    "spring",
    "aws",
    "azure",
    "gcp",
    "docker",
    "kubernetes",
    "postgresql",
    "mysql",
    "mongodb",
    "redis",
    "elasticsearch",
    "graphql",
    "rest",
    "microservices",
    "ci/cd",
    "git",
    "jenkins",
    "terraform",
)


def extract_skills(
    description: str,
    requirements: Iterable[str] = (),
    *,
    vocabulary: Iterable[str] = SKILL_KEYWORDS,
) -> frozenset[str]:
    """Return the vocabulary entries contained in description + requirements.

    Matching is plain lower-case substring containment, so ``java``
    also fires on "javascript".
    """
    text = " ".join([description, *requirements]).lower()
    return frozenset(skill for skill in vocabulary if skill in text)
