"""Actionable error hierarchy for jobharvest.

Errors are classified by **recovery path**, not by origin.
Each error type carries structured guidance for three audiences:
  - The calling code (typed ``error_type`` for routing)
  - The human operator (``suggestion`` + ``troubleshooting`` steps)
  - An AI agent (``ai_guidance`` with concrete next actions)

Scrape jobs never raise these out of their background task: the
orchestrator records ``error`` strings on the job and callers discover
failures by polling job state.  Only job *start* raises directly.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class ErrorType(StrEnum):
    """Recovery-path categories: what to *do*, not where it came from."""

    CONFIG = "config"
    CONNECTION = "connection"
    EMBEDDING = "embedding"
    INDEX = "index"
    JOB = "job"
    PAGE_FETCH = "page_fetch"
    PARSE = "parse"
    PERSISTENCE = "persistence"
    POLICY = "policy"
    RATE_LIMIT = "rate_limit"
    TARGET_UNAVAILABLE = "target_unavailable"
    VALIDATION = "validation"
    UNEXPECTED = "unexpected"


# ---------------------------------------------------------------------------
# Guidance dataclasses
# ---------------------------------------------------------------------------


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


@dataclass(frozen=True)
class AIGuidance:
    """Next actions for an agent driving the CLI on the operator's behalf."""

    action_required: str
    command: str | None = None
    discovery_tool: str | None = None
    checks: list[str] | None = None
    steps: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(asdict(self))


@dataclass(frozen=True)
class Troubleshooting:
    """Ordered recovery steps shown to the operator."""

    steps: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"steps": list(self.steps)}


# ---------------------------------------------------------------------------
# Base actionable error
# ---------------------------------------------------------------------------


@dataclass
class ActionableError(Exception):
    """Error carrying its own recovery guidance.

    Raise through the factory classmethods; each one knows which
    suggestion and checks fit its failure.
    """

    error: str
    error_type: ErrorType
    service: str

    success: bool = field(default=False, init=False)
    suggestion: str | None = None
    ai_guidance: AIGuidance | None = None
    troubleshooting: Troubleshooting | None = None
    context: dict[str, Any] | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def __post_init__(self) -> None:
        super().__init__(self.error)

    # -- serialisation -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict for ``--json`` output; ``None`` values are left out."""
        return _compact(
            {
                "success": self.success,
                "error": self.error,
                "error_type": str(self.error_type),
                "service": self.service,
                "timestamp": self.timestamp,
                "suggestion": self.suggestion,
                "ai_guidance": self.ai_guidance.to_dict() if self.ai_guidance else None,
                "troubleshooting": (
                    self.troubleshooting.to_dict() if self.troubleshooting else None
                ),
                "context": self.context,
            }
        )

    # -- configuration and input ---------------------------------------------

    @classmethod
    def config(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Missing or invalid configuration in settings.toml."""
        return cls(
            error=f"Configuration error — {field_name}: {reason}",
            error_type=ErrorType.CONFIG,
            service="settings.toml",
            suggestion=suggestion or f"Fix '{field_name}' in config/settings.toml",
            ai_guidance=AIGuidance(
                action_required=f"Correct the '{field_name}' value in config/settings.toml",
                checks=[
                    "Verify config/settings.toml exists",
                    f"Verify '{field_name}' is present and valid",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Open config/settings.toml",
                    f"2. Locate the '{field_name}' setting",
                    f"3. Fix the issue: {reason}",
                    "4. Save and re-run",
                ]
            ),
        )

    @classmethod
    def validation(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Input validation failure (TOML values, CLI args, etc.)."""
        return cls(
            error=f"Validation error — {field_name}: {reason}",
            error_type=ErrorType.VALIDATION,
            service="validation",
            suggestion=suggestion or f"Fix '{field_name}': {reason}",
            ai_guidance=AIGuidance(
                action_required=f"Correct the value for '{field_name}'",
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Check the value of '{field_name}'",
                    f"2. Issue: {reason}",
                    "3. Correct and retry",
                ]
            ),
        )

    @classmethod
    def parse(
        cls,
        source: str,
        selector: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Document structure changed or is malformed; selector no longer matches."""
        return cls(
            error=f"Parse failure on {source} — selector '{selector}': {raw_error}",
            error_type=ErrorType.PARSE,
            service=source,
            suggestion=suggestion or f"The {source} page structure may have changed; update the selector",
            ai_guidance=AIGuidance(
                action_required=f"Inspect {source} and update selector '{selector}'",
                checks=[
                    f"Open a {source} search result page in a real browser",
                    f"Verify the CSS selector '{selector}' still matches",
                    "Update [targets.<id>.selectors] if the page structure changed",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Open a {source} search page in your browser",
                    "2. Inspect the page structure with DevTools",
                    f"3. Verify the selector '{selector}' still exists",
                    "4. Update the target's selectors in config/settings.toml",
                ]
            ),
        )

    # -- external services ---------------------------------------------------

    @classmethod
    def connection(
        cls,
        service: str,
        url: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Service unreachable (job board, Ollama, ChromaDB)."""
        return cls(
            error=f"Cannot connect to {service} at {url}: {raw_error}",
            error_type=ErrorType.CONNECTION,
            service=service,
            suggestion=suggestion or f"Verify {service} is reachable at {url}",
            ai_guidance=AIGuidance(
                action_required=f"Verify {service} is reachable",
                command=f"curl -sI {url}",
                checks=[
                    f"Is {service} up?",
                    f"Is the URL {url} correct in settings.toml?",
                    "Is a VPN, proxy or firewall blocking the connection?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Verify {service} is up",
                    f"2. Test connectivity: curl -sI {url}",
                    "3. Check the URL in config/settings.toml",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def embedding(
        cls,
        model: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Ollama embedding call failure after retries."""
        return cls(
            error=f"Embedding call failed for model '{model}': {raw_error}",
            error_type=ErrorType.EMBEDDING,
            service="Ollama",
            suggestion=suggestion or f"Verify model '{model}' is pulled and Ollama is responsive",
            ai_guidance=AIGuidance(
                action_required="Verify Ollama model availability",
                command=f"ollama list | grep {model}",
                checks=[
                    "Is Ollama running?",
                    f"Is model '{model}' pulled? Run: ollama pull {model}",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Check Ollama is running: ollama list",
                    f"2. If model missing: ollama pull {model}",
                    "3. Re-run the command",
                ]
            ),
        )

    @classmethod
    def index(
        cls,
        collection: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """ChromaDB collection missing when a query needs it."""
        return cls(
            error=f"Collection '{collection}' is empty or missing — run a scrape first",
            error_type=ErrorType.INDEX,
            service="ChromaDB",
            suggestion=suggestion or f"Run 'python -m jobharvest scrape' to populate '{collection}'",
            ai_guidance=AIGuidance(
                action_required=f"Populate the '{collection}' collection before querying",
                command="python -m jobharvest scrape --target <id> --keywords <kw>",
                checks=[f"Does the chroma persist_dir contain the '{collection}' collection?"],
            ),
        )

    # -- scrape job lifecycle ------------------------------------------------

    @classmethod
    def target_unavailable(
        cls,
        target_id: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Requested target is unknown or switched off; no job is created."""
        return cls(
            error=f"Target {target_id} is not available: {reason}",
            error_type=ErrorType.TARGET_UNAVAILABLE,
            service="target_registry",
            suggestion=suggestion or f"Pick an active target or enable [targets.{target_id}]",
            ai_guidance=AIGuidance(
                action_required="Choose a configured, active scrape target",
                discovery_tool="python -m jobharvest targets",
                checks=[
                    f"Is [targets.{target_id}] defined in config/settings.toml?",
                    f"Is [targets.{target_id}].is_active set to true?",
                ],
            ),
        )

    @classmethod
    def policy_disallowed(
        cls,
        url: str,
        user_agent: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """robots.txt forbids (or could not confirm) crawling the target."""
        return cls(
            error=f"Robots.txt disallows scraping for {url} (agent '{user_agent}')",
            error_type=ErrorType.POLICY,
            service="robots.txt",
            suggestion=suggestion or "Respect the site's crawl policy — do not scrape this target",
            ai_guidance=AIGuidance(
                action_required="Do not retry; the site's policy forbids this crawl",
                command=f"python -m jobharvest robots {url}",
                checks=[
                    "Was robots.txt unreachable (fail-closed) rather than explicitly disallowing?",
                    "Is the target's base_url correct?",
                ],
            ),
        )

    @classmethod
    def page_fetch(
        cls,
        target_id: str,
        url: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """One results page could not be fetched; transient, counted per job."""
        return cls(
            error=f"Page fetch failed for {target_id} at {url}: {raw_error}",
            error_type=ErrorType.PAGE_FETCH,
            service=target_id,
            suggestion=suggestion or "Transient failure; the job retries remaining pages",
            context={"url": url},
        )

    @classmethod
    def rate_limited(
        cls,
        target_id: str,
        waits: int,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Rate limit did not clear within the bounded number of waits."""
        return cls(
            error=f"Rate limit for {target_id} did not clear after {waits} waits",
            error_type=ErrorType.RATE_LIMIT,
            service=target_id,
            suggestion=suggestion or "Too many concurrent jobs on one target; run fewer at once",
            ai_guidance=AIGuidance(
                action_required="Reduce concurrent jobs for this target or raise rate_limit_max_waits",
                discovery_tool="python -m jobharvest check --target " + target_id,
            ),
        )

    @classmethod
    def persistence(
        cls,
        listing_id: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """A single listing could not be stored; the job carries on."""
        return cls(
            error=f"Failed to persist listing {listing_id}: {raw_error}",
            error_type=ErrorType.PERSISTENCE,
            service="listing_store",
            suggestion=suggestion or "Check the ChromaDB persist_dir and Ollama embedding model",
        )

    @classmethod
    def too_many_failures(
        cls,
        job_id: str,
        failures: int,
        retry_attempts: int,
    ) -> ActionableError:
        """Page failures crossed the job's retry budget."""
        return cls(
            error=f"Too many page failures ({failures} > {retry_attempts} retry attempts)",
            error_type=ErrorType.PAGE_FETCH,
            service="orchestrator",
            suggestion="Inspect the job's error list; the site may be down or blocking the bot",
            context={"job_id": job_id},
        )

    @classmethod
    def unknown_job(
        cls,
        job_id: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Operation requested for a job id the orchestrator never issued."""
        return cls(
            error=f"Scrape job '{job_id}' not found",
            error_type=ErrorType.JOB,
            service="orchestrator",
            suggestion=suggestion or "Use a job id returned by start()",
            ai_guidance=AIGuidance(
                action_required="Use a valid job id",
                checks=["Is the job id copied correctly?"],
            ),
        )

    @classmethod
    def invalid_transition(
        cls,
        job_id: str,
        current: str,
        requested: str,
    ) -> ActionableError:
        """Status change outside the job state machine."""
        return cls(
            error=f"Scrape job '{job_id}' cannot move from {current} to {requested}",
            error_type=ErrorType.JOB,
            service="orchestrator",
            suggestion=f"Job is {current}; check its status before requesting {requested}",
        )

    # -- catch-all -----------------------------------------------------------

    @classmethod
    def unexpected(
        cls,
        service: str,
        operation: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Catch-all for truly unexpected failures."""
        return cls(
            error=f"Unexpected error in {service} during {operation}: {raw_error}",
            error_type=ErrorType.UNEXPECTED,
            service=service,
            suggestion=suggestion or "This is an unexpected error — check logs for details",
            ai_guidance=AIGuidance(
                action_required="Analyze the error and escalate if needed",
                checks=[
                    "Check the full traceback in logs",
                    f"Is {service} in a known-good state?",
                ],
            ),
        )

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        service: str,
        operation: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Auto-classify an exception by keyword patterns.

        A caller-supplied ``suggestion`` is always preserved; it carries
        context the generic classifier cannot infer.
        """
        error_str = str(error).lower()
        raw_error = str(error) or type(error).__name__

        if isinstance(error, TimeoutError) or any(
            kw in error_str for kw in ("timeout", "timed out")
        ):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("connection refused", "unreachable", "resolve")):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        return cls.unexpected(service, operation, raw_error, suggestion=suggestion)
