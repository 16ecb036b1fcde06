"""Configuration loading and validation.

Loads ``settings.toml`` and validates all fields at startup, before any
browser or HTTP sessions are opened.  A malformed selector table found
mid-job is far more costly than a startup validation failure.

The validated config is exposed as a :class:`Settings` dataclass with
typed fields for each section: ``scraper``, ``jobs``, ``ollama``,
``chroma``, ``logging``, and the list of ``targets``.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jobharvest.errors import ActionableError
from jobharvest.targets.models import (
    DEFAULT_USER_AGENT,
    PaginationKind,
    PaginationStrategy,
    RateLimitPolicy,
    ScrapeTarget,
    TargetSelectors,
)

# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ScraperConfig:
    """Fetcher and pacing settings from ``[scraper]``."""

    user_agent: str = DEFAULT_USER_AGENT
    page_timeout: float = 30.0
    rate_limit_max_waits: int = 5
    robots_cache_ttl: float = 24 * 60 * 60
    render: bool = False
    headless: bool = True
    proxy_server: str | None = None


@dataclass
class JobDefaults:
    """Per-job defaults from ``[jobs]``; callers may override per job."""

    max_listings: int = 1000
    respect_policy: bool = True
    use_proxy: bool = False
    retry_attempts: int = 3


@dataclass
class OllamaConfig:
    """Ollama connection settings from ``[ollama]``."""

    base_url: str = "http://localhost:11434"
    embed_model: str = "nomic-embed-text"


@dataclass
class ChromaConfig:
    """ChromaDB settings from ``[chroma]``."""

    persist_dir: str = "./data/chroma_db"
    collection: str = "job_listings"


@dataclass
class LoggingConfig:
    """File logging settings from ``[logging]``."""

    log_dir: str | None = None
    level: str = "INFO"


@dataclass
class Settings:
    """Top-level validated configuration."""

    targets: list[ScrapeTarget]
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    jobs: JobDefaults = field(default_factory=JobDefaults)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    chroma: ChromaConfig = field(default_factory=ChromaConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Default settings path
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")

_REQUIRED_SELECTORS = ("job_container", "title", "url")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


# ---------------------------------------------------------------------------
# Loading and validation
# ---------------------------------------------------------------------------


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load and validate settings from a TOML file.

    Raises :class:`~jobharvest.errors.ActionableError`:
      - CONFIG if the file is missing or a required field is absent
      - VALIDATION if field values are out of range
      - PARSE if the TOML is malformed

    Returns a fully validated :class:`Settings` instance.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise ActionableError.config(
            field_name="settings_path",
            reason=f"Settings file not found: {filepath}",
            suggestion=f"Create {filepath} or copy from config/settings.toml",
        )

    raw_text = filepath.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ActionableError.parse(
            source="settings",
            selector="TOML syntax",
            raw_error=str(exc),
            suggestion=f"Fix TOML syntax in {filepath}",
        ) from None

    return _validate(data, filepath)


def _validate(data: dict[str, Any], filepath: Path) -> Settings:
    """Validate raw TOML data and return a Settings instance."""

    # -- targets section -----------------------------------------------------
    targets_section = _require_section(data, "targets", filepath)
    if not targets_section:
        raise ActionableError.config(
            field_name="targets",
            reason="At least one [targets.<id>] table is required",
            suggestion="Add a [targets.<id>] table describing a job site",
        )
    targets = [
        _parse_target(target_id, target_data)
        for target_id, target_data in targets_section.items()
    ]

    # -- scraper section -----------------------------------------------------
    scraper_data = _optional_section(data, "scraper")
    proxy_server = scraper_data.get("proxy_server") or None
    scraper = ScraperConfig(
        user_agent=str(scraper_data.get("user_agent", DEFAULT_USER_AGENT)),
        page_timeout=float(scraper_data.get("page_timeout", 30.0)),
        rate_limit_max_waits=int(scraper_data.get("rate_limit_max_waits", 5)),
        robots_cache_ttl=float(scraper_data.get("robots_cache_ttl", 24 * 60 * 60)),
        render=bool(scraper_data.get("render", False)),
        headless=bool(scraper_data.get("headless", True)),
        proxy_server=str(proxy_server) if proxy_server else None,
    )
    if scraper.page_timeout <= 0:
        raise ActionableError.validation(
            field_name="scraper.page_timeout",
            reason=f"is {scraper.page_timeout} — must be > 0",
            suggestion="Set [scraper].page_timeout to a positive number of seconds",
        )
    if scraper.rate_limit_max_waits < 1:
        raise ActionableError.validation(
            field_name="scraper.rate_limit_max_waits",
            reason=f"is {scraper.rate_limit_max_waits} — must be >= 1",
        )
    if scraper.robots_cache_ttl < 0:
        raise ActionableError.validation(
            field_name="scraper.robots_cache_ttl",
            reason=f"is {scraper.robots_cache_ttl} — must be >= 0",
        )
    if scraper.proxy_server and not scraper.proxy_server.startswith(
        ("http://", "https://", "socks5://")
    ):
        raise ActionableError.validation(
            field_name="scraper.proxy_server",
            reason=f"'{scraper.proxy_server}' is missing a scheme (http://, https:// or socks5://)",
        )

    # -- jobs section --------------------------------------------------------
    jobs_data = _optional_section(data, "jobs")
    jobs = JobDefaults(
        max_listings=int(jobs_data.get("max_listings", 1000)),
        respect_policy=bool(jobs_data.get("respect_policy", True)),
        use_proxy=bool(jobs_data.get("use_proxy", False)),
        retry_attempts=int(jobs_data.get("retry_attempts", 3)),
    )
    if jobs.max_listings < 1:
        raise ActionableError.validation(
            field_name="jobs.max_listings",
            reason=f"is {jobs.max_listings} — must be >= 1",
        )
    if jobs.retry_attempts < 0:
        raise ActionableError.validation(
            field_name="jobs.retry_attempts",
            reason=f"is {jobs.retry_attempts} — must be >= 0",
        )
    if jobs.use_proxy and not scraper.proxy_server:
        raise ActionableError.config(
            field_name="jobs.use_proxy",
            reason="use_proxy is true but [scraper].proxy_server is not set",
            suggestion="Set [scraper].proxy_server or disable [jobs].use_proxy",
        )

    # -- ollama section ------------------------------------------------------
    ollama_data = _optional_section(data, "ollama")
    base_url = str(ollama_data.get("base_url", "http://localhost:11434"))
    if not base_url.startswith(("http://", "https://")):
        raise ActionableError.validation(
            field_name="ollama.base_url",
            reason=f"'{base_url}' is missing a scheme (http:// or https://)",
            suggestion="Set [ollama].base_url to a URL starting with http:// or https://",
        )
    ollama = OllamaConfig(
        base_url=base_url,
        embed_model=str(ollama_data.get("embed_model", "nomic-embed-text")),
    )

    # -- chroma section ------------------------------------------------------
    chroma_data = _optional_section(data, "chroma")
    chroma = ChromaConfig(
        persist_dir=str(chroma_data.get("persist_dir", "./data/chroma_db")),
        collection=str(chroma_data.get("collection", "job_listings")),
    )

    # -- logging section -----------------------------------------------------
    logging_data = _optional_section(data, "logging")
    level = str(logging_data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ActionableError.validation(
            field_name="logging.level",
            reason=f"'{level}' is not one of {sorted(_LOG_LEVELS)}",
        )
    log_dir = logging_data.get("log_dir") or None
    logging_cfg = LoggingConfig(log_dir=str(log_dir) if log_dir else None, level=level)

    return Settings(
        targets=targets,
        scraper=scraper,
        jobs=jobs,
        ollama=ollama,
        chroma=chroma,
        logging=logging_cfg,
    )


def _parse_target(target_id: str, raw: object) -> ScrapeTarget:
    """Validate one ``[targets.<id>]`` table."""
    prefix = f"targets.{target_id}"
    if not isinstance(raw, dict):
        raise ActionableError.config(
            field_name=prefix,
            reason=f"[{prefix}] must be a table, not {type(raw).__name__}",
            suggestion=f"Define [{prefix}] as a TOML table",
        )

    for required in ("base_url", "search_endpoint"):
        if not raw.get(required):
            raise ActionableError.config(
                field_name=f"{prefix}.{required}",
                reason=f"Required field '{required}' is missing from [{prefix}]",
            )
    base_url = str(raw["base_url"])
    if not base_url.startswith(("http://", "https://")):
        raise ActionableError.validation(
            field_name=f"{prefix}.base_url",
            reason=f"'{base_url}' is missing a scheme (http:// or https://)",
        )

    # -- selectors ---------------------------------------------------------
    selectors_data = raw.get("selectors")
    if not isinstance(selectors_data, dict):
        raise ActionableError.config(
            field_name=f"{prefix}.selectors",
            reason=f"[{prefix}.selectors] table is missing",
            suggestion="Add job_container, title and url selectors",
        )
    for required in _REQUIRED_SELECTORS:
        if not selectors_data.get(required):
            raise ActionableError.config(
                field_name=f"{prefix}.selectors.{required}",
                reason=f"Required selector '{required}' is missing",
            )
    known = set(TargetSelectors.__dataclass_fields__)
    unknown = set(selectors_data) - known
    if unknown:
        raise ActionableError.validation(
            field_name=f"{prefix}.selectors",
            reason=f"unknown selector(s): {', '.join(sorted(unknown))}",
        )
    selectors = TargetSelectors(**{k: str(v) for k, v in selectors_data.items() if v})

    # -- rate limit --------------------------------------------------------
    rate_data = raw.get("rate_limit", {})
    if not isinstance(rate_data, dict):
        rate_data = {}
    rate_limit = RateLimitPolicy(
        requests_per_minute=int(rate_data.get("requests_per_minute", 10)),
        delay_between_requests=float(rate_data.get("delay_between_requests", 2.0)),
    )
    if rate_limit.requests_per_minute < 1:
        raise ActionableError.validation(
            field_name=f"{prefix}.rate_limit.requests_per_minute",
            reason=f"is {rate_limit.requests_per_minute} — must be >= 1",
        )
    if rate_limit.delay_between_requests < 0:
        raise ActionableError.validation(
            field_name=f"{prefix}.rate_limit.delay_between_requests",
            reason=f"is {rate_limit.delay_between_requests} — must be >= 0",
        )

    # -- pagination --------------------------------------------------------
    page_data = raw.get("pagination", {})
    if not isinstance(page_data, dict):
        page_data = {}
    kind_raw = str(page_data.get("type", "page"))
    try:
        kind = PaginationKind(kind_raw)
    except ValueError:
        raise ActionableError.validation(
            field_name=f"{prefix}.pagination.type",
            reason=f"'{kind_raw}' is not one of page, offset, cursor",
        ) from None
    pagination = PaginationStrategy(
        kind=kind,
        parameter=str(page_data.get("parameter", "page")),
        max_pages=int(page_data.get("max_pages", 5)),
        page_size=int(page_data.get("page_size", 10)),
    )
    if pagination.max_pages < 1:
        raise ActionableError.validation(
            field_name=f"{prefix}.pagination.max_pages",
            reason=f"is {pagination.max_pages} — must be >= 1",
        )
    if kind is PaginationKind.CURSOR and not selectors.next_cursor:
        raise ActionableError.config(
            field_name=f"{prefix}.selectors.next_cursor",
            reason="cursor pagination needs a next_cursor selector",
        )

    headers = raw.get("headers", {})
    if not isinstance(headers, dict):
        raise ActionableError.validation(
            field_name=f"{prefix}.headers",
            reason="headers must be a table of string values",
        )

    return ScrapeTarget(
        id=target_id,
        name=str(raw.get("name", target_id)),
        base_url=base_url,
        search_endpoint=str(raw["search_endpoint"]),
        selectors=selectors,
        rate_limit=rate_limit,
        pagination=pagination,
        headers={str(k): str(v) for k, v in headers.items()},
        keyword_param=str(raw.get("keyword_param", "q")),
        location_param=str(raw.get("location_param", "l")),
        is_active=bool(raw.get("is_active", True)),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _require_section(data: dict[str, Any], name: str, filepath: Path) -> dict[str, Any]:
    """Return a required top-level section, or raise CONFIG error."""
    section = data.get(name)
    if section is None or not isinstance(section, dict):
        raise ActionableError.config(
            field_name=name,
            reason=f"Required section [{name}] is missing from {filepath}",
            suggestion=f"Add a [{name}] section to {filepath}",
        )
    return section


def _optional_section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """Return an optional section, treating non-tables as absent."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        return {}
    return section
