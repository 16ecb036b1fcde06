"""Configuration validation tests.

Maps to BDD scenarios: TestSettingsLoading, TestTargetParsing, TestScraperSection
"""

from __future__ import annotations

from pathlib import Path

import pytest

from jobharvest.config import load_settings
from jobharvest.errors import ActionableError, ErrorType
from jobharvest.targets.models import DEFAULT_USER_AGENT, PaginationKind

# A minimal valid settings TOML for tests
_VALID_SETTINGS = """\
[scraper]
page_timeout = 15.0

[jobs]
max_listings = 200

[targets.testsite]
name = "Test Site"
base_url = "https://jobs.example.org"
search_endpoint = "/search"

[targets.testsite.selectors]
job_container = "div.job"
title = "h2.title"
url = "h2.title a"
company = ".company"

[targets.testsite.rate_limit]
requests_per_minute = 12
delay_between_requests = 5.0

[targets.testsite.pagination]
type = "offset"
parameter = "start"
max_pages = 4
page_size = 25
"""

_TARGET_ONLY = """\
[targets.testsite]
base_url = "https://jobs.example.org"
search_endpoint = "/search"

[targets.testsite.selectors]
job_container = "div.job"
title = "h2.title"
url = "h2.title a"
"""


def _write_settings(tmp_path: Path, content: str) -> Path:
    """Write settings content to a temp file and return the path."""
    path = tmp_path / "settings.toml"
    path.write_text(content, encoding="utf-8")
    return path


class TestSettingsLoading:
    """REQUIREMENT: Invalid or missing configuration is caught at startup, not mid-run.

    WHO: The operator who edited settings.toml
    WHAT: A valid file loads into typed sections; a missing file, missing
          [targets], or malformed TOML raise descriptive errors; optional
          sections fall back to defaults
    WHY: A bad selector table discovered halfway through a ten-page job
         wastes every polite request made before it
    """

    def test_valid_settings_load_into_typed_sections(self, tmp_path: Path) -> None:
        """A valid file yields typed scraper, jobs and target values."""
        settings = load_settings(_write_settings(tmp_path, _VALID_SETTINGS))

        assert settings.scraper.page_timeout == 15.0
        assert settings.jobs.max_listings == 200
        assert len(settings.targets) == 1
        target = settings.targets[0]
        assert target.id == "testsite"
        assert target.name == "Test Site"
        assert target.rate_limit.requests_per_minute == 12
        assert target.pagination.kind is PaginationKind.OFFSET
        assert target.pagination.page_size == 25
        assert target.selectors.company == ".company"
        assert target.selectors.location is None

    def test_optional_sections_fall_back_to_defaults(self, tmp_path: Path) -> None:
        """Only [targets] is required; everything else has defaults."""
        settings = load_settings(_write_settings(tmp_path, _TARGET_ONLY))

        assert settings.scraper.user_agent == DEFAULT_USER_AGENT
        assert settings.scraper.rate_limit_max_waits == 5
        assert settings.jobs.retry_attempts == 3
        assert settings.jobs.respect_policy is True
        assert settings.chroma.collection == "job_listings"
        assert settings.logging.log_dir is None
        target = settings.targets[0]
        assert target.rate_limit.requests_per_minute == 10
        assert target.pagination.kind is PaginationKind.PAGE
        assert target.is_active is True

    def test_missing_file_raises_config_error(self, tmp_path: Path) -> None:
        """A settings path that does not exist raises CONFIG naming the path."""
        with pytest.raises(ActionableError) as exc_info:
            load_settings(tmp_path / "nope.toml")
        assert exc_info.value.error_type == ErrorType.CONFIG
        assert "nope.toml" in exc_info.value.error

    def test_missing_targets_section_raises_config_error(self, tmp_path: Path) -> None:
        """A file without [targets] raises CONFIG naming the section."""
        path = _write_settings(tmp_path, "[scraper]\npage_timeout = 10.0\n")
        with pytest.raises(ActionableError) as exc_info:
            load_settings(path)
        assert exc_info.value.error_type == ErrorType.CONFIG
        assert "targets" in exc_info.value.error

    def test_malformed_toml_raises_parse_error(self, tmp_path: Path) -> None:
        """Broken TOML syntax raises PARSE rather than a raw decoder exception."""
        path = _write_settings(tmp_path, "[targets\nbase_url = ")
        with pytest.raises(ActionableError) as exc_info:
            load_settings(path)
        assert exc_info.value.error_type == ErrorType.PARSE

    def test_shipped_settings_file_is_valid(self) -> None:
        """config/settings.toml in the repository loads without error."""
        settings = load_settings(Path(__file__).parent.parent / "config" / "settings.toml")
        ids = [t.id for t in settings.targets]
        assert "indeed" in ids
        assert any(not t.is_active for t in settings.targets)


class TestTargetParsing:
    """REQUIREMENT: Each [targets.<id>] table is fully validated.

    WHO: The operator adding or editing a job site
    WHAT: Missing base_url or required selectors raise CONFIG naming the
          field; a base_url without scheme, an unknown pagination type,
          max_pages < 1 or requests_per_minute < 1 raise VALIDATION; cursor
          pagination without a next_cursor selector raises CONFIG; unknown
          selector names are rejected
    WHY: A typo in a selector name silently extracts nothing — it must
         fail loudly at load time instead
    """

    def test_missing_required_selector_names_field(self, tmp_path: Path) -> None:
        """Dropping the url selector raises CONFIG naming it."""
        content = _TARGET_ONLY.replace('url = "h2.title a"\n', "")
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.CONFIG
        assert "selectors.url" in exc_info.value.error

    def test_missing_base_url_names_field(self, tmp_path: Path) -> None:
        """A target without base_url raises CONFIG naming the field."""
        content = _TARGET_ONLY.replace('base_url = "https://jobs.example.org"\n', "")
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert "base_url" in exc_info.value.error

    def test_base_url_without_scheme_is_rejected(self, tmp_path: Path) -> None:
        """A base_url missing http(s):// raises VALIDATION."""
        content = _TARGET_ONLY.replace("https://jobs.example.org", "jobs.example.org")
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.VALIDATION

    def test_unknown_pagination_type_is_rejected(self, tmp_path: Path) -> None:
        """Pagination types other than page, offset and cursor raise VALIDATION."""
        content = _TARGET_ONLY + '\n[targets.testsite.pagination]\ntype = "infinite"\n'
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.VALIDATION
        assert "infinite" in exc_info.value.error

    def test_zero_max_pages_is_rejected(self, tmp_path: Path) -> None:
        """max_pages below 1 raises VALIDATION."""
        content = _TARGET_ONLY + "\n[targets.testsite.pagination]\nmax_pages = 0\n"
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert "max_pages" in exc_info.value.error

    def test_zero_requests_per_minute_is_rejected(self, tmp_path: Path) -> None:
        """requests_per_minute below 1 raises VALIDATION."""
        content = _TARGET_ONLY + "\n[targets.testsite.rate_limit]\nrequests_per_minute = 0\n"
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert "requests_per_minute" in exc_info.value.error

    def test_cursor_pagination_requires_next_cursor_selector(self, tmp_path: Path) -> None:
        """Cursor pagination without a next_cursor selector raises CONFIG."""
        content = _TARGET_ONLY + '\n[targets.testsite.pagination]\ntype = "cursor"\n'
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.CONFIG
        assert "next_cursor" in exc_info.value.error

    def test_unknown_selector_name_is_rejected(self, tmp_path: Path) -> None:
        """A misspelled selector key raises VALIDATION listing it."""
        content = _TARGET_ONLY.replace('title = "h2.title"', 'title = "h2.title"\ntitel = "h3"')
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.VALIDATION
        assert "titel" in exc_info.value.error

    def test_headers_are_carried_onto_target(self, tmp_path: Path) -> None:
        """[targets.<id>.headers] become the target's request headers."""
        content = _TARGET_ONLY + '\n[targets.testsite.headers]\n"User-Agent" = "TestBot/1.0"\n'
        settings = load_settings(_write_settings(tmp_path, content))
        assert settings.targets[0].user_agent == "TestBot/1.0"


class TestScraperSection:
    """REQUIREMENT: Scraper and job defaults are range-checked.

    WHO: The operator tuning timeouts, proxies and job defaults
    WHAT: Non-positive page_timeout, a proxy without scheme, use_proxy
          without a proxy_server, and an unknown log level are rejected
    WHY: These values are read inside every job — a bad one would fail
         every page rather than once at startup
    """

    def test_non_positive_page_timeout_is_rejected(self, tmp_path: Path) -> None:
        """page_timeout <= 0 raises VALIDATION."""
        content = "[scraper]\npage_timeout = 0\n\n" + _TARGET_ONLY
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert "page_timeout" in exc_info.value.error

    def test_use_proxy_without_proxy_server_is_config_error(self, tmp_path: Path) -> None:
        """[jobs].use_proxy=true with no [scraper].proxy_server raises CONFIG."""
        content = "[jobs]\nuse_proxy = true\n\n" + _TARGET_ONLY
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.CONFIG
        assert "use_proxy" in exc_info.value.error

    def test_proxy_server_without_scheme_is_rejected(self, tmp_path: Path) -> None:
        """A proxy_server with no scheme raises VALIDATION."""
        content = '[scraper]\nproxy_server = "proxy.internal:3128"\n\n' + _TARGET_ONLY
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert "proxy_server" in exc_info.value.error

    def test_use_proxy_with_proxy_server_loads(self, tmp_path: Path) -> None:
        """A proxy with scheme plus use_proxy=true is accepted."""
        content = (
            '[scraper]\nproxy_server = "http://proxy.internal:3128"\n\n'
            "[jobs]\nuse_proxy = true\n\n" + _TARGET_ONLY
        )
        settings = load_settings(_write_settings(tmp_path, content))
        assert settings.scraper.proxy_server == "http://proxy.internal:3128"
        assert settings.jobs.use_proxy is True

    def test_unknown_log_level_is_rejected(self, tmp_path: Path) -> None:
        """[logging].level must be a standard level name."""
        content = '[logging]\nlevel = "chatty"\n\n' + _TARGET_ONLY
        with pytest.raises(ActionableError) as exc_info:
            load_settings(_write_settings(tmp_path, content))
        assert exc_info.value.error_type == ErrorType.VALIDATION
