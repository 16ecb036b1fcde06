"""Target registry: read-only lookup of configured scrape targets."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jobharvest.errors import ActionableError
from jobharvest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from jobharvest.config import Settings
    from jobharvest.targets.models import ScrapeTarget


class ScrapeTargetRegistry:
    """Maps target id strings to immutable :class:`ScrapeTarget` records.

    The registry is populated once from configuration.  Running jobs
    keep a reference to the target they started with, and
    :meth:`reload` swaps the whole mapping at once, so a reader never
    sees a half-updated target.

    Usage::

        registry = ScrapeTargetRegistry.from_settings(settings)
        target = registry.get("indeed")
        for target in registry.list_active():
            ...
    """

    def __init__(self, targets: Iterable[ScrapeTarget] = ()) -> None:
        self._targets: dict[str, ScrapeTarget] = self._index(targets)

    @classmethod
    def from_settings(cls, settings: Settings) -> ScrapeTargetRegistry:
        """Build a registry from the validated ``[targets]`` section."""
        return cls(settings.targets)

    def get(self, target_id: str) -> ScrapeTarget | None:
        """Return the target registered under *target_id*, or ``None``."""
        return self._targets.get(target_id)

    def list_all(self) -> list[ScrapeTarget]:
        """Return every registered target, active or not."""
        return list(self._targets.values())

    def list_active(self) -> list[ScrapeTarget]:
        """Return only targets with ``is_active`` set."""
        return [t for t in self._targets.values() if t.is_active]

    def list_registered(self) -> list[str]:
        """Return all registered target id strings."""
        return list(self._targets.keys())

    def reload(self, targets: Iterable[ScrapeTarget]) -> None:
        """Replace the full target set in one assignment."""
        self._targets = self._index(targets)
        logger.info("Target registry reloaded (%d targets)", len(self._targets))

    @staticmethod
    def _index(targets: Iterable[ScrapeTarget]) -> dict[str, ScrapeTarget]:
        indexed: dict[str, ScrapeTarget] = {}
        for target in targets:
            if target.id in indexed:
                raise ActionableError.config(
                    field_name=f"targets.{target.id}",
                    reason=f"Duplicate target id '{target.id}'",
                    suggestion="Give every [targets.<id>] table a unique id",
                )
            indexed[target.id] = target
        return indexed

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._targets
