"""Page fetcher contract shared by the orchestrator and robots checker."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class FetchResponse:
    """Raw result of one HTTP fetch: final URL, status code, decoded body."""

    url: str
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class PageFetcher(ABC):
    """Strategy interface for retrieving raw page content.

    Implementations return a :class:`FetchResponse` for any HTTP status
    and raise :class:`~jobharvest.errors.ActionableError` (CONNECTION)
    only when the transport itself fails.  Deciding whether a 404 is
    fatal is the caller's business.
    """

    @abstractmethod
    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str],
        *,
        use_proxy: bool = False,
    ) -> FetchResponse:
        """GET *url* with *headers* and return the decoded response."""
        ...

    @property
    def supports_proxy(self) -> bool:
        """Whether ``use_proxy=True`` can be honoured."""
        return False
