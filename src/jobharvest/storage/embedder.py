"""Ollama embedding wrapper with retry logic.

Wraps the ``ollama`` Python SDK's :class:`AsyncClient` to provide:

- **Embedding**: listing text to float vector via ``nomic-embed-text``
- **Health check**: verify Ollama and the embed model are available
- **Retry with backoff**: transient 5xx errors are retried up to
  ``max_retries`` times with exponential backoff before giving up

All errors are converted to :class:`~jobharvest.errors.ActionableError`.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

import ollama as ollama_sdk

from jobharvest.errors import ActionableError, ErrorType
from jobharvest.logging import logger

_T = TypeVar("_T")

# Status codes that warrant a retry (server overloaded / temporary failure)
_RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

# nomic-embed-text has an 8192-token window; scraped descriptions with
# bullets and symbols tokenise close to 1 char/token.
_MAX_EMBED_CHARS = 8_000


class Embedder:
    """Wraps Ollama embedding calls with backoff and error handling.

    Usage::

        embedder = Embedder(base_url="http://localhost:11434", embed_model="nomic-embed-text")
        await embedder.health_check()
        vec = await embedder.embed("Senior Python Engineer ...")
    """

    def __init__(
        self,
        base_url: str,
        embed_model: str,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.base_url = base_url
        self.embed_model = embed_model
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._client = ollama_sdk.AsyncClient(host=base_url)

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises VALIDATION for empty input.  Input longer than the model
        window is cut to its first ``_MAX_EMBED_CHARS`` characters; title
        and company come first in listing documents.
        """
        cleaned = text.strip()
        if not cleaned:
            raise ActionableError(
                error="Cannot embed empty text",
                error_type=ErrorType.VALIDATION,
                service="Ollama",
                suggestion="Provide non-empty text to embed",
            )
        if len(cleaned) > _MAX_EMBED_CHARS:
            logger.debug("Truncating embed input from %d to %d chars", len(cleaned), _MAX_EMBED_CHARS)
            cleaned = cleaned[:_MAX_EMBED_CHARS]

        async def _call() -> list[float]:
            response = await self._client.embed(model=self.embed_model, input=cleaned)
            return list(response.embeddings[0])

        return await self._with_retry(_call, operation="embed")

    async def health_check(self) -> None:
        """Verify Ollama is reachable and the embed model is pulled.

        Raises :class:`~jobharvest.errors.ActionableError`:
          - CONNECTION if Ollama is unreachable
          - EMBEDDING if the model is not pulled
        """
        try:
            response = await self._client.list()
        except (ConnectionError, OSError) as exc:
            raise ActionableError.connection(
                service="Ollama",
                url=self.base_url,
                raw_error=str(exc),
            ) from None

        available = {m.model for m in response.models if m.model}
        # Ollama model names may carry a :latest suffix
        available |= {name.split(":")[0] for name in available}

        if self.embed_model not in available and self.embed_model.split(":")[0] not in available:
            raise ActionableError.embedding(
                model=self.embed_model,
                raw_error=f"Model '{self.embed_model}' is not pulled in Ollama",
                suggestion=f"Run: ollama pull {self.embed_model}",
            )
        logger.info("Ollama health check passed: %s available", self.embed_model)

    async def _with_retry(
        self,
        fn: Callable[[], Awaitable[_T]],
        *,
        operation: str,
    ) -> _T:
        """Call *fn* with exponential backoff on retryable errors.

        Non-retryable errors (e.g. 404 model not found) fail immediately.
        After ``max_retries`` attempts, raises an EMBEDDING error.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await fn()
            except ollama_sdk.ResponseError as exc:
                last_error = exc
                if exc.status_code not in _RETRYABLE_STATUS_CODES:
                    raise ActionableError.embedding(
                        model=self.embed_model,
                        raw_error=str(exc),
                    ) from None
                reason = f"status {exc.status_code}"
            except (ConnectionError, OSError) as exc:
                last_error = exc
                reason = "connection failed"

            if attempt == self.max_retries:
                break
            delay = self.base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Ollama %s attempt %d/%d failed (%s), retrying in %.1fs: %s",
                operation,
                attempt,
                self.max_retries,
                reason,
                delay,
                last_error,
            )
            await asyncio.sleep(delay)

        raise ActionableError.embedding(
            model=self.embed_model,
            raw_error=f"Failed after {self.max_retries} attempts: {last_error}",
            suggestion="Ollama may be overloaded; check resources and retry",
        )
