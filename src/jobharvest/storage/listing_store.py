"""Listing persistence: the orchestrator's storage collaborator.

:class:`ListingStore` is the narrow contract the orchestrator depends
on.  :class:`ChromaListingStore` embeds each listing's text with Ollama
and upserts it into a ChromaDB collection, which also makes stored
listings searchable by similarity.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jobharvest.errors import ActionableError
from jobharvest.logging import logger
from jobharvest.storage.embedder import Embedder
from jobharvest.storage.store import VectorStore

if TYPE_CHECKING:
    from jobharvest.config import Settings
    from jobharvest.extract.listing import JobListing

DEFAULT_COLLECTION = "job_listings"


@dataclass
class StoredListing:
    """A similarity hit read back from the store."""

    id: str
    title: str
    company: str
    url: str
    distance: float
    skills: list[str]
    metadata: dict[str, Any]

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


class ListingStore(ABC):
    """Persists one listing at a time and returns its id."""

    @abstractmethod
    async def store(self, listing: JobListing) -> str:
        """Persist *listing*.

        Raises:
            ActionableError: ``PERSISTENCE`` when the listing could not
                be stored.
        """
        ...


class ChromaListingStore(ListingStore):
    """Embeds listings with Ollama and keeps them in ChromaDB.

    Usage::

        listing_store = ChromaListingStore(VectorStore("./data/chroma_db"), embedder)
        await listing_store.store(listing)
        hits = await listing_store.search("python backend remote", n_results=5)
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        collection: str = DEFAULT_COLLECTION,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.collection = collection

    @classmethod
    def from_settings(cls, settings: Settings) -> ChromaListingStore:
        return cls(
            VectorStore(persist_dir=settings.chroma.persist_dir),
            Embedder(
                base_url=settings.ollama.base_url,
                embed_model=settings.ollama.embed_model,
            ),
            collection=settings.chroma.collection,
        )

    async def store(self, listing: JobListing) -> str:
        try:
            embedding = await self._embedder.embed(listing.document_text())
            self._store.upsert(
                self.collection,
                ids=[listing.id],
                documents=[listing.document_text()],
                embeddings=[embedding],
                metadatas=[listing.to_metadata()],
            )
        except ActionableError as exc:
            raise ActionableError.persistence(listing.id, exc.error) from exc
        except Exception as exc:
            raise ActionableError.persistence(listing.id, str(exc)) from exc
        logger.debug("Stored listing %s (%s)", listing.id, listing.title)
        return listing.id

    async def search(self, text: str, n_results: int = 5) -> list[StoredListing]:
        """Return stored listings most similar to *text*, closest first.

        Raises :class:`~jobharvest.errors.ActionableError` (INDEX) if
        nothing has been stored yet.
        """
        embedding = await self._embedder.embed(text)
        result = self._store.query(
            self.collection, query_embedding=embedding, n_results=n_results
        )
        hits: list[StoredListing] = []
        for doc_id, meta, distance in zip(
            result["ids"][0], result["metadatas"][0], result["distances"][0], strict=True
        ):
            meta = dict(meta or {})
            hits.append(
                StoredListing(
                    id=doc_id,
                    title=str(meta.get("title", "")),
                    company=str(meta.get("company", "")),
                    url=str(meta.get("url", "")),
                    distance=float(distance),
                    skills=json.loads(meta.get("skills", "[]")),
                    metadata=meta,
                )
            )
        return hits

    def count(self) -> int:
        """Number of stored listings (0 if nothing has been stored)."""
        try:
            return self._store.collection_count(self.collection)
        except ActionableError:
            return 0
