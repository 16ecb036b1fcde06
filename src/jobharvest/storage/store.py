"""ChromaDB persistence for scraped listings.

ChromaDB is an **embedded** vector database, stored on disk under
``persist_dir``.  Scraped listings live in one collection (default
``job_listings``) keyed by listing id, so re-scraping the same posting
updates it in place rather than adding a second copy.

Every ChromaDB failure mode the callers care about surfaces as an
:class:`~jobharvest.errors.ActionableError`: a missing collection is
INDEX, mismatched upsert input is VALIDATION.
"""

from __future__ import annotations

from typing import Any

import chromadb
from chromadb.errors import NotFoundError

from jobharvest.errors import ActionableError
from jobharvest.logging import logger

_QUERY_KEYS = ("ids", "documents", "metadatas", "distances")


class VectorStore:
    """On-disk ChromaDB client scoped to the collections jobharvest uses.

    Usage::

        store = VectorStore(persist_dir="./data/chroma_db")
        store.upsert("job_listings", ids=[...], documents=[...], embeddings=[...])
        results = store.query("job_listings", query_embedding=[...], n_results=5)
    """

    def __init__(self, persist_dir: str) -> None:
        self.persist_dir = persist_dir
        self._client = chromadb.PersistentClient(path=persist_dir)
        logger.debug("ChromaDB opened at %s", persist_dir)

    def get_or_create_collection(self, name: str) -> chromadb.Collection:
        """Return collection *name*, creating it with cosine distance."""
        return self._client.get_or_create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
        )

    def collection_count(self, name: str) -> int:
        """Number of documents in *name*; INDEX if it was never created."""
        return self._existing(name).count()

    def upsert(
        self,
        collection_name: str,
        *,
        ids: list[str],
        documents: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict[str, Any]] | None = None,
    ) -> None:
        """Write documents with pre-computed embeddings, replacing existing ids."""
        sizes = {"ids": len(ids), "documents": len(documents), "embeddings": len(embeddings)}
        if metadatas is not None:
            sizes["metadatas"] = len(metadatas)
        if len(set(sizes.values())) > 1:
            raise ActionableError.validation(
                field_name=f"{collection_name} upsert",
                reason=f"input lengths differ: {sizes}",
                suggestion="Pass one document, embedding and metadata dict per id",
            )

        self.get_or_create_collection(collection_name).upsert(
            ids=ids,
            documents=documents,
            embeddings=embeddings,  # type: ignore[arg-type]
            metadatas=metadatas,  # type: ignore[arg-type]
        )
        logger.debug("Upserted %d document(s) into '%s'", len(ids), collection_name)

    def query(
        self,
        collection_name: str,
        *,
        query_embedding: list[float],
        n_results: int = 5,
    ) -> dict[str, Any]:
        """Find the *n_results* documents closest to *query_embedding*.

        Returns ChromaDB's native dict (``ids``, ``documents``,
        ``metadatas``, ``distances``; one inner list per query).
        Distances are cosine distances: lower is more similar.
        """
        collection = self._existing(collection_name)
        count = collection.count()
        if count == 0:
            return {key: [[]] for key in _QUERY_KEYS}

        # ChromaDB raises if n_results > count
        result = collection.query(
            query_embeddings=[query_embedding],  # type: ignore[arg-type]
            n_results=min(n_results, count),
            include=["documents", "metadatas", "distances"],
        )
        return dict(result)

    def _existing(self, name: str) -> chromadb.Collection:
        try:
            return self._client.get_collection(name)
        except (ValueError, NotFoundError):
            raise ActionableError.index(name) from None
