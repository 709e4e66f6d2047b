"""Abstract base class for searchable vector-store backends.

This is the read side of the vector store; the write side used during
ingestion lives in :mod:`doc_ingest.storage.base`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from doc_ingest.retrieval.models import MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic similarity-search interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection holding the chunks.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    @abstractmethod
    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 4,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Embed *query* and return the top-*k* most similar chunks.

        Each result dict **must** contain:

        * ``"id"`` – chunk identifier
        * ``"content"`` – the chunk text
        * ``"score"`` – similarity score (higher = more similar)
        * ``"metadata"`` – chunk metadata, including ``document_id``
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...
