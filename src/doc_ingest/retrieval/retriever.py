"""Semantic retriever: similarity search over ingested chunks with citations.

Usage::

    retriever = SemanticRetriever(store)
    for r in retriever.search("What is the refund policy?", document_id="doc-42"):
        print(r.citation.short_ref(), r.content[:80])
"""

from __future__ import annotations

import logging
from typing import Any

from doc_ingest.retrieval.base import VectorStoreBase
from doc_ingest.retrieval.models import Citation, MetadataFilter, RetrievalResult

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        *,
        default_k: int = 4,
        score_threshold: float = 0.0,
    ) -> None:
        self._store = store
        self.default_k = default_k
        self.score_threshold = score_threshold

    def search(
        self,
        query: str,
        *,
        k: int | None = None,
        document_id: str | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievalResult]:
        """Run a semantic search and return results with citations.

        Parameters
        ----------
        query:
            Natural-language question.
        k:
            Number of results (defaults to ``self.default_k``).
        document_id:
            Restrict the search to the chunks of one document.
        filters:
            Extra metadata filters forwarded to the vector store.
        """
        k = k or self.default_k
        filters = list(filters or [])
        if document_id is not None:
            filters.append(MetadataFilter.equals("document_id", document_id))

        raw_hits = self._store.similarity_search_by_text(query, k=k, filters=filters or None)
        results = self._to_results(raw_hits)
        logger.debug("Retrieved %d/%d chunks for %r", len(results), len(raw_hits), query)
        return results

    def _to_results(self, raw_hits: list[dict[str, Any]]) -> list[RetrievalResult]:
        results: list[RetrievalResult] = []
        for hit in raw_hits:
            score = hit.get("score")
            if score is not None and score < self.score_threshold:
                continue

            meta = hit.get("metadata", {})
            citation = Citation(
                chunk_id=hit.get("id"),
                document_id=meta.get("document_id"),
                source=meta.get("collection_name") or meta.get("source", "unknown"),
                chunk_index=meta.get("chunk_index"),
                page=meta.get("page"),
                score=score,
                metadata=meta,
            )
            results.append(RetrievalResult(content=hit.get("content", ""), citation=citation))
        return results

    def health_check(self) -> bool:
        """Whether the underlying vector store is reachable."""
        return self._store.health_check()
