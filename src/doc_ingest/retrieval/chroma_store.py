"""Chroma implementation of the searchable vector store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from doc_ingest.retrieval.base import VectorStoreBase
from doc_ingest.retrieval.models import MetadataFilter

if TYPE_CHECKING:
    import chromadb
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore(VectorStoreBase):
    """Searches the chunk collection written by the ingestion sink.

    Parameters
    ----------
    client:
        ``chromadb`` client.
    embedding:
        Must be the embedding function used at ingestion time.
    collection_name:
        Name of the Chroma collection.
    """

    def __init__(
        self,
        client: chromadb.ClientAPI,
        embedding: Embeddings,
        *,
        collection_name: str,
    ) -> None:
        super().__init__(collection_name)
        self._client = client
        self._embedder = embedding
        self._collection = client.get_or_create_collection(collection_name, metadata={"hnsw:space": "cosine"})

    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 4,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        embedding = self._embedder.embed_query(query)
        results = self._collection.query(
            query_embeddings=[embedding],
            n_results=k,
            where=_build_chroma_where(filters) if filters else None,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            # Cosine distance; convert to similarity.
            hits.append(
                {
                    "id": chunk_id,
                    "content": content or "",
                    "score": 1.0 - dist,
                    "metadata": meta or {},
                }
            )
        return hits

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
