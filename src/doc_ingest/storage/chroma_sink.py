"""Chroma implementation of the vector-store sink.

All documents share one physical Chroma collection; a document's
"collection" is the set of points whose ``document_id`` metadata equals
its id.  Point ids are deterministic (``<document_id>:<chunk_index>``) and
written with upsert, so re-running a job overwrites instead of duplicating.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from langchain_community.vectorstores import Chroma

from doc_ingest.ingestion.errors import PersistError
from doc_ingest.storage.base import VectorStoreSession, VectorStoreSink

if TYPE_CHECKING:
    import chromadb
    from langchain_core.documents import Document
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

_SCALAR = (str, int, float, bool)


def flatten_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Keep only values Chroma accepts (flat str/int/float/bool)."""
    return {k: v for k, v in metadata.items() if isinstance(v, _SCALAR)}


def chunk_id(document_id: str, chunk_index: int) -> str:
    return f"{document_id}:{chunk_index}"


class ChromaSession(VectorStoreSession):
    """Write session bound to one document."""

    def __init__(
        self,
        store: Chroma,
        *,
        collection_name: str,
        collection_id: str,
        metadata: dict[str, Any] | None = None,
        batch_size: int = 5000,
    ) -> None:
        self._store: Chroma | None = store
        self.collection_name = collection_name
        self.collection_id = collection_id
        self._base_metadata = dict(metadata or {})
        self._batch_size = batch_size

    @property
    def closed(self) -> bool:
        return self._store is None

    def add_documents(self, documents: list[Document]) -> list[str]:
        if self._store is None:
            raise PersistError("Session is closed", document_id=self.collection_id)
        if not documents:
            return []

        ids: list[str] = []
        texts: list[str] = []
        metadatas: list[dict[str, Any]] = []
        for position, doc in enumerate(documents):
            meta = {
                **self._base_metadata,
                **doc.metadata,
                "document_id": self.collection_id,
                "collection_name": self.collection_name,
            }
            ids.append(chunk_id(self.collection_id, meta.get("chunk_index", position)))
            texts.append(doc.page_content)
            metadatas.append(flatten_metadata(meta))

        written: list[str] = []
        try:
            for start in range(0, len(ids), self._batch_size):
                end = start + self._batch_size
                written.extend(
                    self._store.add_texts(texts=texts[start:end], metadatas=metadatas[start:end], ids=ids[start:end])
                )
        except Exception as exc:
            raise PersistError(
                f"Failed to persist chunks ({len(written)}/{len(ids)} written): {exc}",
                document_id=self.collection_id,
            ) from exc

        logger.info("Persisted %d chunks for document %s", len(written), self.collection_id)
        return written

    def close(self) -> None:
        self._store = None


class ChromaVectorSink(VectorStoreSink):
    """Opens :class:`ChromaSession` objects on a shared Chroma collection.

    Parameters
    ----------
    client:
        ``chromadb`` client (``HttpClient`` in production,
        ``EphemeralClient`` in tests).
    embedding:
        Embedding function applied to chunk text on write.
    collection_name:
        Physical Chroma collection holding every document's chunks.
    distance_metric:
        ``cosine`` | ``l2`` | ``ip``.
    """

    def __init__(
        self,
        client: chromadb.ClientAPI,
        embedding: Embeddings,
        *,
        collection_name: str,
        distance_metric: str = "cosine",
    ) -> None:
        self._client = client
        self._embedding = embedding
        self.collection_name = collection_name
        self.distance_metric = distance_metric

    def open(
        self,
        collection_name: str,
        collection_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChromaSession:
        try:
            store = Chroma(
                client=self._client,
                collection_name=self.collection_name,
                embedding_function=self._embedding,
                collection_metadata={"hnsw:space": self.distance_metric},
            )
        except Exception as exc:
            raise PersistError(f"Failed to open vector store: {exc}", document_id=collection_id) from exc

        return ChromaSession(
            store,
            collection_name=collection_name,
            collection_id=collection_id,
            metadata=metadata,
        )
