"""Capability interfaces the ingestion pipeline depends on.

The pipeline only talks to these abstract classes; concrete adapters
(Supabase, Chroma, local disk, in-memory fakes) are chosen at process
start-up and injected.  Adding a backend only requires subclassing the
relevant base and implementing its abstract methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from langchain_core.documents import Document

    from doc_ingest.ingestion.models import DocumentStatus


class StatusTracker(ABC):
    """Sole writer of a document's lifecycle status."""

    @abstractmethod
    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        """Record *status* for *document_id* (last write wins).

        Raises
        ------
        StatusWriteError
            The row does not exist or the backing store is unavailable.
        """
        ...


class ObjectStore(ABC):
    """Remote storage holding the uploaded files."""

    @abstractmethod
    def download(self, location_key: str) -> bytes:
        """Return the bytes stored under *location_key*.

        Raises
        ------
        DownloadError
            The object is missing or the store is unreachable.
        """
        ...


class VectorStoreSession(ABC):
    """A write session scoped to one document's collection."""

    @abstractmethod
    def add_documents(self, documents: list[Document]) -> list[str]:
        """Embed and persist *documents* in one batch; return the stored ids.

        Raises
        ------
        PersistError
            The batch (or part of it) was not written.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the session.  Safe to call more than once."""
        ...

    def __enter__(self) -> VectorStoreSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class VectorStoreSink(ABC):
    """Factory for per-document vector-store sessions."""

    @abstractmethod
    def open(
        self,
        collection_name: str,
        collection_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> VectorStoreSession:
        """Prepare a fresh session for the collection of one document.

        Parameters
        ----------
        collection_name:
            Display name of the document.
        collection_id:
            Document id; used as the chunk-linkage key.
        metadata:
            File metadata recorded alongside every chunk.
        """
        ...

    def close(self) -> None:
        """Release process-wide resources held by the sink."""
