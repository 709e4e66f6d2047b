"""Status tracker implementations."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import TYPE_CHECKING

from doc_ingest.ingestion.errors import StatusWriteError
from doc_ingest.ingestion.models import DocumentStatus
from doc_ingest.storage.base import StatusTracker

if TYPE_CHECKING:
    from supabase import Client

logger = logging.getLogger(__name__)


class SupabaseStatusTracker(StatusTracker):
    """Writes ``status`` on the document row in a Supabase (PostgREST) table.

    Parameters
    ----------
    client:
        An initialised ``supabase.Client``.
    table:
        Table holding one row per document.
    id_column:
        Column matched against the document id.
    """

    def __init__(self, client: Client, *, table: str, id_column: str = "uuid") -> None:
        self._client = client
        self._table = table
        self._id_column = id_column

    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        value = DocumentStatus(status).value
        try:
            response = (
                self._client.table(self._table)
                .update({"status": value})
                .eq(self._id_column, document_id)
                .execute()
            )
        except Exception as exc:
            raise StatusWriteError(
                f"Failed to update status to {value}: {exc}", stage=value, document_id=document_id
            ) from exc

        if not response.data:
            raise StatusWriteError(
                f"Failed to update status to {value}: no document {document_id!r} in {self._table}",
                stage=value,
                document_id=document_id,
            )
        logger.debug("Document %s status → %s", document_id, value)


class InMemoryStatusTracker(StatusTracker):
    """Thread-safe in-process tracker that also keeps the full history.

    Only registered documents can be updated, mirroring a table update
    that matches no row.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: dict[str, DocumentStatus | None] = {}
        self._history: dict[str, list[DocumentStatus]] = defaultdict(list)

    def register(self, document_id: str) -> None:
        with self._lock:
            self._current.setdefault(document_id, None)

    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        status = DocumentStatus(status)
        with self._lock:
            if document_id not in self._current:
                raise StatusWriteError(
                    f"Failed to update status to {status.value}: unknown document {document_id!r}",
                    stage=status.value,
                    document_id=document_id,
                )
            self._current[document_id] = status
            self._history[document_id].append(status)

    def get_status(self, document_id: str) -> DocumentStatus | None:
        with self._lock:
            return self._current.get(document_id)

    def history(self, document_id: str) -> list[DocumentStatus]:
        with self._lock:
            return list(self._history[document_id])
