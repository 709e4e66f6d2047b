"""Ingestion pipeline: drives one document through its lifecycle.

State machine::

    queued ─▶ processing ─▶ splitting ─▶ embedding ─▶ indexing ─▶ ready
                  │              │            │            │
                  └──────────────┴────────────┴────────────┴──▶ failed

Each stage is entered by recording its status and then running its step:

=============  ====================================================
processing     download ``metadata.file_url`` to a unique temp file
splitting      load raw documents and split them into chunks
embedding      open a vector-store session for the document
indexing       embed and persist every chunk in one batch
=============  ====================================================

A stage either returns normally or yields a typed
:class:`~doc_ingest.ingestion.errors.IngestionError`.  The first error
stops the sequence; the orchestrator then records ``failed`` as an
explicit step (best effort) and hands the error back in the
:class:`~doc_ingest.ingestion.models.IngestionResult`.  The temp file and
the session are released on every path.
"""

from __future__ import annotations

import logging
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from doc_ingest.ingestion.chunker import chunk_documents
from doc_ingest.ingestion.errors import (
    DownloadError,
    ExtractionError,
    IngestionError,
    PersistError,
    StatusWriteError,
)
from doc_ingest.ingestion.loader import LoaderRegistry, default_registry
from doc_ingest.ingestion.models import DocumentStatus, IngestionJob, IngestionResult

if TYPE_CHECKING:
    from langchain_core.documents import Document

    from doc_ingest.storage.base import ObjectStore, StatusTracker, VectorStoreSession, VectorStoreSink

logger = logging.getLogger(__name__)

# Error raised when a step fails with an exception outside the taxonomy.
_STAGE_ERRORS: dict[DocumentStatus, type[IngestionError]] = {
    DocumentStatus.processing: DownloadError,
    DocumentStatus.splitting: ExtractionError,
    DocumentStatus.embedding: PersistError,
    DocumentStatus.indexing: PersistError,
}


@dataclass
class _JobScope:
    """Resources owned by one pipeline run."""

    job: IngestionJob
    temp_path: Path | None = None
    session: VectorStoreSession | None = None
    chunks: list[Document] = field(default_factory=list)
    persisted: int = 0


class IngestionPipeline:
    """Orchestrates download → load → split → embed → persist for one job.

    Parameters
    ----------
    status_tracker:
        Records the document status at each stage boundary.
    object_store:
        Source of the uploaded file bytes.
    vector_sink:
        Opens the per-document write session (embeds on write).
    loaders:
        File-type registry; defaults to :func:`default_registry`.
    chunk_size / chunk_overlap:
        Splitter policy in characters.
    temp_dir:
        Directory for the scoped local copy of the file.
    """

    def __init__(
        self,
        status_tracker: StatusTracker,
        object_store: ObjectStore,
        vector_sink: VectorStoreSink,
        *,
        loaders: LoaderRegistry | None = None,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        temp_dir: str | Path | None = None,
    ) -> None:
        self._status = status_tracker
        self._objects = object_store
        self._sink = vector_sink
        self._loaders = loaders or default_registry()
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())

    # -- public API -----------------------------------------------------------

    def run(self, job: IngestionJob) -> IngestionResult:
        """Process *job* and raise its error if it failed.

        This is the entry point used by the dispatcher, whose retry
        accounting is driven by the raised error.
        """
        result = self.process(job)
        if result.error is not None:
            raise result.error
        return result

    def process(self, job: IngestionJob) -> IngestionResult:
        """Process *job* and return the outcome as a value."""
        scope = _JobScope(job=job)
        stages: list[tuple[DocumentStatus, Callable[[_JobScope], None]]] = [
            (DocumentStatus.processing, self._download),
            (DocumentStatus.splitting, self._split),
            (DocumentStatus.embedding, self._open_session),
            (DocumentStatus.indexing, self._persist),
        ]

        logger.info("Starting ingestion of document %s (attempt %d)", job.document_id, job.attempts)
        error: IngestionError | None = None
        try:
            for status, step in stages:
                error = self._run_stage(scope, status, step)
                if error is not None:
                    break
            else:
                error = self._run_stage(scope, DocumentStatus.ready, lambda _scope: None)
        finally:
            self._release(scope)

        if error is not None:
            self._mark_failed(job.document_id, error)
            return IngestionResult(
                document_id=job.document_id,
                status=DocumentStatus.failed,
                chunk_count=scope.persisted,
                error=error,
            )

        logger.info("Document %s ready (%d chunks)", job.document_id, scope.persisted)
        return IngestionResult(
            document_id=job.document_id,
            status=DocumentStatus.ready,
            chunk_count=scope.persisted,
        )

    # -- stage plumbing -------------------------------------------------------

    def _run_stage(
        self,
        scope: _JobScope,
        status: DocumentStatus,
        step: Callable[[_JobScope], None],
    ) -> IngestionError | None:
        document_id = scope.job.document_id
        try:
            self._status.set_status(document_id, status)
        except IngestionError as exc:
            exc.stage = exc.stage or status.value
            exc.document_id = exc.document_id or document_id
            return exc
        except Exception as exc:
            error = StatusWriteError(
                f"Failed to update status to {status.value}: {exc}", stage=status.value, document_id=document_id
            )
            error.__cause__ = exc
            return error

        logger.info("Document %s → %s", document_id, status.value)
        try:
            step(scope)
        except IngestionError as exc:
            exc.stage = exc.stage or status.value
            exc.document_id = exc.document_id or document_id
            return exc
        except Exception as exc:
            error_cls = _STAGE_ERRORS.get(status, IngestionError)
            error = error_cls(f"{status.value} failed: {exc}", stage=status.value, document_id=document_id)
            error.__cause__ = exc
            return error
        return None

    def _mark_failed(self, document_id: str, error: IngestionError) -> None:
        logger.error("Ingestion of document %s failed during %s: %s", document_id, error.stage, error)
        try:
            self._status.set_status(document_id, DocumentStatus.failed)
        except Exception:
            logger.warning("Could not record failed status for document %s", document_id, exc_info=True)

    def _release(self, scope: _JobScope) -> None:
        if scope.session is not None:
            try:
                scope.session.close()
            except Exception:
                logger.warning("Could not close vector-store session for %s", scope.job.document_id, exc_info=True)
            scope.session = None

        if scope.temp_path is not None:
            try:
                scope.temp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not delete temp file %s", scope.temp_path, exc_info=True)

    # -- steps ----------------------------------------------------------------

    def temp_path_for(self, file_url: str) -> Path:
        """Unique local path keeping the original file name as suffix."""
        basename = file_url.rstrip("/").rsplit("/", 1)[-1] or "upload"
        return self.temp_dir / f"{time.time_ns()}-{uuid.uuid4().hex[:8]}-{basename}"

    def _download(self, scope: _JobScope) -> None:
        metadata = scope.job.metadata
        data = self._objects.download(metadata.file_url)
        scope.temp_path = self.temp_path_for(metadata.file_url)
        scope.temp_path.write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), scope.temp_path)

    def _split(self, scope: _JobScope) -> None:
        job = scope.job
        raw_docs = self._loaders.load(scope.temp_path, job.metadata.file_type, source=job.metadata.file_url)
        scope.chunks = chunk_documents(
            raw_docs,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            document_id=job.document_id,
        )
        logger.info(
            "Split document %s into %d chunks (%d raw documents)",
            job.document_id,
            len(scope.chunks),
            len(raw_docs),
        )

    def _open_session(self, scope: _JobScope) -> None:
        job = scope.job
        scope.session = self._sink.open(
            collection_name=job.name,
            collection_id=job.document_id,
            metadata=job.metadata.model_dump(),
        )

    def _persist(self, scope: _JobScope) -> None:
        ids = scope.session.add_documents(scope.chunks)
        scope.persisted = len(ids)
