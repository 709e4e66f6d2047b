"""Error taxonomy for the ingestion engine.

``ValidationError`` is raised only at the enqueue boundary.  Everything
else derives from :class:`IngestionError` and carries the pipeline stage
that produced it, so the orchestrator can record ``failed`` and the
dispatcher can apply its retry accounting uniformly.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(IngestError):
    """Malformed enqueue request; rejected before any state mutation."""


class IngestionError(IngestError):
    """A pipeline stage failed.

    Parameters
    ----------
    message:
        Human-readable description.
    stage:
        Status the document was in when the failure happened.
    document_id:
        Document being ingested, when known.
    """

    def __init__(self, message: str, *, stage: str | None = None, document_id: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.document_id = document_id


class DownloadError(IngestionError):
    """The file could not be fetched from the object store."""


class ExtractionError(IngestionError):
    """Text extraction or chunking failed."""


class UnsupportedFormat(ExtractionError):
    """No loader is registered for the file-type tag."""


class PersistError(IngestionError):
    """The vector store rejected the session or the chunk batch."""


class StatusWriteError(IngestionError):
    """The document status could not be recorded."""
