"""Domain models for documents under ingestion and their queue jobs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from doc_ingest.ingestion.errors import IngestionError, ValidationError


class DocumentStatus(str, Enum):
    """Lifecycle status of a document.

    The happy path runs top to bottom; ``failed`` is reachable from every
    non-terminal state.
    """

    queued = "queued"
    processing = "processing"
    splitting = "splitting"
    embedding = "embedding"
    indexing = "indexing"
    ready = "ready"
    failed = "failed"


#: Forward transitions in the order the pipeline performs them.
HAPPY_PATH: tuple[DocumentStatus, ...] = (
    DocumentStatus.queued,
    DocumentStatus.processing,
    DocumentStatus.splitting,
    DocumentStatus.embedding,
    DocumentStatus.indexing,
    DocumentStatus.ready,
)


class FileMetadata(BaseModel):
    """Storage details of the uploaded file.

    Attributes
    ----------
    file_type:
        Extension tag used to pick a loader (``"pdf"``, ``"csv"`` …).
    file_url:
        Object-store key of the uploaded file.
    file_size:
        Size as reported by the uploader; opaque to the pipeline.
    """

    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)

    file_type: str = Field(min_length=1)
    file_url: str = Field(min_length=1)
    file_size: str = Field(min_length=1)


class IngestionJob(BaseModel):
    """One queued unit of work. The job id *is* the document id."""

    document_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    metadata: FileMetadata
    attempts: int = 0

    @property
    def job_id(self) -> str:
        return self.document_id

    @classmethod
    def from_request(cls, payload: Any) -> IngestionJob:
        """Build a job from an ``{name, id, metadata}`` enqueue request.

        Raises
        ------
        ValidationError
            Naming every missing or empty field.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            return cls(
                document_id=payload.get("id") or "",
                name=payload.get("name") or "",
                metadata=payload.get("metadata") or {},
            )
        except PydanticValidationError as exc:
            fields = []
            for err in exc.errors():
                loc = ["id" if part == "document_id" else str(part) for part in err["loc"]]
                fields.append(".".join(loc))
            raise ValidationError(f"Missing required fields: {', '.join(fields)}") from exc


@dataclass
class IngestionResult:
    """Outcome of one pipeline run (a value, not an exception)."""

    document_id: str
    status: DocumentStatus
    chunk_count: int = 0
    error: IngestionError | None = None

    @property
    def ok(self) -> bool:
        return self.status is DocumentStatus.ready
