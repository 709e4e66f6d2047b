"""Shared pytest configuration and fixtures."""

from collections.abc import Callable

import pytest

from doc_ingest.ingestion.models import FileMetadata, IngestionJob


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring Supabase, Redis or Chroma")


@pytest.fixture()
def job_factory() -> Callable[..., IngestionJob]:
    """Build ingestion jobs for a PDF upload, keyed by document id."""

    def _make(document_id: str = "doc-1", **overrides) -> IngestionJob:
        fields = {
            "document_id": document_id,
            "name": f"{document_id}.pdf",
            "metadata": FileMetadata(file_type="pdf", file_url=f"uploads/{document_id}.pdf", file_size="10"),
        }
        fields.update(overrides)
        return IngestionJob(**fields)

    return _make
