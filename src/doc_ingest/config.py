"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM (query path)
    openai_api_key: str = Field(default="", description="OpenAI API key, also used for embeddings")
    llm_model_name: str = Field(default="gpt-4o-mini", description="Chat model used to answer questions")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat endpoint. Leave empty to "
            "use OpenAI cloud."
        ),
    )

    # Embedding
    embedding_backend: str = Field(default="openai", description="'openai' or 'huggingface'")
    embedding_model: str = "text-embedding-3-small"

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "document_chunks"

    # Supabase (document rows + object storage)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_bucket: str = "files"
    documents_table: str = "qa_database_documents"
    documents_id_column: str = "uuid"

    # Job queue
    queue_backend: str = Field(default="redis", description="'redis' or 'memory'")
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "document-ingestion"
    max_attempts: int = Field(default=3, ge=1)
    lease_seconds: float = Field(default=30.0, gt=0, description="Redis reservation lifetime without a heartbeat")

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200
    supported_file_types: list[str] = ["txt", "md", "pdf", "csv", "docx", "xls", "xlsx"]

    # Worker / process
    temp_dir: str = Field(default_factory=tempfile.gettempdir)
    request_timeout_seconds: float = 60.0
    shutdown_timeout_seconds: float = 30.0
    run_embedded_worker: bool | None = Field(
        default=None,
        description=(
            "Run the worker inside the API process. Unset means only with the "
            "memory queue; Redis deployments run doc-ingest-worker instead."
        ),
    )
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def missing_required(self) -> list[str]:
        """Return the env var names that must be set for the configured backends."""
        required = {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_ROLE_KEY": self.supabase_service_role_key,
        }
        if self.embedding_backend == "openai":
            required["OPENAI_API_KEY"] = self.openai_api_key
        if self.queue_backend == "redis":
            required["REDIS_URL"] = self.redis_url
        return [name for name, value in required.items() if not value]

    def embedded_worker_enabled(self) -> bool:
        """Whether the API process should run its own ingestion worker."""
        if self.run_embedded_worker is not None:
            return self.run_embedded_worker
        return self.queue_backend.lower() == "memory"


# Singleton: read by process entry points; library classes take explicit arguments.
settings = Settings()
