"""Process-scoped wiring of the ingestion services.

Every client (Supabase, Chroma, Redis, OpenAI) is created once per
process by :func:`build_services` and handed to the components that need
it.  Nothing below this module reads :data:`doc_ingest.config.settings`
directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from doc_ingest.config import Settings, settings
from doc_ingest.ingestion.loader import LoaderRegistry, default_registry
from doc_ingest.ingestion.pipeline import IngestionPipeline
from doc_ingest.jobs.dispatcher import Dispatcher

if TYPE_CHECKING:
    from doc_ingest.jobs.base import JobQueue
    from doc_ingest.retrieval.answer import AnswerGenerator
    from doc_ingest.retrieval.retriever import SemanticRetriever
    from doc_ingest.storage.base import StatusTracker, VectorStoreSink

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once, from a process entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


@dataclass
class Services:
    """Everything the HTTP app and the worker share within one process."""

    status_tracker: StatusTracker
    queue: JobQueue
    pipeline: IngestionPipeline
    dispatcher: Dispatcher
    vector_sink: VectorStoreSink | None = None
    retriever: SemanticRetriever | None = None
    answerer: AnswerGenerator | None = None
    shutdown_timeout: float = 30.0

    def close(self) -> None:
        """Stop the worker (waiting for the in-flight job) and release clients."""
        self.dispatcher.stop(timeout=self.shutdown_timeout)
        try:
            self.queue.close()
        except Exception:
            logger.warning("Error while closing the job queue", exc_info=True)
        if self.vector_sink is not None:
            try:
                self.vector_sink.close()
            except Exception:
                logger.warning("Error while closing the vector store", exc_info=True)


def build_loaders(config: Settings) -> LoaderRegistry:
    """Default loader registry, checked against the configured file types."""
    loaders = default_registry()
    loaders.validate(config.supported_file_types)
    return loaders


def build_queue(config: Settings) -> JobQueue:
    backend = config.queue_backend.lower()
    if backend == "memory":
        from doc_ingest.jobs.memory import InMemoryJobQueue

        return InMemoryJobQueue(max_attempts=config.max_attempts)
    if backend == "redis":
        from doc_ingest.jobs.redis_queue import RedisJobQueue

        return RedisJobQueue.from_url(
            config.redis_url,
            name=config.queue_name,
            max_attempts=config.max_attempts,
            socket_timeout=config.request_timeout_seconds,
            lease_seconds=config.lease_seconds,
        )
    raise ValueError(f"Unsupported queue backend: {config.queue_backend!r}")


def build_supabase_client(config: Settings):
    """Return a Supabase client with bounded request timeouts."""
    from supabase import ClientOptions, create_client

    options = ClientOptions(
        postgrest_client_timeout=config.request_timeout_seconds,
        storage_client_timeout=int(config.request_timeout_seconds),
    )
    return create_client(config.supabase_url, config.supabase_service_role_key, options=options)


def build_chroma_client(config: Settings):
    import chromadb

    return chromadb.HttpClient(host=config.chroma_host, port=config.chroma_port)


def build_services(config: Settings = settings) -> Services:
    """Create every client and component described by *config*.

    Raises
    ------
    UnsupportedFormat
        A configured file type has no loader.
    ValueError
        An unknown queue or embedding backend is configured.
    """
    from doc_ingest.ingestion.embedder import get_embedding_function
    from doc_ingest.retrieval.answer import AnswerGenerator, get_llm
    from doc_ingest.retrieval.chroma_store import ChromaVectorStore
    from doc_ingest.retrieval.retriever import SemanticRetriever
    from doc_ingest.storage.chroma_sink import ChromaVectorSink
    from doc_ingest.storage.object_store import SupabaseObjectStore
    from doc_ingest.storage.status import SupabaseStatusTracker

    loaders = build_loaders(config)

    supabase = build_supabase_client(config)
    status_tracker = SupabaseStatusTracker(
        supabase,
        table=config.documents_table,
        id_column=config.documents_id_column,
    )
    object_store = SupabaseObjectStore(supabase, bucket=config.supabase_bucket)

    chroma = build_chroma_client(config)
    embedding = get_embedding_function(config)
    vector_sink = ChromaVectorSink(chroma, embedding, collection_name=config.chroma_collection)

    pipeline = IngestionPipeline(
        status_tracker,
        object_store,
        vector_sink,
        loaders=loaders,
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
        temp_dir=config.temp_dir,
    )
    queue = build_queue(config)
    dispatcher = Dispatcher(queue, pipeline)

    store = ChromaVectorStore(chroma, embedding, collection_name=config.chroma_collection)
    logger.info(
        "Services ready (queue=%s, embeddings=%s, collection=%s)",
        config.queue_backend,
        config.embedding_backend,
        config.chroma_collection,
    )
    return Services(
        status_tracker=status_tracker,
        queue=queue,
        pipeline=pipeline,
        dispatcher=dispatcher,
        vector_sink=vector_sink,
        retriever=SemanticRetriever(store),
        answerer=AnswerGenerator(get_llm(config)),
        shutdown_timeout=config.shutdown_timeout_seconds,
    )
