"""FastAPI application exposing document ingestion and question answering."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from doc_ingest.config import Settings, settings
from doc_ingest.ingestion.errors import ValidationError
from doc_ingest.ingestion.models import DocumentStatus, IngestionJob
from doc_ingest.runtime import Services, build_services, configure_logging

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Question about the ingested documents."""

    question: str = Field(min_length=1)
    document_id: str | None = None
    k: int = Field(default=4, ge=1, le=50)


class SourceRef(BaseModel):
    document_id: str | None = None
    source: str
    chunk_index: int | None = None
    score: float | None = None


class QueryResponse(BaseModel):
    """Grounded answer returned by the query path."""

    answer: str
    question: str
    context_count: int
    sources: list[SourceRef] = []


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    services: Services | None = None,
    *,
    config: Settings = settings,
    run_worker: bool | None = None,
) -> FastAPI:
    """Build the HTTP app.

    Parameters
    ----------
    services:
        Pre-built services (tests inject in-memory ones).  When omitted
        they are built from *config* at startup and closed at shutdown.
    config:
        Settings used to build services.
    run_worker:
        Host the dispatcher in this process; defaults to
        :meth:`Settings.embedded_worker_enabled`, which is off for the Redis
        queue so that only the dedicated worker consumes it.
    """
    embedded = config.embedded_worker_enabled() if run_worker is None else run_worker

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            configure_logging(config.log_level)
            missing = config.missing_required()
            if missing:
                raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")
            app.state.services = build_services(config)

        svc: Services = app.state.services
        if embedded:
            svc.dispatcher.start()
        try:
            yield
        finally:
            if owned:
                svc.close()
                app.state.services = None
            elif embedded:
                svc.dispatcher.stop(timeout=svc.shutdown_timeout)

    app = FastAPI(
        title="Document Ingestion API",
        version="0.1.0",
        description="Queue documents for ingestion and ask questions about them.",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(part) for part in err["loc"][1:]) or "body" for err in exc.errors()]
        return _error(400, f"Invalid request: {', '.join(fields)}")

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    def health(request: Request) -> JSONResponse:
        """Report whether the vector store behind the query path answers."""
        svc: Services | None = request.app.state.services
        if svc is not None and svc.retriever is not None and not svc.retriever.health_check():
            return JSONResponse(status_code=503, content={"status": "degraded"})
        return JSONResponse({"status": "ok"})

    @app.post("/ingest")
    def ingest(request: Request, payload: Any = Body(...)) -> JSONResponse:
        """Validate the request, mark the document queued and enqueue it.

        A document whose job is already pending or running keeps its
        current status; only a job the queue will accept is marked queued.
        """
        try:
            job = IngestionJob.from_request(payload)
        except ValidationError as exc:
            return _error(400, str(exc))

        svc: Services = request.app.state.services
        try:
            added = False
            if not svc.queue.contains(job.job_id):
                svc.status_tracker.set_status(job.document_id, DocumentStatus.queued)
                added = svc.queue.enqueue(job)
        except Exception as exc:
            logger.exception("Failed to queue ingestion of document %s", job.document_id)
            return _error(500, f"Failed to queue ingestion: {exc}")

        if not added:
            logger.info("Ingestion job %s already queued", job.job_id)
            return JSONResponse({"message": "Ingestion job already queued"})
        logger.info("Queued ingestion job %s (%s)", job.job_id, job.metadata.file_type)
        return JSONResponse({"message": "Ingestion job queued successfully"})

    @app.post("/query", response_model=QueryResponse)
    def query(request: Request, body: QueryRequest) -> Any:
        """Retrieve relevant chunks and answer the question from them."""
        svc: Services = request.app.state.services
        if svc.retriever is None or svc.answerer is None:
            return _error(503, "Query path is not configured")

        try:
            results = svc.retriever.search(body.question, k=body.k, document_id=body.document_id)
            if not results:
                return _error(404, "No relevant documents found")
            answer = svc.answerer.generate(body.question, results)
        except Exception as exc:
            logger.exception("Failed to answer question")
            return _error(500, f"Failed to generate answer: {exc}")

        return QueryResponse(
            answer=answer.answer,
            question=answer.question,
            context_count=answer.context_count,
            sources=[
                SourceRef(
                    document_id=c.document_id,
                    source=c.source,
                    chunk_index=c.chunk_index,
                    score=c.score,
                )
                for c in answer.sources
            ],
        )

    return app


app = create_app()
