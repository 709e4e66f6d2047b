"""
Serving: FastAPI application for ingestion and question answering.

Run with ``uvicorn doc_ingest.serving.app:app``.  With the Redis queue the
jobs are consumed by ``python -m doc_ingest.worker``; with
``QUEUE_BACKEND=memory`` the app hosts the worker itself.
``RUN_EMBEDDED_WORKER`` overrides either default.
"""
