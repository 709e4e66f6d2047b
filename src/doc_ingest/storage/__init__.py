"""
Storage: adapters for the capabilities the ingestion pipeline consumes.

Each adapter implements one interface from :mod:`doc_ingest.storage.base`:
status tracking, object download, and per-document vector-store sessions.
"""
