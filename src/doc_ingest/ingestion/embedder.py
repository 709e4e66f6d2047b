"""Embedding provider selection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from doc_ingest.config import Settings, settings

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(config: Settings = settings) -> Embeddings:
    """Return the configured embedding function.

    ``openai`` (default) uses the hosted OpenAI embeddings API;
    ``huggingface`` runs a local sentence-transformer model.
    """
    backend = config.embedding_backend.lower()
    logger.info("Using %s embeddings: %s", backend, config.embedding_model)

    if backend == "openai":
        from langchain_openai import OpenAIEmbeddings

        return OpenAIEmbeddings(
            model=config.embedding_model,
            api_key=config.openai_api_key,
            timeout=config.request_timeout_seconds,
        )
    if backend == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=config.embedding_model)

    raise ValueError(f"Unsupported embedding backend: {config.embedding_backend!r}")
