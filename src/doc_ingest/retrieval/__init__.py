"""
Retrieval: the query path over ingested documents.

Public surface
--------------
- :class:`SemanticRetriever`: similarity search returning chunks with citations.
- :class:`AnswerGenerator`: grounded answers from retrieved chunks.
- :class:`VectorStoreBase`: abstract searchable backend.
- :class:`ChromaVectorStore`: default Chroma backend.
- :class:`Citation`, :class:`RetrievalResult`, :class:`MetadataFilter`, :class:`Answer`: data models.
"""

from doc_ingest.retrieval.base import VectorStoreBase
from doc_ingest.retrieval.models import Answer, Citation, MetadataFilter, RetrievalResult
from doc_ingest.retrieval.retriever import SemanticRetriever

__all__ = [
    "Answer",
    "AnswerGenerator",
    "Citation",
    "ChromaVectorStore",
    "MetadataFilter",
    "RetrievalResult",
    "SemanticRetriever",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import heavy backends so importing the package stays cheap."""
    if name == "ChromaVectorStore":
        from doc_ingest.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    if name == "AnswerGenerator":
        from doc_ingest.retrieval.answer import AnswerGenerator

        return AnswerGenerator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
