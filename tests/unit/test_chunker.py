"""Unit tests for the chunker module."""

import pytest
from langchain_core.documents import Document

from doc_ingest.ingestion.chunker import chunk_documents


def _letters(n: int) -> str:
    """Separator-free text so the splitter falls back to hard cuts."""
    return "".join(chr(ord("a") + i % 26) for i in range(n))


def test_chunk_documents_splits_long_text() -> None:
    """A document longer than chunk_size should be split."""
    long_text = "word " * 500  # ~2500 chars
    docs = [Document(page_content=long_text, metadata={"source": "test"})]
    chunks = chunk_documents(docs, chunk_size=256, chunk_overlap=32)
    assert len(chunks) > 1
    assert all(len(c.page_content) <= 256 for c in chunks)


def test_chunking_is_deterministic_with_200_char_overlap() -> None:
    text = _letters(2500)
    first = chunk_documents([Document(page_content=text)], chunk_size=1000, chunk_overlap=200)
    second = chunk_documents([Document(page_content=text)], chunk_size=1000, chunk_overlap=200)

    assert [c.page_content for c in first] == [c.page_content for c in second]
    assert [c.page_content for c in first] == [text[0:1000], text[800:1800], text[1600:2500]]
    for prev, cur in zip(first, first[1:]):
        assert prev.page_content[-200:] == cur.page_content[:200]


def test_chunk_documents_preserves_metadata() -> None:
    """Metadata from the source document should be preserved in chunks."""
    docs = [Document(page_content="Short text.", metadata={"source": "test.md"})]
    chunks = chunk_documents(docs, chunk_size=256, chunk_overlap=0)
    assert all(c.metadata.get("source") == "test.md" for c in chunks)


def test_chunk_index_runs_across_source_documents() -> None:
    docs = [
        Document(page_content=_letters(1500), metadata={"page": 0}),
        Document(page_content="tail page", metadata={"page": 1}),
    ]
    chunks = chunk_documents(docs, document_id="doc-1")

    assert [c.metadata["chunk_index"] for c in chunks] == list(range(len(chunks)))
    assert all(c.metadata["document_id"] == "doc-1" for c in chunks)
    assert chunks[-1].metadata["page"] == 1


def test_overlap_must_be_smaller_than_size() -> None:
    with pytest.raises(ValueError, match="chunk_overlap"):
        chunk_documents([Document(page_content="x")], chunk_size=100, chunk_overlap=100)


def test_chunk_documents_empty_input() -> None:
    """An empty list should return an empty list."""
    assert chunk_documents([]) == []
