"""Document loaders: a registry of LangChain loaders keyed by file-type tag.

New formats are added by registering a strategy under a new tag::

    registry = default_registry()
    registry.register("html", lambda path: BSHTMLLoader(str(path)).load())

Callers never branch on the extension themselves; they call
:meth:`LoaderRegistry.load` and handle :class:`UnsupportedFormat`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from langchain_community.document_loaders import (
    CSVLoader,
    Docx2txtLoader,
    PyPDFLoader,
    TextLoader,
)
from langchain_core.documents import Document

from doc_ingest.ingestion.errors import ExtractionError, UnsupportedFormat

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)

LoaderFn = Callable[[Path], list[Document]]


def normalize_tag(file_type: str) -> str:
    """``".PDF"`` → ``"pdf"``."""
    return file_type.strip().lower().lstrip(".")


def load_text(path: str | Path) -> list[Document]:
    """Load a plain-text or Markdown file as a single document."""
    return TextLoader(str(path), autodetect_encoding=True).load()


def load_pdf(path: str | Path) -> list[Document]:
    """Load a PDF, one document per page (``page`` metadata)."""
    return PyPDFLoader(str(path)).load()


def load_csv(path: str | Path) -> list[Document]:
    """Load a CSV, one document per row (``row`` metadata)."""
    return CSVLoader(file_path=str(path)).load()


def load_docx(path: str | Path) -> list[Document]:
    """Load a Word document as a single document."""
    return Docx2txtLoader(str(path)).load()


def load_spreadsheet(path: str | Path) -> list[Document]:
    """Load every sheet of an ``.xls`` / ``.xlsx`` workbook.

    Each sheet becomes one document whose rows are rendered as
    ``cell | cell | cell`` lines, with the sheet name kept in metadata.
    """
    import pandas as pd

    sheets: dict[str, pd.DataFrame] = pd.read_excel(str(path), sheet_name=None, header=None, dtype=str)
    documents: list[Document] = []
    for sheet_name, frame in sheets.items():
        documents.append(
            Document(
                page_content=_render_sheet(frame),
                metadata={"source": str(path), "sheet": str(sheet_name)},
            )
        )
    return documents


def _render_sheet(frame: pd.DataFrame) -> str:
    rows = frame.fillna("").itertuples(index=False, name=None)
    return "\n".join(" | ".join(str(cell) for cell in row) for row in rows)


class LoaderRegistry:
    """Maps file-type tags to loader strategies.

    Parameters
    ----------
    loaders:
        Optional initial ``{tag: loader}`` mapping.
    """

    def __init__(self, loaders: dict[str, LoaderFn] | None = None) -> None:
        self._loaders: dict[str, LoaderFn] = {}
        for tag, loader in (loaders or {}).items():
            self.register(tag, loader)

    def register(self, tag: str, loader: LoaderFn) -> None:
        """Register (or replace) the strategy for *tag*."""
        self._loaders[normalize_tag(tag)] = loader

    def supports(self, tag: str) -> bool:
        return normalize_tag(tag) in self._loaders

    @property
    def tags(self) -> list[str]:
        return sorted(self._loaders)

    def validate(self, required_tags: Iterable[str]) -> None:
        """Fail fast when a required tag has no strategy.

        Raises
        ------
        UnsupportedFormat
            Listing every missing tag.
        """
        missing = sorted({normalize_tag(t) for t in required_tags} - set(self._loaders))
        if missing:
            raise UnsupportedFormat(f"No loader registered for: {', '.join(missing)}")

    def load(self, path: str | Path, file_type: str, *, source: str | None = None) -> list[Document]:
        """Extract raw documents from the file at *path*.

        Parameters
        ----------
        path:
            Local file to read.
        file_type:
            Extension tag selecting the strategy.
        source:
            When given, replaces the ``source`` metadata (which would
            otherwise point at the local temp path).

        Raises
        ------
        UnsupportedFormat
            *file_type* has no registered strategy.  Nothing is read.
        ExtractionError
            The strategy raised.
        """
        tag = normalize_tag(file_type)
        loader = self._loaders.get(tag)
        if loader is None:
            raise UnsupportedFormat(f"Unsupported file extension: {file_type}")

        try:
            documents = loader(Path(path))
        except Exception as exc:
            raise ExtractionError(f"Failed to extract text from {tag} file: {exc}") from exc

        if source is not None:
            for doc in documents:
                doc.metadata["source"] = source
        logger.debug("Loaded %d raw documents from %s (%s)", len(documents), path, tag)
        return documents


def default_registry() -> LoaderRegistry:
    """Registry with the built-in formats."""
    return LoaderRegistry(
        {
            "txt": load_text,
            "md": load_text,
            "pdf": load_pdf,
            "csv": load_csv,
            "docx": load_docx,
            "xls": load_spreadsheet,
            "xlsx": load_spreadsheet,
        }
    )
