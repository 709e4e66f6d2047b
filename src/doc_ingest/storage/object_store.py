"""Object-store adapters that fetch uploaded files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from doc_ingest.ingestion.errors import DownloadError
from doc_ingest.storage.base import ObjectStore

if TYPE_CHECKING:
    from supabase import Client

logger = logging.getLogger(__name__)


class SupabaseObjectStore(ObjectStore):
    """Downloads files from a Supabase Storage bucket."""

    def __init__(self, client: Client, *, bucket: str = "files") -> None:
        self._client = client
        self.bucket = bucket

    def download(self, location_key: str) -> bytes:
        try:
            data = self._client.storage.from_(self.bucket).download(location_key)
        except Exception as exc:
            raise DownloadError(f"Failed to download file: {exc}") from exc
        logger.debug("Downloaded %s/%s (%d bytes)", self.bucket, location_key, len(data))
        return data


class LocalObjectStore(ObjectStore):
    """Serves files from a local directory; keys are relative paths.

    Useful for development and tests.  Keys escaping *root* are rejected.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def download(self, location_key: str) -> bytes:
        path = (self.root / location_key).resolve()
        if not path.is_relative_to(self.root):
            raise DownloadError(f"Failed to download file: key {location_key!r} escapes store root")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise DownloadError(f"Failed to download file: {exc}") from exc
