"""Unit tests for configuration and process wiring."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from doc_ingest.config import Settings
from doc_ingest.ingestion.errors import UnsupportedFormat
from doc_ingest.jobs.memory import InMemoryJobQueue
from doc_ingest.jobs.redis_queue import RedisJobQueue
from doc_ingest.runtime import Services, build_loaders, build_queue


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_defaults(self) -> None:
        cfg = make_settings()
        assert cfg.chunk_size == 1000
        assert cfg.chunk_overlap == 200
        assert cfg.max_attempts == 3
        assert cfg.supabase_bucket == "files"
        assert cfg.documents_table == "qa_database_documents"

    def test_missing_required_for_default_backends(self) -> None:
        cfg = make_settings(supabase_url="", supabase_service_role_key="", openai_api_key="")
        assert cfg.missing_required() == ["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "OPENAI_API_KEY"]

    def test_local_backends_need_fewer_credentials(self) -> None:
        cfg = make_settings(
            supabase_url="https://x.supabase.co",
            supabase_service_role_key="secret",
            embedding_backend="huggingface",
            queue_backend="memory",
        )
        assert cfg.missing_required() == []

    @pytest.mark.parametrize(
        ("backend", "override", "expected"),
        [
            ("redis", None, False),
            ("memory", None, True),
            ("redis", True, True),
            ("memory", False, False),
        ],
    )
    def test_embedded_worker_only_by_default_with_memory_queue(
        self, backend: str, override: bool | None, expected: bool
    ) -> None:
        cfg = make_settings(queue_backend=backend, run_embedded_worker=override)
        assert cfg.embedded_worker_enabled() is expected

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("SUPPORTED_FILE_TYPES", '["pdf", "txt"]')
        cfg = make_settings()
        assert cfg.chunk_size == 500
        assert cfg.supported_file_types == ["pdf", "txt"]


class TestWiring:
    def test_memory_queue_backend(self) -> None:
        queue = build_queue(make_settings(queue_backend="memory", max_attempts=5))
        assert isinstance(queue, InMemoryJobQueue)
        assert queue.max_attempts == 5

    def test_redis_queue_backend_carries_lease(self) -> None:
        queue = build_queue(make_settings(queue_backend="redis", queue_name="ingest", lease_seconds=12.0))
        assert isinstance(queue, RedisJobQueue)
        assert queue.lease_seconds == 12.0
        assert queue.heartbeat_interval == 4.0
        assert queue.pending_key == "ingest:pending"
        queue.close()

    def test_unknown_queue_backend(self) -> None:
        with pytest.raises(ValueError, match="Unsupported queue backend"):
            build_queue(make_settings(queue_backend="kafka"))

    def test_loaders_validated_at_startup(self) -> None:
        assert build_loaders(make_settings()).supports("xlsx")
        with pytest.raises(UnsupportedFormat, match="pptx"):
            build_loaders(make_settings(supported_file_types=["pdf", "pptx"]))

    def test_close_stops_worker_then_releases_clients(self) -> None:
        services = Services(
            status_tracker=MagicMock(),
            queue=MagicMock(),
            pipeline=MagicMock(),
            dispatcher=MagicMock(),
            vector_sink=MagicMock(),
            shutdown_timeout=5.0,
        )
        services.close()

        services.dispatcher.stop.assert_called_once_with(timeout=5.0)
        services.queue.close.assert_called_once()
        services.vector_sink.close.assert_called_once()


def test_worker_refuses_to_start_without_credentials() -> None:
    from doc_ingest import worker

    with patch.object(worker, "build_services") as build_services:
        assert worker.main(make_settings(supabase_url="", openai_api_key="")) == 1
    build_services.assert_not_called()
