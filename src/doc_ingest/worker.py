"""Standalone ingestion worker.

Run with::

    python -m doc_ingest.worker

Consumes the shared job queue until SIGTERM / SIGINT, then lets the
in-flight job finish (up to ``SHUTDOWN_TIMEOUT_SECONDS``) before closing
its clients.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading

from doc_ingest.config import Settings, settings
from doc_ingest.runtime import build_services, configure_logging

logger = logging.getLogger(__name__)


def main(config: Settings = settings) -> int:
    configure_logging(config.log_level)

    missing = config.missing_required()
    if missing:
        logger.error("Missing required environment variables: %s", ", ".join(missing))
        return 1

    services = build_services(config)
    shutdown = threading.Event()

    def _handle_signal(signum: int, _frame: object) -> None:
        logger.info("Received %s, shutting down worker", signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    services.dispatcher.start()
    try:
        shutdown.wait()
    finally:
        services.close()
    logger.info("Worker exited cleanly")
    return 0


if __name__ == "__main__":
    sys.exit(main())
