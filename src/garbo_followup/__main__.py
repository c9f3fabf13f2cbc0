"""Worker service entry point."""

import logging
import signal
import sys

from .config import settings
from .utils import setup_logging
from .workers import celery_app

logger = logging.getLogger(__name__)


def shutdown_handler(signum, frame):  # noqa: ARG001
    """Handle graceful shutdown."""
    logger.info("Received shutdown signal, gracefully stopping...")
    celery_app.control.shutdown()
    logger.info("Worker shutdown complete")
    sys.exit(0)


if __name__ == "__main__":
    setup_logging("garbo_followup", settings.LOG_LEVEL)

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    logger.info("Starting follow-up worker service...")

    celery_app.worker_main([
        "worker",
        f"--loglevel={settings.LOG_LEVEL.lower()}",
        "--concurrency=4",
    ])
