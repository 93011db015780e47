"""
Delivery Worker Runner

Standalone process running the delivery worker pool, for deployments
that keep workers out of the API process.

Usage:
    newsletter-worker
    python -m newsletter_service.core.outbox.runner

Environment Variables:
    DATABASE_BACKEND / DATABASE_URL / SQLITE_PATH: Database selection
    EMAIL_BASE_URL, EMAIL_SENDER, EMAIL_AUTH_TOKEN: Mail API
    DELIVERY_WORKERS: Number of workers (default: 2)
    DELIVERY_BATCH_SIZE: Tasks claimed per batch (default: 10)
    DELIVERY_IDLE_INTERVAL: Sleep when nothing is due, seconds (default: 10)
    DELIVERY_MAX_ATTEMPTS: Attempts before a task is poisoned (default: 5)
    DELIVERY_SHUTDOWN_GRACE: Seconds to finish in-flight work on stop (default: 30)
    LOG_LEVEL: Logging level (default: INFO)
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from ..config import ServiceConfig, get_config
from ..database.adapter import DatabaseAdapter
from ..database.schema import apply_schema
from ..email.client import EmailClient
from ..observability import configure_logging, init_metrics, init_tracing
from .lifecycle import build_worker_pool
from .processor import DeliveryWorkerPool

logger = logging.getLogger(__name__)


class DeliveryRunner:
    """Manages the worker pool lifecycle with graceful shutdown."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or get_config()
        self.pool: Optional[DeliveryWorkerPool] = None
        self._shutdown_event = asyncio.Event()
        self._shutdown_requested = False

    def _setup_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown_signal, sig)

    def _handle_shutdown_signal(self, sig: signal.Signals):
        if self._shutdown_requested:
            logger.warning("Received %s again, forcing exit", sig.name)
            sys.exit(1)

        logger.info("Received %s, initiating graceful shutdown", sig.name)
        self._shutdown_requested = True
        self._shutdown_event.set()

    def request_shutdown(self):
        self._shutdown_requested = True
        self._shutdown_event.set()

    async def run(self, db: Optional[DatabaseAdapter] = None):
        """Run the worker pool until shutdown is requested."""
        config = self.config
        logger.info("Starting delivery worker runner")
        logger.info("  Workers: %d", config.DELIVERY_WORKERS)
        logger.info("  Batch size: %d", config.DELIVERY_BATCH_SIZE)
        logger.info("  Max attempts: %d", config.DELIVERY_MAX_ATTEMPTS)

        self._setup_signal_handlers()

        db = db or DatabaseAdapter()
        await db.connect()
        await apply_schema(db)

        transport = EmailClient(
            base_url=config.EMAIL_BASE_URL,
            sender=config.EMAIL_SENDER,
            auth_token=config.EMAIL_AUTH_TOKEN,
            timeout=config.EMAIL_TIMEOUT_SECONDS,
        )
        self.pool = build_worker_pool(db, transport, config)

        try:
            await self.pool.start()
            logger.info("Delivery workers are running")
            await self._shutdown_event.wait()
        finally:
            logger.info("Stopping delivery workers")
            await self.pool.stop(grace_seconds=config.DELIVERY_SHUTDOWN_GRACE)
            await transport.aclose()
            await db.disconnect()
            logger.info("Delivery workers stopped")

    def health_check(self) -> dict:
        running = bool(self.pool and self.pool.running)
        return {
            "status": "healthy" if running else "unhealthy",
            "running": running,
            "shutdown_requested": self._shutdown_requested,
        }


async def main():
    config = get_config()
    configure_logging(
        level=config.LOG_LEVEL,
        structured=config.LOG_STRUCTURED,
        service_name="newsletter-worker",
    )
    for issue in config.validate():
        logger.warning(issue)
    if config.OTEL_ENABLED:
        init_tracing(
            service_name="newsletter-worker",
            service_version=config.APP_VERSION,
            otlp_endpoint=config.OTEL_EXPORTER_OTLP_ENDPOINT or None,
            console_export=config.OTEL_CONSOLE_EXPORT,
        )
        init_metrics(
            service_name="newsletter-worker",
            otlp_endpoint=config.OTEL_EXPORTER_OTLP_ENDPOINT or None,
            console_export=config.OTEL_CONSOLE_EXPORT,
        )

    await DeliveryRunner(config).run()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
