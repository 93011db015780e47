"""
Newsletter Service API
======================

FastAPI application exposing idempotent issue publication and delivery
operator endpoints. Optionally runs the delivery workers in-process.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ..core.config import ServiceConfig, get_config
from ..core.database.adapter import DatabaseAdapter
from ..core.database.schema import apply_schema
from ..core.email.client import EmailClient, MailTransport
from ..core.observability import configure_logging, init_metrics, init_tracing
from ..core.outbox.lifecycle import delivery_lifespan
from .routers import deliveries_router, health_router, newsletters_router
from .shared.middleware import AuthMiddleware, TraceMiddleware, register_error_handlers

logger = logging.getLogger(__name__)

SERVICE_NAME = "newsletter-service"


def init_observability(config: ServiceConfig):
    """Initialize logging, and tracing plus metrics when enabled."""
    configure_logging(
        level=config.LOG_LEVEL,
        structured=config.LOG_STRUCTURED,
        service_name=SERVICE_NAME
    )

    otlp_endpoint = config.OTEL_EXPORTER_OTLP_ENDPOINT or None
    if config.OTEL_ENABLED or otlp_endpoint:
        init_tracing(
            service_name=SERVICE_NAME,
            service_version=config.APP_VERSION,
            otlp_endpoint=otlp_endpoint,
            console_export=config.OTEL_CONSOLE_EXPORT
        )
        init_metrics(
            service_name=SERVICE_NAME,
            otlp_endpoint=otlp_endpoint,
            console_export=config.OTEL_CONSOLE_EXPORT
        )
        logger.info("OpenTelemetry observability initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database, apply the schema and run delivery workers."""
    config: ServiceConfig = app.state.config
    db: DatabaseAdapter = app.state.db

    for issue in config.validate():
        logger.warning(issue)

    await db.connect()
    await apply_schema(db)

    owns_transport = app.state.transport is None
    if owns_transport:
        app.state.transport = EmailClient(
            base_url=config.EMAIL_BASE_URL,
            sender=config.EMAIL_SENDER,
            auth_token=config.EMAIL_AUTH_TOKEN,
            timeout=config.EMAIL_TIMEOUT_SECONDS,
        )

    try:
        async with delivery_lifespan(db, app.state.transport, config) as pool:
            app.state.worker_pool = pool
            yield
    finally:
        app.state.worker_pool = None
        if owns_transport:
            await app.state.transport.aclose()
            app.state.transport = None
        await db.disconnect()


def create_app(
    config: Optional[ServiceConfig] = None,
    db: Optional[DatabaseAdapter] = None,
    transport: Optional[MailTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Service configuration (default: from environment)
        db: Database adapter (default: from DATABASE_* environment)
        transport: Mail transport (default: EmailClient built at startup)
    """
    config = config or get_config()

    app = FastAPI(
        title="Newsletter Service API",
        description="Idempotent newsletter publication with outbox-backed delivery",
        version=config.APP_VERSION,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.db = db or DatabaseAdapter()
    app.state.transport = transport
    app.state.worker_pool = None

    register_error_handlers(app)

    # Middleware runs in reverse order of registration: trace, then auth
    app.add_middleware(AuthMiddleware)
    app.add_middleware(TraceMiddleware)

    app.include_router(health_router)
    app.include_router(newsletters_router)
    app.include_router(deliveries_router)

    return app


def run():
    """Entry point for the newsletter-api command."""
    import uvicorn

    config = get_config()
    init_observability(config)
    uvicorn.run(
        create_app(config),
        host=config.API_HOST,
        port=config.API_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
