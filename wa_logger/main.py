"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wa_logger.core.config import Settings, get_settings
from wa_logger.core.database import close_db, get_session_factory, init_db
from wa_logger.core.logging import setup_logging, get_logger
from wa_logger.api import directory, events, health, messages, metrics, send, stats
from wa_logger.api.metrics import MetricsMiddleware, record_ingest_outcome, set_startup_time
from wa_logger.pipeline.dispatcher import EventDispatcher
from wa_logger.pipeline.media import MediaResolver
from wa_logger.pipeline.metadata_queue import GroupMetadataQueue
from wa_logger.transport.base import Transport, TransportNotConnectedError
from wa_logger.transport.http_bridge import HttpTransport


async def _transport_unavailable(group_id: str):
    raise TransportNotConnectedError()


def build_dispatcher(settings: Settings, transport: Optional[Transport]) -> EventDispatcher:
    """Wire the ingestion pipeline around ``transport``."""
    resolver = MediaResolver(transport, settings.media_dir)
    queue = GroupMetadataQueue(
        fetch=transport.fetch_group_metadata if transport is not None else _transport_unavailable,
        delay_ms=settings.group_metadata_delay_ms,
        max_retries=settings.group_metadata_max_retries,
    )
    return EventDispatcher(
        get_session_factory(),
        resolver,
        queue,
        account_name=settings.account_name,
        status_fallback_width=settings.status_fallback_width,
        on_result=record_ingest_outcome,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    logger = get_logger(__name__)
    logger.info("Starting application...")

    init_db()
    logger.info("Database initialized")

    transport = HttpTransport.from_settings(settings) if settings.transport_url else None
    if transport is None:
        logger.warning("TRANSPORT_URL not configured; media downloads and group metadata are disabled")
    app.state.transport = transport
    app.state.dispatcher = build_dispatcher(settings, transport)

    set_startup_time()

    yield

    # Shutdown
    logger.info("Shutting down application...")
    dropped = await app.state.dispatcher.metadata_queue.close()
    if dropped:
        logger.warning(f"Dropped {dropped} queued group metadata fetches")
    if transport is not None:
        await transport.close()
    close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    setup_logging(settings)
    logger = get_logger(__name__)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Event-driven WhatsApp logger: persists messages, media, reactions, receipts, contacts and groups",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(MetricsMiddleware)

    app.include_router(events.router)
    app.include_router(send.router)
    app.include_router(messages.router)
    app.include_router(directory.router)
    app.include_router(stats.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
            }
        }
    )

    return app


# Create the application instance
app = create_app()
