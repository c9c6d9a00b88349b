# slotsync/main.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from slotsync.api.routes import bookings, health, internal, resources
from slotsync.core.config import get_settings
from slotsync.core.logging import configure_logging
from slotsync.db.session import init_db_for_startup
from slotsync.services.container import ServiceContainer, build_container


def create_app(container: Optional[ServiceContainer] = None, init_schema: bool = True) -> FastAPI:
    """
    Application factory for the SlotSync service.

    `container` lets callers (tests, embedding services) supply their own
    object graph; by default one is composed from settings.
    """
    settings = container.settings if container is not None else get_settings()
    configure_logging(settings.LOG_LEVEL)

    if container is None:
        container = build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # pragma: no cover
        if init_schema:
            await init_db_for_startup(container.session_factory.kw.get("bind"))
        yield
        await container.orchestrator.drain_notifications()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Booking scheduling and multi-system sync engine.\n\n"
            "Validates requested windows against each resource's weekly availability and "
            "confirmed bookings, reserves them atomically, and mirrors every booking into "
            "the configured calendar and meeting providers without letting a provider "
            "failure undo a valid reservation."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    # Routers
    app.include_router(health.router)
    app.include_router(bookings.router)
    app.include_router(resources.router)
    app.include_router(internal.router)

    return app


app = create_app()
