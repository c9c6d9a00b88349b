from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from slotsync.services.booking_orchestrator import BookingOrchestrator
from slotsync.services.bulk_reschedule import BulkRescheduler
from slotsync.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """
    The object graph composed by the application factory.
    """
    return request.app.state.container


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return get_container(request).orchestrator


def get_bulk_rescheduler(request: Request) -> BulkRescheduler:
    return get_container(request).bulk_rescheduler


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async SQLAlchemy session bound to
    the container's database.

    The session is automatically closed when the request is completed.
    """
    async with get_container(request).session_factory() as session:
        yield session
