from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotsync.core.clock import Clock, utcnow
from slotsync.core.config import Settings
from slotsync.services.booking_orchestrator import BookingOrchestrator
from slotsync.services.booking_store import BookingStore
from slotsync.services.bulk_reschedule import BulkRescheduler
from slotsync.services.conflict_detector import ConflictDetector
from slotsync.services.graph_calendar_client import GraphCalendarClient
from slotsync.services.notifications import (
    LoggingNotificationSender,
    NotificationSender,
    SmtpNotificationSender,
)
from slotsync.services.provider_client import static_token
from slotsync.services.resilience import RetryPolicy
from slotsync.services.slot_search import SlotSearch
from slotsync.services.sync.base import SyncAdapter
from slotsync.services.sync.calendar import CalendarSyncAdapter
from slotsync.services.sync.meeting import MeetingSyncAdapter
from slotsync.services.zoom_client import ZoomMeetingClient

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Process-wide object graph, composed once and handed to the HTTP layer
    and the CLI.
    """

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    store: BookingStore
    slot_search: SlotSearch
    orchestrator: BookingOrchestrator
    bulk_rescheduler: BulkRescheduler


def build_adapters(settings: Settings) -> list[SyncAdapter]:
    """
    One adapter per provider that has a credential configured.
    """
    adapters: list[SyncAdapter] = []
    timeout = settings.SYNC_CALL_TIMEOUT_SECONDS

    if settings.GRAPH_ACCESS_TOKEN:
        kwargs = {"timeout_seconds": timeout}
        if settings.GRAPH_BASE_URL:
            kwargs["base_url"] = str(settings.GRAPH_BASE_URL)
        client = GraphCalendarClient(static_token(settings.GRAPH_ACCESS_TOKEN), **kwargs)
        adapters.append(CalendarSyncAdapter(client))
    else:
        logger.info("Calendar sync disabled: GRAPH_ACCESS_TOKEN is not set")

    if settings.ZOOM_ACCESS_TOKEN:
        kwargs = {"timeout_seconds": timeout}
        if settings.ZOOM_BASE_URL:
            kwargs["base_url"] = str(settings.ZOOM_BASE_URL)
        client = ZoomMeetingClient(static_token(settings.ZOOM_ACCESS_TOKEN), **kwargs)
        adapters.append(MeetingSyncAdapter(client))
    else:
        logger.info("Meeting sync disabled: ZOOM_ACCESS_TOKEN is not set")

    return adapters


def build_notifier(settings: Settings) -> NotificationSender:
    smtp = SmtpNotificationSender(settings)
    if smtp.configured:
        return smtp
    return LoggingNotificationSender()


def build_container(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    adapters: Optional[Sequence[SyncAdapter]] = None,
    notifier: Optional[NotificationSender] = None,
    clock: Clock = utcnow,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ServiceContainer:
    """
    Wire the booking core from settings.

    Any collaborator can be overridden; tests pass fakes for the adapters,
    the notifier and the clock.
    """
    if session_factory is None:
        from slotsync.db.session import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    detector = ConflictDetector()
    store = BookingStore(session_factory, detector)
    slot_search = SlotSearch(
        session_factory,
        detector,
        granularity_minutes=settings.SLOT_GRANULARITY_MINUTES,
        min_notice_minutes=settings.MIN_BOOKING_NOTICE_MINUTES,
        busy_timeout_seconds=settings.SYNC_CALL_TIMEOUT_SECONDS,
    )
    policy = RetryPolicy(
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
        backoff_base=settings.SYNC_BACKOFF_BASE_SECONDS,
        timeout_seconds=settings.SYNC_CALL_TIMEOUT_SECONDS,
    )

    orchestrator = BookingOrchestrator(
        store,
        adapters=build_adapters(settings) if adapters is None else adapters,
        notifier=build_notifier(settings) if notifier is None else notifier,
        retry_policy=policy,
        slot_search=slot_search,
        clock=clock,
        sleep=sleep,
    )

    return ServiceContainer(
        settings=settings,
        session_factory=session_factory,
        store=store,
        slot_search=slot_search,
        orchestrator=orchestrator,
        bulk_rescheduler=BulkRescheduler(store, orchestrator, slot_search, clock=clock),
    )
