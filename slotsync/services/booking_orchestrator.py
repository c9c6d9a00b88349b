from __future__ import annotations

import asyncio
import logging
from datetime import date as date_type, datetime, timedelta
from typing import Awaitable, Callable, Optional, Sequence, Set, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from slotsync.core.clock import Clock, ensure_utc, utcnow
from slotsync.core.logging import set_booking_id
from slotsync.models.booking import Booking, blocked_end
from slotsync.models.resource import Resource
from slotsync.models.service_definition import ServiceDefinition
from slotsync.schemas.availability import AvailableSlotsResponse
from slotsync.schemas.booking import (
    BookingCreate,
    BookingRead,
    BookingResult,
    BookingStatus,
    ProviderKind,
    SyncOutcome,
    SyncStatus,
)
from slotsync.services.availability import AvailabilityModel
from slotsync.services.booking_store import BookingStore
from slotsync.services.errors import (
    BookingValidationError,
    InvalidStateError,
    InvalidWindowError,
    NotFoundError,
    OutsideAvailabilityError,
)
from slotsync.services.notifications import NotificationKind, NotificationSender
from slotsync.services.resilience import (
    Outcome,
    RetryPolicy,
    is_transient_sync_error,
    with_retry,
)
from slotsync.services.slot_search import SlotSearch
from slotsync.services.sync.base import SyncAdapter, SyncArtifact

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (adapter, operation, outcome, booking id) as returned by one provider call
_CallResult = Tuple[SyncAdapter, str, Outcome, int]


def resolve_duration(service: ServiceDefinition, requested: Optional[int]) -> int:
    """
    Duration in minutes for a new booking of `service`.

    Fixed-duration services ignore the request. Flexible services accept
    any member of their allowed set and default to `duration_minutes`.
    """
    options = service.duration_options
    if not service.allowed_durations or requested is None:
        return service.duration_minutes
    if requested not in options:
        raise BookingValidationError(
            f"Duration {requested} is not allowed for service {service.id}; "
            f"choose one of {options}"
        )
    return requested


class BookingOrchestrator:
    """
    Transactional core of the booking lifecycle.

    Requested -> Validated -> Persisted -> Synced(partial|full)
    Persisted -> Cancelled
    Persisted -> Rescheduled -> Persisted

    Domain errors (`BookingError` subclasses) stop an operation before
    anything is written. Once the booking row is committed, provider
    failures are only ever recorded as FAILED sync outcomes plus warnings.
    """

    def __init__(
        self,
        store: BookingStore,
        adapters: Sequence[SyncAdapter] = (),
        notifier: Optional[NotificationSender] = None,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        availability: type[AvailabilityModel] = AvailabilityModel,
        slot_search: Optional[SlotSearch] = None,
        clock: Clock = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        kinds = [adapter.kind for adapter in adapters]
        if len(set(kinds)) != len(kinds):
            raise ValueError("At most one adapter per provider kind is supported")

        self._store = store
        self._adapters = list(adapters)
        self._notifier = notifier
        self._retry_policy = retry_policy or RetryPolicy()
        self._availability = availability
        self._slot_search = slot_search
        self._clock = clock
        self._sleep = sleep
        self._pending_notifications: Set[asyncio.Task] = set()

    @property
    def adapters(self) -> list[SyncAdapter]:
        return list(self._adapters)

    def adapter_for(self, kind: ProviderKind) -> Optional[SyncAdapter]:
        for adapter in self._adapters:
            if adapter.kind == kind:
                return adapter
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: int) -> BookingRead:
        booking = await self._store.find_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking with id={booking_id} not found")
        return BookingRead.model_validate(booking)

    async def list_bookings(
        self,
        resource_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[BookingRead]:
        bookings = await self._store.find_bookings_by_resource_and_range(
            resource_id,
            start=ensure_utc(start) if start is not None else None,
            end=ensure_utc(end) if end is not None else None,
            status=status,
        )
        return [BookingRead.model_validate(b) for b in bookings]

    async def available_slots(
        self,
        resource_id: int,
        service_id: int,
        day: date_type,
        duration_minutes: Optional[int] = None,
    ) -> AvailableSlotsResponse:
        """
        Advisory free slots for one local day of the resource.
        """
        if self._slot_search is None:
            raise RuntimeError("Slot listing requires a SlotSearch")

        resource = await self._require_resource(resource_id)
        service = await self._require_service(resource, service_id)
        duration = resolve_duration(service, duration_minutes)
        rules = await self._store.list_rules(resource.id)

        slots = await self._slot_search.available_slots(
            resource,
            rules,
            timedelta(minutes=duration),
            day,
            now=self._clock(),
            busy_source=self.adapter_for(ProviderKind.CALENDAR),
            buffer=timedelta(minutes=service.buffer_minutes or 0),
        )
        return AvailableSlotsResponse(
            resource_id=resource.id,
            service_id=service.id,
            day=day,
            timezone=resource.timezone or "UTC",
            duration_minutes=duration,
            buffer_minutes=service.buffer_minutes or 0,
            slots=slots,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_booking(self, request: BookingCreate) -> BookingResult:
        set_booking_id(None)

        resource = await self._require_resource(request.resource_id)
        service = await self._require_service(resource, request.service_id)
        duration = resolve_duration(service, request.duration_minutes)

        start = ensure_utc(request.start)
        end = start + timedelta(minutes=duration)
        buffer_minutes = service.buffer_minutes or 0
        await self._validate_window(resource, start, end, buffer_minutes)

        booking = await self._store.insert_booking(
            Booking(
                resource_id=resource.id,
                service_id=service.id,
                client_name=request.client_name,
                client_email=request.client_email,
                client_phone=request.client_phone,
                start_at=start,
                end_at=end,
                duration_minutes=duration,
                buffer_minutes=buffer_minutes,
                status=BookingStatus.CONFIRMED.value,
                notes=request.notes,
            )
        )
        set_booking_id(booking.id)
        logger.info(
            "Booking persisted for resource %s: %s - %s",
            resource.id,
            start.isoformat(),
            end.isoformat(),
        )

        persisted = BookingRead.model_validate(booking)
        outcomes = await self._fan_out(
            [
                self._create_artifact(adapter, persisted, resource)
                for adapter in self._adapters
            ]
        )

        return await self._finish(booking.id, outcomes, NotificationKind.BOOKING_CONFIRMED)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_booking(self, booking_id: int) -> BookingResult:
        set_booking_id(booking_id)

        booking, changed = await self._store.mark_cancelled(booking_id)
        if not changed:
            logger.info("Booking already cancelled; nothing to do")
            return BookingResult(booking=BookingRead.model_validate(booking))

        logger.info("Booking cancelled")

        current = BookingRead.model_validate(booking)
        resource = await self._store.get_resource(current.resource_id)

        calls = []
        skipped: list[SyncOutcome] = []
        for adapter in self._adapters:
            record = current.sync_record(adapter.kind)
            if (
                resource is not None
                and record is not None
                and record.status == SyncStatus.SYNCED
                and record.external_id
            ):
                calls.append(self._delete_artifact(adapter, current, resource, record.external_id))
            else:
                skipped.append(
                    SyncOutcome(
                        provider=adapter.kind,
                        operation="delete",
                        status=SyncStatus.NOT_ATTEMPTED,
                        external_id=record.external_id if record is not None else None,
                    )
                )

        outcomes = await self._fan_out(calls) + skipped
        outcomes.sort(key=lambda o: o.provider.value)

        return await self._finish(booking_id, outcomes, NotificationKind.BOOKING_CANCELLED)

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    async def reschedule_booking(
        self,
        booking_id: int,
        new_start: datetime,
        notes: Optional[str] = None,
    ) -> BookingResult:
        set_booking_id(booking_id)

        booking = await self._store.find_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking with id={booking_id} not found")
        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidStateError(
                f"Cannot reschedule a booking with status {booking.status}"
            )

        resource = await self._require_resource(booking.resource_id)

        start = ensure_utc(new_start)
        end = start + timedelta(minutes=booking.duration_minutes)
        await self._validate_window(resource, start, end, booking.buffer_minutes)

        previous_start = booking.start_at
        updated = await self._store.update_booking_window(
            booking_id,
            resource.id,
            start,
            end,
            notes=notes,
        )
        logger.info(
            "Booking moved from %s to %s",
            previous_start.isoformat(),
            start.isoformat(),
        )

        current = BookingRead.model_validate(updated)
        calls = []
        for adapter in self._adapters:
            record = current.sync_record(adapter.kind)
            if record is not None and record.external_id:
                calls.append(self._update_artifact(adapter, current, resource, record.external_id))
            else:
                calls.append(self._create_artifact(adapter, current, resource))

        outcomes = await self._fan_out(calls)

        return await self._finish(booking_id, outcomes, NotificationKind.BOOKING_RESCHEDULED)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    async def _require_resource(self, resource_id: int) -> Resource:
        resource = await self._store.get_resource(resource_id)
        if resource is None or not resource.is_active:
            raise NotFoundError(f"Resource with id={resource_id} not found")
        return resource

    async def _require_service(self, resource: Resource, service_id: int) -> ServiceDefinition:
        service = await self._store.get_service(service_id)
        if service is None or not service.is_active or service.resource_id != resource.id:
            raise NotFoundError(
                f"Service with id={service_id} not found for resource {resource.id}"
            )
        return service

    async def _validate_window(
        self,
        resource: Resource,
        start: datetime,
        end: datetime,
        buffer_minutes: Optional[int] = 0,
    ) -> None:
        # the buffer must fit inside the same availability window
        rules = await self._store.list_rules(resource.id)
        if not self._availability.is_within_availability(
            resource, rules, start, blocked_end(end, buffer_minutes)
        ):
            raise OutsideAvailabilityError(
                f"Requested time {start.isoformat()} - {end.isoformat()} is outside "
                f"the availability of resource {resource.id}"
            )
        if start < self._clock():
            raise InvalidWindowError("Requested start time is in the past")

    # ------------------------------------------------------------------
    # Provider fan-out
    # ------------------------------------------------------------------

    async def _fan_out(self, calls: list[Awaitable[_CallResult]]) -> list[SyncOutcome]:
        """
        Run provider calls concurrently, then record every outcome.

        Records are written one after another once all calls returned, so
        no transaction is held while a provider is being waited on.
        """
        if not calls:
            return []

        results = await asyncio.gather(*calls)
        outcomes: list[SyncOutcome] = []
        for adapter, operation, outcome, booking_id in results:
            outcomes.append(await self._record(booking_id, adapter, operation, outcome))
        return outcomes

    async def _invoke(
        self,
        adapter: SyncAdapter,
        operation: str,
        call: Callable[[], Awaitable[T]],
    ) -> Outcome[T]:
        policy = self._retry_policy

        async def attempt() -> T:
            return await asyncio.wait_for(call(), timeout=policy.timeout_seconds)

        return await with_retry(
            attempt,
            operation=f"{adapter.kind.value.lower()}.{operation}",
            is_transient=is_transient_sync_error,
            max_attempts=policy.max_attempts,
            backoff_base=policy.backoff_base,
            sleep=self._sleep,
        )

    async def _create_artifact(
        self,
        adapter: SyncAdapter,
        booking: BookingRead,
        resource: Resource,
    ) -> _CallResult:
        outcome = await self._invoke(adapter, "create", lambda: adapter.create(booking, resource))
        return adapter, "create", outcome, booking.id

    async def _update_artifact(
        self,
        adapter: SyncAdapter,
        booking: BookingRead,
        resource: Resource,
        external_id: str,
    ) -> _CallResult:
        outcome = await self._invoke(
            adapter, "update", lambda: adapter.update(booking, resource, external_id)
        )
        outcome.value = SyncArtifact(external_id=external_id) if outcome.success else None
        return adapter, "update", outcome, booking.id

    async def _delete_artifact(
        self,
        adapter: SyncAdapter,
        booking: BookingRead,
        resource: Resource,
        external_id: str,
    ) -> _CallResult:
        outcome = await self._invoke(adapter, "delete", lambda: adapter.delete(external_id, resource))
        outcome.value = SyncArtifact(external_id=external_id) if outcome.success else None
        return adapter, "delete", outcome, booking.id

    async def _record(
        self,
        booking_id: int,
        adapter: SyncAdapter,
        operation: str,
        outcome: Outcome[SyncArtifact],
    ) -> SyncOutcome:
        """
        Persist the sync record for one provider call.

        The booking row is already committed at this point, so a store
        failure here is logged and reported as a FAILED outcome instead of
        failing the whole operation.
        """
        kind = adapter.kind

        try:
            return await self._write_record(booking_id, kind, operation, outcome)
        except SQLAlchemyError as exc:
            logger.exception("%s %s sync record could not be saved", kind.value, operation)
            artifact = outcome.value if outcome.success else None
            return SyncOutcome(
                provider=kind,
                operation=operation,
                status=SyncStatus.FAILED,
                external_id=artifact.external_id if artifact is not None else None,
                attempts=outcome.attempts,
                error=f"sync record not saved: {exc.__class__.__name__}",
            )

    async def _write_record(
        self,
        booking_id: int,
        kind: ProviderKind,
        operation: str,
        outcome: Outcome[SyncArtifact],
    ) -> SyncOutcome:
        if not outcome.success:
            logger.warning(
                "%s %s failed after %d attempt(s): %s",
                kind.value,
                operation,
                outcome.attempts,
                outcome.error,
            )
            await self._store.save_sync_record(
                booking_id,
                kind,
                SyncStatus.FAILED,
                last_error=outcome.error,
            )
            return SyncOutcome(
                provider=kind,
                operation=operation,
                status=SyncStatus.FAILED,
                attempts=outcome.attempts,
                error=outcome.error,
            )

        artifact = outcome.value
        if operation == "delete":
            await self._store.clear_sync_record(booking_id, kind)
        else:
            await self._store.save_sync_record(
                booking_id,
                kind,
                SyncStatus.SYNCED,
                external_id=artifact.external_id,
                join_url=artifact.join_url,
            )

        return SyncOutcome(
            provider=kind,
            operation=operation,
            status=SyncStatus.SYNCED,
            external_id=artifact.external_id,
            attempts=outcome.attempts,
            recovered=outcome.recovered,
        )

    # ------------------------------------------------------------------
    # Result + notification
    # ------------------------------------------------------------------

    async def _finish(
        self,
        booking_id: int,
        outcomes: list[SyncOutcome],
        kind: NotificationKind,
    ) -> BookingResult:
        booking = await self.get_booking(booking_id)

        warnings = [
            f"{o.provider.value} sync failed ({o.operation}): {o.error}"
            for o in outcomes
            if o.status == SyncStatus.FAILED
        ]

        self._notify(kind, booking)
        return BookingResult(booking=booking, sync_outcomes=outcomes, warnings=warnings)

    def _notify(self, kind: NotificationKind, booking: BookingRead) -> None:
        """
        Dispatch the notification on a worker thread without waiting for it.

        The task is referenced until it finishes so it is not collected
        mid-flight; `drain_notifications` awaits whatever is still running.
        """
        if self._notifier is None:
            return
        task = asyncio.create_task(
            self._send_notification(kind, booking),
            name=f"notify-{kind.value.lower()}-{booking.id}",
        )
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _send_notification(self, kind: NotificationKind, booking: BookingRead) -> None:
        set_booking_id(booking.id)
        try:
            await asyncio.to_thread(self._notifier.send, kind, booking)
        except Exception:  # noqa: BLE001 - notifications never fail a booking
            logger.exception("Notification %s could not be dispatched", kind.value)

    async def drain_notifications(self) -> None:
        """
        Wait for every notification dispatched so far. Called on shutdown.
        """
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications))
