# tests/conftest.py
import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from slotsync.core.config import Settings
from slotsync.db.session import build_engine, build_session_factory, init_db
from slotsync.main import create_app
from slotsync.models.resource import AvailabilityRule, Resource
from slotsync.models.service_definition import ServiceDefinition
from slotsync.schemas.booking import BookingRead, ProviderKind
from slotsync.services.container import ServiceContainer, build_container
from slotsync.services.notifications import NotificationKind
from slotsync.services.sync.base import Interval, SyncAdapter, SyncArtifact

# Fixed "now" for every booking test: Tuesday 2030-01-01 00:00 UTC.
NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)
# First Monday after NOW.
MONDAY = date(2030, 1, 7)
MONDAY_DOW = 1


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant on `day`."""
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


@dataclass
class Seeded:
    resource_id: int
    service_id: int


class FakeSyncAdapter(SyncAdapter):
    """
    In-memory provider.

    Failures are queued per operation with `fail(...)`; each queued error is
    raised by exactly one call.
    """

    def __init__(self, kind: ProviderKind):
        self.kind = kind
        self.calls: list[tuple] = []
        self.failures: dict[str, list[BaseException]] = defaultdict(list)
        self.busy: list[Interval] = []
        self.busy_error: Optional[BaseException] = None
        self._counter = 0

    def fail(self, operation: str, *errors: BaseException) -> None:
        self.failures[operation].extend(errors)

    def calls_for(self, operation: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == operation]

    def _maybe_fail(self, operation: str) -> None:
        queue = self.failures[operation]
        if queue:
            raise queue.pop(0)

    async def create(self, booking: BookingRead, resource: Resource) -> SyncArtifact:
        self.calls.append(("create", booking.id, booking.start_at))
        self._maybe_fail("create")
        self._counter += 1
        external_id = f"{self.kind.value.lower()}-{self._counter}"
        join_url = None
        if self.kind == ProviderKind.MEETING:
            join_url = f"https://meet.example.com/j/{external_id}"
        return SyncArtifact(external_id=external_id, join_url=join_url)

    async def update(self, booking: BookingRead, resource: Resource, external_id: str) -> None:
        self.calls.append(("update", booking.id, external_id, booking.start_at))
        self._maybe_fail("update")

    async def delete(self, external_id: str, resource: Resource) -> None:
        self.calls.append(("delete", external_id))
        self._maybe_fail("delete")

    async def list_busy_intervals(self, resource, day_start, day_end) -> list[Interval]:
        self.calls.append(("busy", day_start, day_end))
        if self.busy_error is not None:
            raise self.busy_error
        return list(self.busy)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[NotificationKind, int]] = []

    def send(self, kind: NotificationKind, booking: BookingRead) -> bool:
        self.sent.append((kind, booking.id))
        return True


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def seed_resource(
    session_factory,
    *,
    timezone_name: str = "UTC",
    rules: Optional[Iterable[tuple[int, time, time]]] = None,
    duration_minutes: int = 30,
    allowed_durations: Optional[str] = None,
    buffer_minutes: int = 0,
    service_active: bool = True,
) -> Seeded:
    """
    Insert a resource (open Monday 09:00-17:00 unless `rules` is given) with
    one service definition.
    """
    if rules is None:
        rules = [(MONDAY_DOW, time(9, 0), time(17, 0))]

    async with session_factory() as session:
        async with session.begin():
            resource = Resource(
                name="Coach",
                timezone=timezone_name,
                calendar_id="cal-1",
                meeting_host_id="host-1",
                is_active=True,
            )
            resource.availability_rules = [
                AvailabilityRule(
                    day_of_week=dow,
                    start_time=start,
                    end_time=end,
                    is_active=True,
                )
                for dow, start, end in rules
            ]
            session.add(resource)
            await session.flush()

            service = ServiceDefinition(
                resource_id=resource.id,
                name="Session",
                duration_minutes=duration_minutes,
                allowed_durations=allowed_durations,
                buffer_minutes=buffer_minutes,
                is_active=service_active,
            )
            session.add(service)
            await session.flush()

            return Seeded(resource_id=resource.id, service_id=service.id)


def make_settings(**overrides) -> Settings:
    values = dict(
        APP_ENV="test",
        INTERNAL_API_KEY=None,
        SYNC_MAX_ATTEMPTS=3,
        SYNC_BACKOFF_BASE_SECONDS=1.0,
        SYNC_CALL_TIMEOUT_SECONDS=2.0,
        SLOT_GRANULARITY_MINUTES=15,
        GRAPH_ACCESS_TOKEN=None,
        ZOOM_ACCESS_TOKEN=None,
        SMTP_HOST=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """
    Fresh on-disk SQLite database per test.
    """
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'slotsync-test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def calendar_adapter() -> FakeSyncAdapter:
    return FakeSyncAdapter(ProviderKind.CALENDAR)


@pytest.fixture
def meeting_adapter() -> FakeSyncAdapter:
    return FakeSyncAdapter(ProviderKind.MEETING)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def container(session_factory, calendar_adapter, meeting_adapter, notifier, fake_sleep) -> ServiceContainer:
    return build_container(
        make_settings(),
        session_factory,
        adapters=[calendar_adapter, meeting_adapter],
        notifier=notifier,
        clock=lambda: NOW,
        sleep=fake_sleep,
    )


@pytest_asyncio.fixture
async def orchestrator(container):
    yield container.orchestrator
    await container.orchestrator.drain_notifications()


@pytest_asyncio.fixture
async def seeded(session_factory) -> Seeded:
    return await seed_resource(session_factory)


@dataclass
class ApiHarness:
    client: TestClient
    container: ServiceContainer
    session_factory: object

    def seed(self, **kwargs) -> Seeded:
        return asyncio.run(seed_resource(self.session_factory, **kwargs))


@pytest.fixture
def api(tmp_path, calendar_adapter, meeting_adapter, notifier, fake_sleep):
    """
    TestClient over an app wired to a per-test SQLite file and fake providers.

    The schema is created by the app's lifespan when the client starts.
    """
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'slotsync-api.db'}")
    factory = build_session_factory(eng)
    container = build_container(
        make_settings(),
        factory,
        adapters=[calendar_adapter, meeting_adapter],
        notifier=notifier,
        clock=lambda: NOW,
        sleep=fake_sleep,
    )
    app = create_app(container)

    with TestClient(app) as test_client:
        yield ApiHarness(client=test_client, container=container, session_factory=factory)

    asyncio.run(eng.dispose())


@pytest.fixture
def client(api) -> TestClient:
    return api.client
