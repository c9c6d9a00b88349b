from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from slotsync.core.config import get_settings
from slotsync.db.base import Base

# Import ORM models so that Base.metadata is aware of them
from slotsync.models.resource import AvailabilityRule, Resource  # noqa: F401
from slotsync.models.service_definition import ServiceDefinition  # noqa: F401
from slotsync.models.booking import Booking, ExternalSyncRecord  # noqa: F401


def build_engine(db_url: str) -> AsyncEngine:
    """
    Create the async engine for the given URL.

    SQLite engines use NullPool: they are shared across event loops (the
    TestClient runs the app on its own loop) and must not reuse connections.
    """
    kwargs = {"echo": False, "future": True}
    if db_url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    return create_async_engine(db_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )


# ---------------------------------------------------------------------------
# Main application engine + session
# ---------------------------------------------------------------------------
engine = build_engine(get_settings().DB_URL)

AsyncSessionLocal = build_session_factory(engine)


# ---------------------------------------------------------------------------
# PRODUCTION / DEV: DB init for app startup
# ---------------------------------------------------------------------------
async def init_db_for_startup(target: AsyncEngine | None = None) -> None:
    """
    Initialize DB schema for application startup.

    Safe to call from FastAPI startup and the CLI; existing tables are kept.
    Typically you'd eventually replace this with Alembic migrations.
    """
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(target: AsyncEngine | None = None) -> None:
    """
    TEST-ONLY: reset the database schema.

    Drops all tables and recreates them using the current models.
    Do NOT call this from production code. Only from tests/fixtures.
    """
    async with (target or engine).begin() as conn:
        # Drop everything to guarantee a clean slate per test
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
