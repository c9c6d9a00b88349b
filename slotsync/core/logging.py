"""Logging setup with a booking-id correlation context.

Every record emitted while a booking is being processed carries the
booking id, so one booking's journey through validation, commit and
provider fan-out can be followed in the logs:

    set_booking_id(42)
    logger.info("Persisted")  # -> ... [booking=42] Persisted
"""

import logging
from contextvars import ContextVar

_booking_id: ContextVar[str] = ContextVar("booking_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [booking=%(booking_id)s] %(message)s"


def set_booking_id(booking_id: int | str | None) -> None:
    """Set the correlation id for the current async context."""
    _booking_id.set("-" if booking_id is None else str(booking_id))


def get_booking_id() -> str:
    return _booking_id.get()


class BookingIdFilter(logging.Filter):
    """Injects booking_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.booking_id = _booking_id.get()  # type: ignore[attr-defined]
        return True


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the process.

    Safe to call repeatedly (app factory, CLI, tests); the handler is only
    installed the first time.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in root.handlers:
        if any(isinstance(f, BookingIdFilter) for f in handler.filters):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(BookingIdFilter())
    root.addHandler(handler)
