# tests/test_logging.py
import logging

from slotsync.core.logging import BookingIdFilter, get_booking_id, set_booking_id


def _record() -> logging.LogRecord:
    return logging.LogRecord("slotsync.test", logging.INFO, __file__, 1, "hello", None, None)


def test_filter_injects_current_booking_id():
    set_booking_id(42)
    try:
        record = _record()
        assert BookingIdFilter().filter(record)
        assert record.booking_id == "42"
        assert get_booking_id() == "42"
    finally:
        set_booking_id(None)


def test_cleared_booking_id_is_dash():
    set_booking_id(None)

    record = _record()
    BookingIdFilter().filter(record)

    assert record.booking_id == "-"
