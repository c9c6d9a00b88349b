# tests/test_resilience.py
import asyncio

import httpx
import pytest

from slotsync.services.errors import SyncError
from slotsync.services.resilience import Outcome, is_transient_sync_error, with_retry


class _Flaky:
    """Raises the queued errors in order, then returns `value`."""

    def __init__(self, errors, value="ok"):
        self._errors = list(errors)
        self._value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._value


class _Sleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_first_attempt_success():
    work = _Flaky([])
    sleep = _Sleep()

    outcome = await with_retry(
        work, operation="t", is_transient=is_transient_sync_error, sleep=sleep
    )

    assert outcome.success
    assert outcome.value == "ok"
    assert outcome.attempts == 1
    assert not outcome.recovered
    assert outcome.status == "success"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_recovers_after_transient_errors_with_exponential_backoff():
    work = _Flaky([SyncError("503", transient=True), SyncError("503", transient=True)])
    sleep = _Sleep()

    outcome = await with_retry(
        work,
        operation="t",
        is_transient=is_transient_sync_error,
        max_attempts=3,
        backoff_base=1.0,
        sleep=sleep,
    )

    assert outcome.success
    assert outcome.attempts == 3
    assert outcome.recovered
    assert outcome.status == "partial"
    assert outcome.warnings
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts_without_trailing_sleep():
    work = _Flaky([SyncError("boom", transient=True)] * 3)
    sleep = _Sleep()

    outcome = await with_retry(
        work,
        operation="t",
        is_transient=is_transient_sync_error,
        max_attempts=3,
        backoff_base=0.5,
        sleep=sleep,
    )

    assert not outcome.success
    assert outcome.status == "failure"
    assert outcome.attempts == 3
    assert outcome.retryable
    assert outcome.error == "boom"
    assert work.calls == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_permanent_error_stops_immediately():
    work = _Flaky([SyncError("bad request", transient=False), SyncError("never")])
    sleep = _Sleep()

    outcome = await with_retry(
        work, operation="t", is_transient=is_transient_sync_error, max_attempts=5, sleep=sleep
    )

    assert not outcome.success
    assert outcome.attempts == 1
    assert not outcome.retryable
    assert work.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_error_without_message_is_described_by_type():
    outcome = await with_retry(
        _Flaky([asyncio.TimeoutError()]),
        operation="t",
        is_transient=is_transient_sync_error,
        max_attempts=1,
        sleep=_Sleep(),
    )

    assert outcome.error == "TimeoutError"
    assert outcome.retryable


@pytest.mark.asyncio
async def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        await with_retry(_Flaky([]), operation="t", is_transient=is_transient_sync_error, max_attempts=0)


@pytest.mark.parametrize(
    "exc, expected",
    [
        (SyncError("x", transient=True), True),
        (SyncError("x", transient=False), False),
        (asyncio.TimeoutError(), True),
        (httpx.ConnectError("refused"), True),
        (ValueError("missing id"), False),
    ],
)
def test_transient_classifier(exc, expected):
    assert is_transient_sync_error(exc) is expected


@pytest.mark.parametrize(
    "status_code, transient",
    [(429, True), (500, True), (503, True), (400, False), (401, False), (409, False)],
)
def test_sync_error_from_status(status_code, transient):
    err = SyncError.from_status("Graph calendar POST", status_code, "body")
    assert err.transient is transient
    assert err.status_code == status_code


def test_outcome_status_values():
    assert Outcome(success=True).status == "success"
    assert Outcome(success=True, recovered=True).status == "partial"
    assert Outcome(success=False).status == "failure"
