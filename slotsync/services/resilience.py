from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx

from slotsync.services.errors import SyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """
    Uniform result envelope for a unit of work run through `with_retry`.

    `status` collapses the envelope into success / partial / failure, where
    partial means the work succeeded only after at least one retry.
    """

    success: bool
    value: Optional[T] = None
    attempts: int = 0
    recovered: bool = False
    error: Optional[str] = None
    retryable: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.success:
            return "failure"
        return "partial" if self.recovered else "success"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry budget for external provider calls.

    Delay before attempt n+1 is `backoff_base * 2 ** (n - 1)` seconds.
    """

    max_attempts: int = 3
    backoff_base: float = 1.0
    timeout_seconds: float = 10.0


def is_transient_sync_error(exc: BaseException) -> bool:
    """
    Classifier for provider calls: network failures, timeouts and transient
    provider responses are retryable; everything else is not.
    """
    if isinstance(exc, SyncError):
        return exc.transient
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(exc, httpx.TransportError):
        return True
    return False


async def with_retry(
    unit_of_work: Callable[[], Awaitable[T]],
    *,
    operation: str,
    is_transient: Callable[[BaseException], bool],
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Outcome[T]:
    """
    Run `unit_of_work` with bounded exponential-backoff retry.

    Behavior
    --------
    - Success on attempt n returns an Outcome with `attempts = n` and
      `recovered = n > 1`.
    - An exception the classifier rejects stops immediately; no further
      attempts are made and no backoff is applied.
    - A transient exception is retried until `max_attempts` is reached; the
      backoff `backoff_base * 2 ** (attempt - 1)` is applied only between
      attempts, never after the last one.

    Exceptions never escape: the caller decides what a failed Outcome means.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    logger.debug("%s: starting (max_attempts=%d)", operation, max_attempts)

    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            value = await unit_of_work()
        except Exception as exc:  # noqa: BLE001 - classified below
            last_error = exc
            transient = is_transient(exc)
            logger.warning(
                "%s: attempt %d/%d failed (%s): %s",
                operation,
                attempt,
                max_attempts,
                "transient" if transient else "permanent",
                _describe(exc),
            )

            if not transient:
                return Outcome(
                    success=False,
                    attempts=attempt,
                    error=_describe(exc),
                    retryable=False,
                )

            if attempt < max_attempts:
                delay = backoff_base * (2 ** (attempt - 1))
                logger.info("%s: retrying in %.2fs", operation, delay)
                await sleep(delay)
            continue

        outcome: Outcome[T] = Outcome(
            success=True,
            value=value,
            attempts=attempt,
            recovered=attempt > 1,
        )
        if outcome.recovered:
            outcome.warnings.append(f"{operation} succeeded after {attempt} attempts")
            logger.info("%s: recovered on attempt %d", operation, attempt)
        else:
            logger.debug("%s: succeeded", operation)
        return outcome

    logger.error("%s: giving up after %d attempts", operation, max_attempts)
    return Outcome(
        success=False,
        attempts=max_attempts,
        error=_describe(last_error),
        retryable=True,
    )


def _describe(exc: BaseException | None) -> str:
    if exc is None:
        return "unknown error"
    text = str(exc)
    return text if text else type(exc).__name__
