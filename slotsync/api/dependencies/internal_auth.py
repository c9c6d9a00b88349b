import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from slotsync.core.config import get_settings

# Environments where an unset key leaves /internal open.
_OPEN_ENVIRONMENTS = ("local", "test")


def _key_matches(provided: Optional[str], expected: str) -> bool:
    if not provided:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


async def verify_internal_api_key(
    internal_api_key: Optional[str] = Header(
        default=None,
        alias="X-Internal-Api-Key",
        description="Internal API key required for /internal endpoints outside local/test.",
    ),
) -> None:
    """
    Guard for the operator endpoints under /internal (bulk reschedule).

    - local/test without INTERNAL_API_KEY: open.
    - local/test with INTERNAL_API_KEY: the header must match.
    - any other APP_ENV: INTERNAL_API_KEY is mandatory (500 when missing)
      and the header must match (401 otherwise).
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()
    expected = getattr(settings, "INTERNAL_API_KEY", None)

    if not expected:
        if env in _OPEN_ENVIRONMENTS:
            return
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INTERNAL_API_KEY not configured for this environment.",
        )

    if not _key_matches(internal_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing internal API key.",
        )
