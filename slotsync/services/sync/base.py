from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from slotsync.models.resource import Resource
from slotsync.schemas.booking import BookingRead, ProviderKind


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class SyncArtifact:
    """
    What a provider returns after creating the mirrored artifact.
    """

    external_id: str
    join_url: Optional[str] = None


class SyncAdapter(ABC):
    """
    Mirrors bookings into one external provider.

    Implementations raise `SyncError` (with `transient` set for retryable
    failures). They never touch the database: the orchestrator records the
    outcome of every call.
    """

    kind: ProviderKind

    @abstractmethod
    async def create(self, booking: BookingRead, resource: Resource) -> SyncArtifact:
        ...

    @abstractmethod
    async def update(
        self,
        booking: BookingRead,
        resource: Resource,
        external_id: str,
    ) -> None:
        ...

    @abstractmethod
    async def delete(self, external_id: str, resource: Resource) -> None:
        ...

    async def list_busy_intervals(
        self,
        resource: Resource,
        day_start: datetime,
        day_end: datetime,
    ) -> List[Interval]:
        """
        Busy time known to the provider. Only calendar providers have any.
        """
        return []
