from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import relationship

from slotsync.db.base import Base


class Resource(Base):
    """
    A bookable entity (coach / provider) whose calendar is being managed.

    Owned by the admin layer; the booking core only reads it.
    """

    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")

    # Opaque identifiers understood only by the external providers.
    calendar_id = Column(String(255), nullable=True)
    meeting_host_id = Column(String(255), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    availability_rules = relationship(
        "AvailabilityRule",
        back_populates="resource",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Resource id={self.id} name={self.name!r} tz={self.timezone}>"


class AvailabilityRule(Base):
    """
    Weekly recurring open hours for a resource.

    `day_of_week` follows 0 = Sunday ... 6 = Saturday. Times are local
    wall-clock times in the resource's timezone.
    """

    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True, index=True)

    resource_id = Column(
        Integer,
        ForeignKey("resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    resource = relationship("Resource", back_populates="availability_rules")

    def __repr__(self) -> str:
        return (
            f"<AvailabilityRule resource_id={self.resource_id} "
            f"dow={self.day_of_week} {self.start_time}-{self.end_time} "
            f"active={self.is_active}>"
        )
