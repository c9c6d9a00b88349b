from sqlalchemy import Boolean, Column, ForeignKey, Integer, String

from slotsync.db.base import Base


class ServiceDefinition(Base):
    """
    A bookable service offered by a resource (e.g. "30 min intro call").

    `allowed_durations` holds an optional comma-separated set of minutes for
    flexible-duration services; when empty, `duration_minutes` is fixed.
    `buffer_minutes` is turnaround time kept free after every appointment.
    """

    __tablename__ = "service_definitions"

    id = Column(Integer, primary_key=True, index=True)

    resource_id = Column(
        Integer,
        ForeignKey("resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    allowed_durations = Column(String(255), nullable=True)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def duration_options(self) -> list[int]:
        if not self.allowed_durations:
            return [self.duration_minutes]
        return sorted(
            {int(part) for part in self.allowed_durations.split(",") if part.strip()}
        )

    def __repr__(self) -> str:
        return (
            f"<ServiceDefinition id={self.id} resource_id={self.resource_id} "
            f"duration={self.duration_minutes} buffer={self.buffer_minutes}>"
        )
