from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, Table
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from db.base import Base

EVENT_TYPES = ("robbery", "lost", "accident", "other")
EVENT_STATUSES = ("open", "resolved", "closed")


# derived from geometry only; the composite key keeps re-linking from duplicating rows
event_areas_of_interest = Table(
    "event_areas_of_interest",
    Base.metadata,
    Column("event_id", Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("area_of_interest_id", Integer, ForeignKey("areas_of_interest.id", ondelete="CASCADE"), primary_key=True),
)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False, default="other")
    status = Column(String, nullable=False, default="open")
    is_public = Column(Boolean, nullable=False, default=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    device = relationship("Device")
    created_by = relationship("User")
    areas_of_interest = relationship(
        "AreaOfInterest", secondary=event_areas_of_interest, back_populates="events"
    )
