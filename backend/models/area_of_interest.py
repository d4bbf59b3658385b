from sqlalchemy import Column, Integer, Float, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from db.base import Base
from models.event import Event, event_areas_of_interest


class AreaOfInterest(Base):
    __tablename__ = "areas_of_interest"
    __table_args__ = (
        CheckConstraint("user_id IS NOT NULL OR community_id IS NOT NULL", name="ck_area_owner"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # resolved polygon as WKT in lon/lat order (EPSG:4326); for the radius form
    # this is the buffered circle
    polygon_area = Column(Text, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    radius_in_meters = Column(Float, nullable=True)
    # bounding box of polygon_area, used to prefilter spatial queries
    min_longitude = Column(Float, nullable=False, index=True)
    min_latitude = Column(Float, nullable=False, index=True)
    max_longitude = Column(Float, nullable=False, index=True)
    max_latitude = Column(Float, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    community_id = Column(Integer, ForeignKey("communities.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")
    community = relationship("Community", back_populates="areas_of_interest")
    events = relationship(
        "Event",
        secondary=event_areas_of_interest,
        back_populates="areas_of_interest",
        order_by=[Event.created_at.desc(), Event.id.desc()],
    )

    @property
    def is_radius(self):
        return self.radius_in_meters is not None
