from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from db.base import Base


class LocationFix(Base):
    __tablename__ = "location_fixes"
    __table_args__ = (Index("ix_location_fixes_device_captured", "device_id", "captured_at"),)

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    captured_at = Column(DateTime(timezone=True), nullable=False)

    device = relationship("Device", back_populates="locations")
