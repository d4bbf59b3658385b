from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from db.base import Base


class Device(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    # SIM number the tracker answers on
    number = Column(String, unique=True, index=True, nullable=True)
    # portal login identity and secret
    imei = Column(String, unique=True, index=True, nullable=True)
    password = Column(String, nullable=True)
    tracking = Column(Boolean, nullable=False, default=False)
    # opaque portal session cookie, trusted until the portal rejects it
    session_token = Column(String, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("User")
    locations = relationship(
        "LocationFix",
        back_populates="device",
        order_by="desc(LocationFix.captured_at)",
    )

    @property
    def has_credentials(self):
        return bool(self.imei) and bool(self.password)
