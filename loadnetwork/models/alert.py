from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func

from .bootstrap_db import Base


class Alert(Base):
    """
    Saved lane alert: origin point + radius, destination point + radius.
    Written by the alert API after geocoding; the notifier only reads it.
    """
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    origin_text = Column(String(200), nullable=False)
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    origin_radius = Column(Float, nullable=False)  # miles

    destination_text = Column(String(200), nullable=False)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    destination_radius = Column(Float, nullable=False)  # miles

    is_active = Column(Boolean, nullable=False, default=True)  # paused by the user when false
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
