"""
Load model - one row per posting scraped from the Sylectus load board.
source_id is the content fingerprint; the portal exposes no stable key of its own.
"""
from sqlalchemy import Column, Integer, String, Float, Text, DateTime
from sqlalchemy.sql import func

from .bootstrap_db import Base


class Load(Base):
    """Normalized load posting, synchronized by the scraper in batches."""
    __tablename__ = "loads"

    id = Column(Integer, primary_key=True, index=True)
    source_id = Column(String(40), unique=True, nullable=False, index=True)  # sha1 hex

    origin_city = Column(String(120), nullable=False, default="")
    origin_state = Column(String(60), nullable=False, default="")
    origin_zip = Column(String(10))
    origin_lat = Column(Float, nullable=True)  # null until resolved from the zip directory
    origin_lng = Column(Float, nullable=True)

    destination_city = Column(String(120), nullable=False, default="")
    destination_state = Column(String(60), nullable=False, default="")
    destination_zip = Column(String(10))
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)

    miles = Column(Integer, nullable=False, default=0)
    truck_type = Column(String(80), nullable=False, default="")
    weight = Column(Integer, default=0)
    pieces = Column(Integer, default=0)
    # Free text as shown on the board ("01/02 08:00", "ASAP"), never normalized
    pickup_date = Column(String(100), nullable=False, default="N/A")
    delivery_date_time = Column(String(100), nullable=False, default="N/A")

    broker_name = Column(String(200))
    broker_email = Column(String(255))
    broker_notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
