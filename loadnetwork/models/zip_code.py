"""US ZIP directory (SimpleMaps uszips.csv). Used to place scraped loads on the map."""
from sqlalchemy import Column, Integer, String, Float

from .bootstrap_db import Base


class ZipCode(Base):
    __tablename__ = "zip_codes"

    id = Column(Integer, primary_key=True)
    zip = Column(String(5), unique=True, nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    city = Column(String(120), nullable=False, index=True)
    state_id = Column(String(2), nullable=False, index=True)
    state_name = Column(String(60), nullable=False)
    county_name = Column(String(120))
    population = Column(Integer, default=0)
    density = Column(Float, default=0)
