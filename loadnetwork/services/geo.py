"""
Geo helpers: great-circle distance and the local ZIP directory.
Loads scraped from the board carry city/state/zip only; the directory turns them into points.
"""
import logging
import math
from typing import Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.engine import Engine

from loadnetwork.models.zip_code import ZipCode
from loadnetwork.schemas.load import Location

logger = logging.getLogger("geo")

EARTH_RADIUS_MILES = 3958.8

Point = Tuple[float, float]  # (lat, lng)


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


class ZipDirectory:
    """In-memory view of zip_codes, keyed by zip and by (city, state)."""

    def __init__(self):
        self.by_zip: Dict[str, Point] = {}
        self.by_city_state: Dict[Tuple[str, str], Point] = {}

    def add(self, zip_code: str, city: str, state: str, lat: float, lng: float) -> None:
        point = (lat, lng)
        self.by_zip[zip_code] = point
        # First ZIP seen for a city wins; good enough for a lane-level point
        self.by_city_state.setdefault((city.strip().lower(), state.strip().upper()), point)

    @classmethod
    def from_store(cls, engine: Engine) -> "ZipDirectory":
        directory = cls()
        stmt = select(ZipCode.zip, ZipCode.city, ZipCode.state_id, ZipCode.lat, ZipCode.lng).order_by(
            ZipCode.population.desc()
        )
        with engine.connect() as conn:
            for row in conn.execute(stmt):
                directory.add(row.zip, row.city, row.state_id, row.lat, row.lng)
        logger.info(f"🗺️ Loaded {len(directory)} zip codes")
        return directory

    def __len__(self) -> int:
        return len(self.by_zip)

    def lookup(self, city: str = "", state: str = "", zip_code: str = "") -> Optional[Point]:
        """ZIP first (5-digit part), then city + state. None when unknown."""
        if zip_code:
            point = self.by_zip.get(zip_code[:5])
            if point:
                return point
        if city and state:
            return self.by_city_state.get((city.strip().lower(), state.strip().upper()))
        return None

    def resolve(self, location: Location) -> Location:
        """Return a copy of location with lat/lng filled in when the directory knows it."""
        if location.has_point:
            return location
        point = self.lookup(location.city, location.state, location.zip)
        if not point:
            return location
        return location.model_copy(update={"lat": point[0], "lng": point[1]})


def zip_distance_miles(directory: ZipDirectory, from_zip: str, to_zip: str) -> Optional[float]:
    """Straight-line miles between two ZIPs (deadhead fallback). None if either ZIP is unknown."""
    a = directory.lookup(zip_code=from_zip)
    b = directory.lookup(zip_code=to_zip)
    if not a or not b:
        return None
    return haversine_miles(a[0], a[1], b[0], b[1])
