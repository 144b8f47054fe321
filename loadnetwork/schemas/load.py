import re
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel

NOT_AVAILABLE = "N/A"

_STATE_ZIP_RE = re.compile(r"^([A-Z]{2})\s*(\d{5}(?:-\d{4})?)?\s*$")
_MC_NUMBER_RE = re.compile(r"\s*mc#\s*\d+", re.IGNORECASE)
_VF_SUFFIX_RE = re.compile(r"\s*vf$", re.IGNORECASE)
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


def cell_line(text: Optional[str], index: int) -> str:
    """Line `index` of a multi-line table cell, trimmed; '' when the cell is shorter."""
    lines = (text or "").splitlines()
    return lines[index].strip() if index < len(lines) else ""


def parse_int(value: Optional[str]) -> int:
    """'1,250 mi' -> 1250. Anything without leading digits -> 0."""
    match = _LEADING_INT_RE.match((value or "").replace(",", ""))
    return int(match.group(1)) if match else 0


def clean_broker_name(name: Optional[str]) -> str:
    """Strip the MC number and the trailing VF (verified) badge: 'Acme MC# 12345 VF' -> 'Acme'."""
    cleaned = _MC_NUMBER_RE.sub("", name or "")
    return _VF_SUFFIX_RE.sub("", cleaned).strip()


class Location(BaseModel):
    city: str = ""
    state: str = ""
    zip: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None

    @property
    def has_point(self) -> bool:
        return self.lat is not None and self.lng is not None


def parse_location(text: Optional[str]) -> Location:
    """
    Parse 'City, ST 12345' as shown in the listing.
    A state part that is not a 2-letter code (e.g. 'Ontario') is kept as the state verbatim.
    """
    if not text:
        return Location()
    parts = text.split(",")
    city = parts[0].strip()
    if len(parts) > 1:
        state_zip = parts[1].strip()
        match = _STATE_ZIP_RE.match(state_zip)
        if match:
            return Location(city=city, state=match.group(1), zip=match.group(2) or "")
        return Location(city=city, state=state_zip)
    return Location(city=city)


class RawRow(BaseModel):
    """Cell text of one listing row, exactly as read from the board."""
    origin_and_pu: str = ""
    destination_and_del: str = ""
    truck_and_miles: str = ""
    pieces_and_weight: str = ""
    broker_name: str = ""

    @property
    def has_data(self) -> bool:
        return bool(self.broker_name.strip())


class Posting(BaseModel):
    source_id: str
    origin: Location
    destination: Location
    pickup_date: str = NOT_AVAILABLE
    delivery_date_time: str = NOT_AVAILABLE
    truck_type: str = ""
    miles: int = 0
    pieces: int = 0
    weight: int = 0
    broker_name: str = ""
    broker_email: str = NOT_AVAILABLE
    broker_notes: str = NOT_AVAILABLE

    def to_row(self) -> Dict[str, Any]:
        """Flatten into loads table columns."""
        row = self.model_dump(exclude={"origin", "destination"})
        for prefix, loc in (("origin", self.origin), ("destination", self.destination)):
            row[f"{prefix}_city"] = loc.city
            row[f"{prefix}_state"] = loc.state
            row[f"{prefix}_zip"] = loc.zip
            row[f"{prefix}_lat"] = loc.lat
            row[f"{prefix}_lng"] = loc.lng
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Posting":
        def _loc(prefix: str) -> Location:
            return Location(
                city=row.get(f"{prefix}_city") or "",
                state=row.get(f"{prefix}_state") or "",
                zip=row.get(f"{prefix}_zip") or "",
                lat=row.get(f"{prefix}_lat"),
                lng=row.get(f"{prefix}_lng"),
            )

        return cls(
            source_id=row["source_id"],
            origin=_loc("origin"),
            destination=_loc("destination"),
            pickup_date=row.get("pickup_date") or NOT_AVAILABLE,
            delivery_date_time=row.get("delivery_date_time") or NOT_AVAILABLE,
            truck_type=row.get("truck_type") or "",
            miles=row.get("miles") or 0,
            pieces=row.get("pieces") or 0,
            weight=row.get("weight") or 0,
            broker_name=row.get("broker_name") or "",
            broker_email=row.get("broker_email") or NOT_AVAILABLE,
            broker_notes=row.get("broker_notes") or NOT_AVAILABLE,
        )


def build_posting(raw: RawRow, source_id: str, broker_email: str, broker_notes: str) -> Posting:
    """Normalize a freshly extracted row plus its popup fields into a Posting."""
    return Posting(
        source_id=source_id,
        origin=parse_location(cell_line(raw.origin_and_pu, 0)),
        destination=parse_location(cell_line(raw.destination_and_del, 0)),
        pickup_date=cell_line(raw.origin_and_pu, 1) or NOT_AVAILABLE,
        delivery_date_time=cell_line(raw.destination_and_del, 1) or NOT_AVAILABLE,
        truck_type=cell_line(raw.truck_and_miles, 0),
        miles=parse_int(cell_line(raw.truck_and_miles, 1)),
        pieces=parse_int(cell_line(raw.pieces_and_weight, 0)),
        weight=parse_int(cell_line(raw.pieces_and_weight, 1)),
        broker_name=clean_broker_name(raw.broker_name),
        broker_email=broker_email,
        broker_notes=broker_notes,
    )
