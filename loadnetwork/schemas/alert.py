from typing import Optional

from pydantic import BaseModel


class AlertSubscription(BaseModel):
    """Active lane alert joined with its owner's address, as read by the notifier."""
    id: int
    user_id: int
    user_email: str
    company_name: Optional[str] = None

    origin_text: str
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    origin_radius: float

    destination_text: str
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    destination_radius: float

    @property
    def has_points(self) -> bool:
        return None not in (self.origin_lat, self.origin_lng, self.destination_lat, self.destination_lng)
