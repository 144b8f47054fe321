"""
Alert matcher: geofence newly posted loads against saved lane alerts.

A pair matches when the load origin is within the alert's origin radius AND the load
destination is within its destination radius (great-circle miles, boundary inclusive).
Pairs missing a point on either side are skipped, never errors.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.engine import Connection

from loadnetwork.models.alert import Alert
from loadnetwork.models.load import Load
from loadnetwork.models.user import User
from loadnetwork.schemas.alert import AlertSubscription
from loadnetwork.schemas.load import Posting
from loadnetwork.services.email import OutboundEmail, compose_load_alert, send_email
from loadnetwork.services.geo import haversine_miles

logger = logging.getLogger("notifier")


@dataclass(frozen=True)
class MatchResult:
    origin_distance: float
    destination_distance: float
    origin_match: bool
    destination_match: bool

    @property
    def is_match(self) -> bool:
        return self.origin_match and self.destination_match


def match_alert(load: Posting, alert: AlertSubscription) -> Optional[MatchResult]:
    """Distances and verdict for one pair; None when geodata is missing."""
    if not (load.origin.has_point and load.destination.has_point and alert.has_points):
        return None
    origin_distance = haversine_miles(alert.origin_lat, alert.origin_lng, load.origin.lat, load.origin.lng)
    destination_distance = haversine_miles(
        alert.destination_lat, alert.destination_lng, load.destination.lat, load.destination.lng
    )
    return MatchResult(
        origin_distance=origin_distance,
        destination_distance=destination_distance,
        origin_match=origin_distance <= alert.origin_radius,
        destination_match=destination_distance <= alert.destination_radius,
    )


def fetch_active_alerts(conn: Connection) -> List[AlertSubscription]:
    stmt = (
        select(
            Alert.id,
            Alert.user_id,
            User.email.label("user_email"),
            User.company_name,
            Alert.origin_text,
            Alert.origin_lat,
            Alert.origin_lng,
            Alert.origin_radius,
            Alert.destination_text,
            Alert.destination_lat,
            Alert.destination_lng,
            Alert.destination_radius,
        )
        .join(User, User.id == Alert.user_id)
        .where(Alert.is_active.is_(True))
    )
    return [AlertSubscription(**row) for row in conn.execute(stmt).mappings()]


def fetch_recent_loads(conn: Connection, since: datetime) -> List[Posting]:
    table = Load.__table__
    rows = conn.execute(select(table).where(table.c.created_at >= since)).mappings()
    return [Posting.from_row(row) for row in rows]


def notify_matches(
    alerts: Sequence[AlertSubscription],
    loads: Sequence[Posting],
    send: Callable[[OutboundEmail], Dict[str, Any]] = send_email,
) -> Dict[str, int]:
    """Evaluate every (load, alert) pair and email the owner on each match."""
    stats = {
        "alerts": len(alerts),
        "loads": len(loads),
        "pairs_checked": 0,
        "skipped_missing_geo": 0,
        "matches": 0,
        "sent": 0,
        "failed": 0,
    }
    for load in loads:
        for alert in alerts:
            stats["pairs_checked"] += 1
            result = match_alert(load, alert)
            if result is None:
                stats["skipped_missing_geo"] += 1
                continue
            logger.debug(
                f"Load {load.source_id} vs alert {alert.id}: origin {result.origin_distance:.2f} mi "
                f"(radius {alert.origin_radius}), destination {result.destination_distance:.2f} mi "
                f"(radius {alert.destination_radius})"
            )
            if not result.is_match:
                continue

            stats["matches"] += 1
            logger.info(f"✅ MATCH FOUND! {load.origin.city} → {load.destination.city} for {alert.user_email}")
            try:
                email = compose_load_alert(load, alert, result.origin_distance, result.destination_distance)
                outcome = send(email)
            except Exception as e:
                logger.error(f"❌ Alert email to {alert.user_email} failed: {e}")
                stats["failed"] += 1
                continue
            if outcome.get("status") == "success":
                stats["sent"] += 1
            else:
                logger.error(f"❌ Alert email to {alert.user_email} failed: {outcome.get('message')}")
                stats["failed"] += 1
    return stats
