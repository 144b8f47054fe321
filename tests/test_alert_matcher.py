"""Tests for alert geofencing and the load notifier job."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import insert

from loadnetwork.jobs.load_notifier import run_load_notifier
from loadnetwork.models.alert import Alert
from loadnetwork.models.load import Load
from loadnetwork.models.user import User
from loadnetwork.schemas.alert import AlertSubscription
from loadnetwork.schemas.load import Location, Posting
from loadnetwork.services.alert_matcher import match_alert, notify_matches
from loadnetwork.services.geo import haversine_miles

DALLAS = (32.7767, -96.7970)
FORT_WORTH = (32.7555, -97.3308)
ATLANTA = (33.7490, -84.3880)
MARIETTA = (33.9526, -84.5499)


def make_load(source_id="L1", origin=DALLAS, destination=ATLANTA):
    return Posting(
        source_id=source_id,
        origin=Location(city="Dallas", state="TX", lat=origin and origin[0], lng=origin and origin[1]),
        destination=Location(city="Atlanta", state="GA", lat=destination[0], lng=destination[1]),
        truck_type="Van",
        miles=781,
        broker_name="Acme Logistics",
        broker_email="dispatch@acme.com",
    )


def make_alert(origin_radius, destination_radius, id=1, email="carrier@example.com", origin=FORT_WORTH, destination=MARIETTA):
    return AlertSubscription(
        id=id,
        user_id=1,
        user_email=email,
        origin_text="Fort Worth, TX",
        origin_lat=origin[0] if origin else None,
        origin_lng=origin[1] if origin else None,
        origin_radius=origin_radius,
        destination_text="Marietta, GA",
        destination_lat=destination[0],
        destination_lng=destination[1],
        destination_radius=destination_radius,
    )


ORIGIN_MILES = haversine_miles(*FORT_WORTH, *DALLAS)
DESTINATION_MILES = haversine_miles(*MARIETTA, *ATLANTA)


class TestMatchAlert:
    def test_boundary_is_inclusive(self):
        result = match_alert(make_load(), make_alert(ORIGIN_MILES, DESTINATION_MILES))
        assert result.is_match
        assert result.origin_distance == pytest.approx(ORIGIN_MILES)

    def test_just_outside_origin_radius(self):
        result = match_alert(make_load(), make_alert(ORIGIN_MILES - 1e-6, DESTINATION_MILES))
        assert not result.origin_match
        assert result.destination_match
        assert not result.is_match

    def test_both_ends_must_match(self):
        result = match_alert(make_load(), make_alert(100, 1))
        assert result.origin_match
        assert not result.is_match

    def test_missing_load_point_skipped(self):
        assert match_alert(make_load(origin=None), make_alert(100, 100)) is None

    def test_missing_alert_point_skipped(self):
        assert match_alert(make_load(), make_alert(100, 100, origin=None)) is None


class TestNotifyMatches:
    def test_sends_one_email_per_match(self):
        sent = []

        def send(email):
            sent.append(email)
            return {"status": "success"}

        alerts = [make_alert(100, 100), make_alert(1, 1, id=2, email="far@example.com")]
        stats = notify_matches(alerts, [make_load()], send=send)
        assert stats["pairs_checked"] == 2
        assert stats["matches"] == 1
        assert stats["sent"] == 1
        assert [e.to for e in sent] == ["carrier@example.com"]
        assert "Dallas, TX → Atlanta, GA" in sent[0].subject

    def test_dispatch_failure_does_not_stop_run(self):
        sent = []

        def send(email):
            if email.to == "broken@example.com":
                raise OSError("connection refused")
            sent.append(email.to)
            return {"status": "success"}

        alerts = [make_alert(100, 100, id=1, email="broken@example.com"), make_alert(100, 100, id=2)]
        stats = notify_matches(alerts, [make_load()], send=send)
        assert stats["matches"] == 2
        assert stats["failed"] == 1
        assert stats["sent"] == 1
        assert sent == ["carrier@example.com"]

    def test_error_status_counts_as_failed(self):
        stats = notify_matches([make_alert(100, 100)], [make_load()], send=lambda e: {"status": "error", "message": "x"})
        assert stats["failed"] == 1
        assert stats["sent"] == 0

    def test_missing_geo_counted(self):
        stats = notify_matches([make_alert(100, 100)], [make_load(origin=None)], send=lambda e: {"status": "success"})
        assert stats["skipped_missing_geo"] == 1
        assert stats["matches"] == 0


class TestLoadNotifierJob:
    NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def seed(self, engine, alert_active=True):
        with engine.begin() as conn:
            conn.execute(insert(User.__table__), [{"id": 1, "email": "carrier@example.com", "company_name": "Road Runner LLC"}])
            conn.execute(
                insert(Alert.__table__),
                [
                    {
                        "user_id": 1,
                        "origin_text": "Fort Worth, TX",
                        "origin_lat": FORT_WORTH[0],
                        "origin_lng": FORT_WORTH[1],
                        "origin_radius": 50,
                        "destination_text": "Marietta, GA",
                        "destination_lat": MARIETTA[0],
                        "destination_lng": MARIETTA[1],
                        "destination_radius": 50,
                        "is_active": alert_active,
                    }
                ],
            )
            recent = make_load("recent").to_row()
            old = make_load("old").to_row()
            conn.execute(
                insert(Load.__table__),
                [
                    dict(recent, created_at=self.NOW - timedelta(minutes=2), updated_at=self.NOW),
                    dict(old, created_at=self.NOW - timedelta(minutes=30), updated_at=self.NOW),
                ],
            )

    def test_only_recent_loads_are_checked(self, engine):
        self.seed(engine)
        sent = []

        def send(email):
            sent.append(email)
            return {"status": "success"}

        result = run_load_notifier(engine=engine, now=self.NOW, window_minutes=5, send=send)
        assert result["alerts"] == 1
        assert result["loads"] == 1
        assert result["matches"] == 1
        assert result["sent"] == 1
        assert sent[0].to == "carrier@example.com"

    def test_inactive_alerts_ignored(self, engine):
        self.seed(engine, alert_active=False)
        result = run_load_notifier(engine=engine, now=self.NOW, window_minutes=5, send=lambda e: {"status": "success"})
        assert result["alerts"] == 0
        assert result["sent"] == 0

    def test_nothing_recent(self, engine):
        self.seed(engine)
        later = self.NOW + timedelta(hours=1)
        result = run_load_notifier(engine=engine, now=later, window_minutes=5, send=lambda e: {"status": "success"})
        assert result["alerts"] == 1
        assert result["loads"] == 0
