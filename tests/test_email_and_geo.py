"""Tests for email composition, ZIP lookups and the ZIP CSV import."""

import io

import pytest
from sqlalchemy import insert

from loadnetwork.core.config import settings
from loadnetwork.models.zip_code import ZipCode
from loadnetwork.schemas.alert import AlertSubscription
from loadnetwork.schemas.load import NOT_AVAILABLE, Location, Posting
from loadnetwork.scripts.import_zip_codes import import_zip_codes, parse_zip_row, read_zip_csv
from loadnetwork.services.email import OutboundEmail, compose_bid_inquiry, compose_load_alert, send_email
from loadnetwork.services.geo import ZipDirectory, haversine_miles, zip_distance_miles


def make_load(broker_email="dispatch@acme.com"):
    return Posting(
        source_id="a1b2c3",
        origin=Location(city="Dallas", state="TX", zip="75201"),
        destination=Location(city="Atlanta", state="GA", zip="30301"),
        pickup_date="01/02 08:00",
        truck_type="Van",
        miles=781,
        weight=42000,
        broker_name="Acme Logistics",
        broker_email=broker_email,
        broker_notes="Notes: Tarps required",
    )


class TestEmail:
    def test_load_alert(self):
        alert = AlertSubscription(
            id=1,
            user_id=1,
            user_email="carrier@example.com",
            origin_text="Dallas, TX",
            origin_radius=50,
            destination_text="Atlanta, GA",
            destination_radius=75,
        )
        email = compose_load_alert(make_load(), alert, 3.2, 10.4)
        assert email.to == "carrier@example.com"
        assert email.subject == "New load match: Dallas, TX → Atlanta, GA"
        assert "Miles: 781" in email.text
        assert "Weight: 42,000 lbs" in email.text
        assert "Tarps required" in email.html
        assert "10 mi" in email.html

    def test_bid_inquiry_defaults(self):
        email = compose_bid_inquiry(make_load(), "Road Runner LLC", "ops@roadrunner.com")
        assert email.to == "dispatch@acme.com"
        assert email.subject == "Inquiry on Load #a1b2c3 from Road Runner LLC"
        assert email.reply_to == "ops@roadrunner.com"
        assert email.sender == settings.BIDS_FROM
        assert "Please provide rates" in email.text
        assert "Road Runner LLC" in email.html

    def test_bid_inquiry_custom_message(self):
        email = compose_bid_inquiry(make_load(), "Road Runner LLC", "ops@roadrunner.com", subject="Rate?", message="Can you do $2,100?")
        assert email.subject == "Rate?"
        assert "Can you do $2,100?" in email.text

    def test_bid_inquiry_needs_broker_email(self):
        with pytest.raises(ValueError):
            compose_bid_inquiry(make_load(NOT_AVAILABLE), "Road Runner LLC", "ops@roadrunner.com")

    def test_send_without_smtp_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "EMAIL_USER", None)
        result = send_email(OutboundEmail(to="carrier@example.com", subject="s", text="t"))
        assert result["status"] == "error"
        assert "SMTP not configured" in result["message"]


class TestGeo:
    def test_haversine_dallas_atlanta(self):
        assert haversine_miles(32.7767, -96.7970, 33.7490, -84.3880) == pytest.approx(720, abs=5)
        assert haversine_miles(32.7767, -96.7970, 32.7767, -96.7970) == 0

    def test_directory_lookup_order(self):
        directory = ZipDirectory()
        directory.add("75201", "Dallas", "TX", 32.79, -96.80)
        directory.add("75202", "Dallas", "TX", 32.78, -96.81)
        assert directory.lookup(zip_code="75202-1234") == (32.78, -96.81)
        assert directory.lookup(city="dallas", state="tx") == (32.79, -96.80)
        assert directory.lookup(city="Dallas", state="TX", zip_code="99999") == (32.79, -96.80)
        assert directory.lookup(city="Austin", state="TX") is None

    def test_resolve_fills_point(self):
        directory = ZipDirectory()
        directory.add("30301", "Atlanta", "GA", 33.75, -84.39)
        resolved = directory.resolve(Location(city="Atlanta", state="GA", zip="30301"))
        assert (resolved.lat, resolved.lng) == (33.75, -84.39)
        unknown = Location(city="Nowhere", state="ZZ")
        assert directory.resolve(unknown) == unknown

    def test_zip_distance(self):
        directory = ZipDirectory()
        directory.add("75201", "Dallas", "TX", 32.7767, -96.7970)
        directory.add("30301", "Atlanta", "GA", 33.7490, -84.3880)
        assert zip_distance_miles(directory, "75201", "30301") == pytest.approx(720, abs=5)
        assert zip_distance_miles(directory, "75201", "00000") is None

    def test_directory_from_store_prefers_populous_zip(self, engine):
        with engine.begin() as conn:
            conn.execute(
                insert(ZipCode.__table__),
                [
                    {"zip": "75270", "lat": 32.78, "lng": -96.80, "city": "Dallas", "state_id": "TX", "state_name": "Texas", "population": 10},
                    {"zip": "75201", "lat": 32.79, "lng": -96.80, "city": "Dallas", "state_id": "TX", "state_name": "Texas", "population": 20000},
                ],
            )
        directory = ZipDirectory.from_store(engine)
        assert len(directory) == 2
        assert directory.lookup(city="Dallas", state="TX") == (32.79, -96.80)


CSV_TEXT = """zip,lat,lng,city,state_id,state_name,county_name,population,density
75201,32.7876,-96.7994,Dallas,TX,Texas,Dallas,19847,3108.6
30301,33.7490,-84.3880,Atlanta,GA,Georgia,Fulton,,
1234,40.0,-75.0,Short,PA,Pennsylvania,,,
96799,-14.2,-170.7,Pago Pago,AS,American Samoa,,,
10001,40.75,-73.99,,NY,New York,,,
99999,80.0,-150.0,Too North,AK,Alaska,,,
"""


class TestZipImport:
    def test_row_validation(self):
        assert parse_zip_row({"zip": "75201", "lat": "32.7", "lng": "-96.8", "city": "Dallas", "state_id": "TX"})["lat"] == 32.7
        assert parse_zip_row({"zip": "7520", "lat": "32.7", "lng": "-96.8", "city": "Dallas", "state_id": "TX"}) is None
        assert parse_zip_row({"zip": "75201", "lat": "x", "lng": "-96.8", "city": "Dallas", "state_id": "TX"}) is None
        assert parse_zip_row({"zip": "75201", "lat": "32.7", "lng": "-60.0", "city": "Dallas", "state_id": "TX"}) is None
        assert parse_zip_row({"zip": "75201", "lat": "32.7", "lng": "-96.8", "city": "Dallas", "state_id": ""}) is None

    def test_read_csv(self):
        records, invalid = read_zip_csv(io.StringIO(CSV_TEXT))
        assert [r["zip"] for r in records] == ["75201", "30301"]
        assert invalid == 4
        assert records[0]["population"] == 19847
        assert records[1]["population"] == 0

    def test_import_replaces_table(self, engine):
        records, _ = read_zip_csv(io.StringIO(CSV_TEXT))
        import_zip_codes(engine, records)
        result = import_zip_codes(engine, records, batch_size=1)
        assert result == {"imported": 2, "failed": 0, "total": 2}
