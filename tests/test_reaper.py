"""Tests for the stale-load reaper and its safety bounds."""

import pytest
from fakes import seed_loads
from sqlalchemy import select

from loadnetwork.core.config import settings
from loadnetwork.core.deps import StoreConnectionError
from loadnetwork.models.load import Load
from loadnetwork.schemas.load import Location, Posting
from loadnetwork.services.reaper import StaleLoadReaper


def observed(*source_ids):
    return [Posting(source_id=sid, origin=Location(city="Dallas"), destination=Location(city="Atlanta")) for sid in source_ids]


def stored_ids(engine):
    with engine.connect() as conn:
        return {row.source_id for row in conn.execute(select(Load.__table__.c.source_id))}


def make_reaper(engine, **kwargs):
    return StaleLoadReaper(engine, reconnect_fn=lambda e: e, **kwargs)


class TestReap:
    def test_nothing_stale(self, engine):
        seed_loads(engine, ["a", "b"])
        assert make_reaper(engine).reap(observed("a", "b")) == 0
        assert stored_ids(engine) == {"a", "b"}

    def test_deletes_loads_missing_from_pass(self, engine):
        seed_loads(engine, ["a", "b", "c"])
        assert make_reaper(engine).reap(observed("a", "new")) == 2
        assert stored_ids(engine) == {"a"}

    def test_empty_pass_never_touches_store(self, engine):
        seed_loads(engine, ["a", "b"])
        calls = []
        reaper = StaleLoadReaper(engine, reconnect_fn=calls.append)
        assert reaper.reap([]) == 0
        assert calls == []
        assert stored_ids(engine) == {"a", "b"}

    def test_just_under_default_ceiling_deletes(self, engine):
        stale = [f"stale-{n}" for n in range(499)]
        seed_loads(engine, stale + ["kept"])
        assert make_reaper(engine, ceiling=500).reap(observed("kept")) == 499
        assert stored_ids(engine) == {"kept"}

    def test_at_default_ceiling_deletes_nothing(self, engine):
        stale = [f"stale-{n}" for n in range(500)]
        seed_loads(engine, stale + ["kept"])
        assert make_reaper(engine, ceiling=500).reap(observed("kept")) == 0
        assert len(stored_ids(engine)) == 501

    def test_custom_ceiling(self, engine):
        seed_loads(engine, ["a", "b", "c", "d"])
        assert make_reaper(engine, ceiling=3).reap(observed("a")) == 0
        assert make_reaper(engine, ceiling=4).reap(observed("a")) == 3

    def test_reconnects_before_reading(self, engine):
        seed_loads(engine, ["a", "b"])
        calls = []

        def reconnect(eng):
            calls.append(eng)
            return eng

        assert StaleLoadReaper(engine, reconnect_fn=reconnect).reap(observed("a")) == 1
        assert calls == [engine]

    def test_unreachable_store_propagates(self, engine):
        def reconnect(eng):
            raise StoreConnectionError("Failed to connect to database")

        with pytest.raises(StoreConnectionError):
            StaleLoadReaper(engine, reconnect_fn=reconnect).reap(observed("a"))

    def test_zero_ceiling_is_kept(self, engine):
        seed_loads(engine, ["a", "b"])
        reaper = make_reaper(engine, ceiling=0)
        assert reaper.ceiling == 0
        assert reaper.reap(observed("a")) == 0
        assert stored_ids(engine) == {"a", "b"}

    def test_default_ceiling_from_settings(self, engine, monkeypatch):
        monkeypatch.setattr(settings, "STALE_DELETE_CEILING", 2)
        seed_loads(engine, ["a", "b", "c"])
        assert make_reaper(engine).reap(observed("a")) == 0
