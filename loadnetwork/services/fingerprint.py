"""
Fingerprint & dedup: stable identity for postings and the per-run cache of known loads.

The portal has no usable primary key, so identity is content-based: broker + origin line
+ destination line + pickup fragment. Truck type, miles and delivery time are left out on
purpose; a repost of the same lane and pickup with different equipment is an update.
"""
import enum
import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from loadnetwork.core.deps import with_retry
from loadnetwork.models.load import Load
from loadnetwork.schemas.load import Posting, RawRow, cell_line

logger = logging.getLogger("dedup")


def fingerprint(raw: RawRow) -> str:
    origin = cell_line(raw.origin_and_pu, 0)
    destination = cell_line(raw.destination_and_del, 0)
    pickup = cell_line(raw.origin_and_pu, 1)
    key = f"{raw.broker_name.strip()}-{origin}-{destination}-{pickup}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


class Decision(str, enum.Enum):
    CACHE_HIT = "cache_hit"
    NEEDS_DETAIL = "needs_detail"


@dataclass(frozen=True)
class Classification:
    source_id: str
    decision: Decision
    cached: Optional[Posting] = None


class DedupCache:
    """source_id -> last persisted Posting. Built once per run, never persisted."""

    def __init__(self, loads: Optional[Dict[str, Posting]] = None):
        self._loads: Dict[str, Posting] = dict(loads or {})

    @classmethod
    def from_store(cls, engine: Engine) -> "DedupCache":
        """
        Full read of the loads table. A failed read yields an empty cache so the run
        still proceeds (every row then goes through detail extraction).
        """
        logger.info("📚 Loading existing loads from database into cache...")

        def _read():
            with engine.connect() as conn:
                return conn.execute(select(Load.__table__)).mappings().all()

        try:
            rows = with_retry(_read)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error loading existing loads cache: {e}")
            logger.warning("⚠️ Starting with empty cache - all loads will be processed")
            return cls()
        cache = cls({row["source_id"]: Posting.from_row(row) for row in rows})
        logger.info(f"✅ Loaded {len(cache)} existing loads into cache")
        return cache

    def get(self, source_id: str) -> Optional[Posting]:
        return self._loads.get(source_id)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._loads

    def __len__(self) -> int:
        return len(self._loads)

    def __iter__(self) -> Iterator[str]:
        return iter(self._loads)


def classify(raw: RawRow, cache: DedupCache) -> Classification:
    """Decide whether a row can be served from the cache or needs its detail popup opened."""
    source_id = fingerprint(raw)
    cached = cache.get(source_id)
    if cached is not None:
        return Classification(source_id, Decision.CACHE_HIT, cached)
    return Classification(source_id, Decision.NEEDS_DETAIL)


def posting_from_cache(cached: Posting) -> Posting:
    """Copy of the persisted posting; the sync step refreshes its updated_at."""
    return cached.model_copy(deep=True)
