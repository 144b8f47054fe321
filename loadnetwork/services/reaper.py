"""
Stale-load reaper: after a full pass, drop loads the board no longer shows.

Biased toward keeping data. An empty pass deletes nothing, and a stale set at or above the
ceiling is treated as a broken scrape rather than a real mass expiry.
"""
import logging
from typing import Callable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from loadnetwork.core.config import settings
from loadnetwork.core.deps import reconnect, with_retry
from loadnetwork.models.load import Load
from loadnetwork.schemas.load import Posting

logger = logging.getLogger("reaper")

_LOADS = Load.__table__


class StaleLoadReaper:
    def __init__(
        self,
        engine: Engine,
        ceiling: Optional[int] = None,
        reconnect_fn: Callable[[Engine], Engine] = reconnect,
    ):
        self.engine = engine
        self.ceiling = settings.STALE_DELETE_CEILING if ceiling is None else ceiling
        self.reconnect_fn = reconnect_fn

    def reap(self, observed: Sequence[Posting]) -> int:
        """Delete persisted loads missing from `observed`. Returns the number deleted."""
        logger.info("🗑️ Starting stale load cleanup process...")
        if not observed:
            logger.warning("⚠️ No loads scraped in this run, skipping stale check for safety.")
            return 0

        # Long scrapes outlive idle pooled connections; raises StoreConnectionError if the store is gone
        self.reconnect_fn(self.engine)

        try:
            stored_ids = with_retry(self._stored_ids)
            logger.info(f"📊 Found {len(stored_ids)} loads in the database.")
            seen_ids = {p.source_id for p in observed}
            stale_ids = sorted(stored_ids - seen_ids)

            if not stale_ids:
                logger.info("👍 No stale loads found.")
                return 0
            if len(stale_ids) >= self.ceiling:
                logger.warning(
                    f"⚠️ Safety check triggered. Found {len(stale_ids)} stale loads, which is too many "
                    f"to delete automatically (ceiling {self.ceiling}). Skipping cleanup."
                )
                return 0

            logger.info(f"🗑️ Found {len(stale_ids)} stale loads to remove.")
            deleted = with_retry(lambda: self._delete(stale_ids))
        except SQLAlchemyError as e:
            logger.error(f"❌ An error occurred during stale load cleanup: {e}")
            return 0
        logger.info(f"✅ Successfully removed {deleted} stale loads.")
        return deleted

    def _stored_ids(self) -> set:
        with self.engine.connect() as conn:
            return {row.source_id for row in conn.execute(select(_LOADS.c.source_id))}

    def _delete(self, source_ids: list) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(delete(_LOADS).where(_LOADS.c.source_id.in_(source_ids)))
            return result.rowcount
