"""
Batch synchronizer: flush scraped postings to the loads table every N rows.

Delivery is at-least-once and idempotent by source_id: new ids are inserted, known ids are
updated in place. Nothing here is atomic across a batch. When a batch cannot be written it
is dumped to failed_batch_<timestamp>.json for manual recovery and the run carries on.
"""
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from sqlalchemy import bindparam, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from loadnetwork.core.config import settings
from loadnetwork.core.deps import retrying
from loadnetwork.models.load import Load
from loadnetwork.schemas.load import Posting

logger = logging.getLogger("batch_sync")

_LOADS = Load.__table__


@dataclass
class SyncResult:
    received: int = 0
    inserted: int = 0
    updated: int = 0
    duplicates: int = 0
    failed: int = 0
    backup_path: Optional[Path] = None


class BatchSynchronizer:
    def __init__(
        self,
        engine: Engine,
        backup_dir: Optional[str] = None,
        chunk_size: Optional[int] = None,
        pause_seconds: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.engine = engine
        self.backup_dir = Path(backup_dir or settings.FAILED_BATCH_DIR)
        self.chunk_size = settings.INSERT_CHUNK_SIZE if chunk_size is None else chunk_size
        self.pause_seconds = settings.INSERT_PAUSE_SECONDS if pause_seconds is None else pause_seconds
        self.retry_attempts = retry_attempts
        self.retry_base_seconds = retry_base_seconds
        self.sleep = sleep

    def sync(self, batch: Sequence[Posting]) -> SyncResult:
        result = SyncResult(received=len(batch))
        if not batch:
            return result
        logger.info(f"🔄 Synchronizing batch of {len(batch)} loads with database...")
        try:
            # The same posting can appear twice in one pass; keep the last observation
            latest: Dict[str, Posting] = {p.source_id: p for p in batch}
            existing = self._retry(self._existing_ids, list(latest))
            new = [p for sid, p in latest.items() if sid not in existing]
            updates = [p for sid, p in latest.items() if sid in existing]
            logger.info(f"  📊 Batch details: {len(new)} new, {len(updates)} updates.")

            if new:
                logger.info("  ➕ Adding new loads from batch...")
                self._insert_new(new, result)
            if updates:
                logger.info("  🔄 Updating existing loads from batch...")
                self._retry(self._update_existing, updates)
                result.updated = len(updates)
        except SQLAlchemyError as e:
            logger.error(f"❌ Sync failed for batch: {e}")
            result.backup_path = self.write_backup(batch)
            return result

        logger.info(f"✅ Batch of {len(batch)} synchronized successfully.")
        return result

    def write_backup(self, batch: Sequence[Posting]) -> Optional[Path]:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        path = self.backup_dir / f"failed_batch_{timestamp}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps([p.model_dump(mode="json") for p in batch], indent=2), encoding="utf-8")
        except OSError as e:
            logger.critical(f"🔥 Could not write emergency backup {path}: {e}")
            return None
        logger.info(f"💾 Emergency backup for failed batch saved to {path}")
        return path

    def _retry(self, fn, *args):
        return retrying(self.retry_attempts, self.retry_base_seconds)(fn, *args)

    def _existing_ids(self, source_ids: List[str]) -> Set[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_LOADS.c.source_id).where(_LOADS.c.source_id.in_(source_ids)))
            return {row.source_id for row in rows}

    def _insert_rows(self, rows: List[Dict[str, Any]]) -> None:
        with self.engine.begin() as conn:
            conn.execute(insert(_LOADS), rows)

    def _insert_new(self, postings: List[Posting], result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        for start in range(0, len(postings), self.chunk_size):
            rows = [dict(p.to_row(), created_at=now, updated_at=now) for p in postings[start:start + self.chunk_size]]
            try:
                self._retry(self._insert_rows, rows)
                result.inserted += len(rows)
            except SQLAlchemyError as e:
                logger.error(f"❌ Failed to insert batch after retries: {e}")
                self._insert_individually(rows, result)
            self.sleep(self.pause_seconds)

    def _insert_individually(self, rows: List[Dict[str, Any]], result: SyncResult) -> None:
        for row in rows:
            try:
                self._retry(self._insert_rows, [row])
                result.inserted += 1
            except IntegrityError:
                # Already stored (another batch or a concurrent run got there first)
                result.duplicates += 1
            except SQLAlchemyError as e:
                result.failed += 1
                logger.error(f"❌ Failed to add load {row['source_id']}: {e}")

    def _update_existing(self, postings: List[Posting]) -> None:
        now = datetime.now(timezone.utc)
        params = []
        for p in postings:
            row = p.to_row()
            sid = row.pop("source_id")
            row["updated_at"] = now
            params.append(dict({f"v_{k}": v for k, v in row.items()}, b_source_id=sid))
        columns = [k[2:] for k in params[0] if k.startswith("v_")]
        stmt = (
            update(_LOADS)
            .where(_LOADS.c.source_id == bindparam("b_source_id"))
            .values({col: bindparam(f"v_{col}") for col in columns})
        )
        with self.engine.begin() as conn:
            conn.execute(stmt, params)
