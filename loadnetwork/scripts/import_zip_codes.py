#!/usr/bin/env python3
"""
Load the SimpleMaps US ZIP CSV (uszips.csv) into zip_codes.
- Validates each row: 5-digit zip, numeric lat/lng inside the continental/territory box,
  non-empty city and state.
- Replaces the whole table, inserting in batches of 1000; a failed batch is reported
  and the import moves on.

Usage (from project root, with .env DATABASE_URL set):
  loadnetwork-import-zips
  loadnetwork-import-zips --csv path/to/uszips.csv --dry-run
"""
import argparse
import csv
import re
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from loadnetwork.core.config import settings
from loadnetwork.core.deps import get_engine
from loadnetwork.models.zip_code import ZipCode

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CSV = PROJECT_ROOT / "data" / "uszips.csv"
BATCH_SIZE = 1000

_ZIP_RE = re.compile(r"^\d{5}$")
_ZIPS = ZipCode.__table__


def _to_float(raw: Optional[str]) -> Optional[float]:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _to_int(raw: Optional[str]) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


def parse_zip_row(row: Dict[str, str]) -> Optional[Dict]:
    """CSV row -> zip_codes record, or None when the row fails validation."""
    zip_code = (row.get("zip") or "").strip()
    lat = _to_float(row.get("lat"))
    lng = _to_float(row.get("lng"))
    city = (row.get("city") or "").strip()
    state_id = (row.get("state_id") or "").strip()
    if not _ZIP_RE.match(zip_code) or lat is None or lng is None or not city or not state_id:
        return None
    # Keeps the lower 48, Alaska, Hawaii and Puerto Rico; drops bad coordinates
    if not (15 <= lat <= 72) or not (-180 <= lng <= -65):
        return None
    return {
        "zip": zip_code,
        "lat": lat,
        "lng": lng,
        "city": city,
        "state_id": state_id.upper(),
        "state_name": (row.get("state_name") or "").strip(),
        "county_name": (row.get("county_name") or "").strip(),
        "population": _to_int(row.get("population")),
        "density": _to_float(row.get("density")) or 0.0,
    }


def read_zip_csv(lines: Iterable[str]) -> Tuple[List[Dict], int]:
    """Returns (valid records, invalid row count). Duplicate zips keep the last row."""
    by_zip: Dict[str, Dict] = {}
    invalid = 0
    for row in csv.DictReader(lines):
        record = parse_zip_row(row)
        if record is None:
            invalid += 1
            continue
        by_zip[record["zip"]] = record
    return list(by_zip.values()), invalid


def import_zip_codes(engine: Engine, records: List[Dict], batch_size: int = BATCH_SIZE) -> Dict[str, int]:
    """Replace zip_codes with `records`. Returns imported/failed counts and the final row count."""
    with engine.begin() as conn:
        cleared = conn.execute(delete(_ZIPS)).rowcount
    print(f"Cleared {cleared} existing ZIP codes.")

    imported = 0
    failed = 0
    batches = (len(records) + batch_size - 1) // batch_size
    for n, start in enumerate(range(0, len(records), batch_size), start=1):
        batch = records[start:start + batch_size]
        try:
            with engine.begin() as conn:
                conn.execute(insert(_ZIPS), batch)
            imported += len(batch)
            print(f"Batch {n}/{batches} imported - total {imported}")
        except SQLAlchemyError as e:
            failed += len(batch)
            print(f"Batch {n}/{batches} failed: {e}", file=sys.stderr)

    with engine.connect() as conn:
        total = conn.execute(select(func.count()).select_from(_ZIPS)).scalar()
    return {"imported": imported, "failed": failed, "total": total}


def main():
    ap = argparse.ArgumentParser(description="Load SimpleMaps uszips.csv into zip_codes")
    ap.add_argument("--csv", type=Path, default=DEFAULT_CSV, help="Path to uszips.csv")
    ap.add_argument("--dry-run", action="store_true", help="Only validate and print stats, no DB write")
    args = ap.parse_args()

    csv_path = args.csv
    if not csv_path.is_file():
        print(f"CSV not found: {csv_path}", file=sys.stderr)
        print("Download uszips.csv from https://simplemaps.com/data/us-zips", file=sys.stderr)
        return 1

    if not settings.DATABASE_URL and not args.dry_run:
        print("DATABASE_URL not set. Set it in .env or use --dry-run.", file=sys.stderr)
        return 1

    with open(csv_path, newline="", encoding="utf-8", errors="replace") as f:
        records, invalid = read_zip_csv(f)

    print(f"Valid ZIP codes: {len(records)}")
    print(f"Invalid rows skipped: {invalid}")
    for r in records[:3]:
        print(f"  {r['zip']} - {r['city']}, {r['state_id']}")

    if not records:
        print("No valid ZIP codes to import.", file=sys.stderr)
        return 1
    if args.dry_run:
        print("--dry-run: skipping database write.")
        return 0

    result = import_zip_codes(get_engine(), records)
    print(f"Imported {result['imported']} ZIP codes ({result['failed']} failed). Table now has {result['total']}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
