"""
Load notifier job (cron / scheduler, every few minutes).
Checks loads created in the trailing window against every active alert and emails matches.
Stateless: each run is a full alerts x recent-loads evaluation.
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from sqlalchemy.engine import Engine

from loadnetwork.core.config import settings
from loadnetwork.core.deps import engine as default_engine
from loadnetwork.services.alert_matcher import fetch_active_alerts, fetch_recent_loads, notify_matches
from loadnetwork.services.email import OutboundEmail, send_email

logger = logging.getLogger("notifier")


def run_load_notifier(
    *,
    engine: Engine | None = None,
    now: datetime | None = None,
    window_minutes: int | None = None,
    send: Callable[[OutboundEmail], Dict[str, Any]] = send_email,
) -> dict:
    """
    Evaluate loads created in [now - window, now] against active alerts.
    Returns counts; {"error": ...} when the database is not configured.
    """
    eng = engine or default_engine
    if not eng:
        return {"error": "Database not configured"}
    now = now or datetime.now(timezone.utc)
    window_minutes = settings.NOTIFIER_WINDOW_MINUTES if window_minutes is None else window_minutes
    since = now - timedelta(minutes=window_minutes)

    logger.info("--- Starting Load Notifier Process ---")
    with eng.connect() as conn:
        alerts = fetch_active_alerts(conn)
        if not alerts:
            logger.info("No active alerts found. Exiting.")
            return {"alerts": 0, "loads": 0, "matches": 0, "sent": 0, "failed": 0}
        loads = fetch_recent_loads(conn, since)
    if not loads:
        logger.info("No recent loads found. Exiting.")
        return {"alerts": len(alerts), "loads": 0, "matches": 0, "sent": 0, "failed": 0}

    logger.info(f"Found {len(alerts)} active alerts to process against {len(loads)} recent loads.")
    result = notify_matches(alerts, loads, send=send)
    result["window_start"] = since.isoformat()
    logger.info(
        f"--- Finished Load Notifier Process: {result['matches']} matches, "
        f"{result['sent']} sent, {result['failed']} failed ---"
    )
    return result


def job_load_notifier() -> None:
    """Default scheduled entry point."""
    run_load_notifier()


def main() -> int:
    ap = argparse.ArgumentParser(description="Email carriers about new loads matching their lane alerts")
    ap.add_argument("--window-minutes", type=int, default=None, help="Trailing window for new loads (default 5)")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO)
    result = run_load_notifier(window_minutes=args.window_minutes)
    print(result)
    return 1 if "error" in result else 0


if __name__ == "__main__":
    sys.exit(main())
