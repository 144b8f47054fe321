"""
Scrape job: one full pass over the Sylectus load board.

connect store -> load dedup cache -> browser + session -> rows (cache hit or popup) ->
batch sync every 25 -> final flush -> stale reap -> cleanup (always).
Rows are processed strictly one at a time; the portal only tolerates one bid popup.
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from loadnetwork.core.config import settings
from loadnetwork.core.deps import StoreConnectionError, connect_with_retry, get_engine
from loadnetwork.schemas.load import Posting, build_posting
from loadnetwork.services.batch_sync import BatchSynchronizer, SyncResult
from loadnetwork.services.extractor import (
    DetailExtractor,
    DetailOutcome,
    ListingUnavailableError,
    accept_dialog,
    count_rows,
    open_listing_frame,
    read_row,
)
from loadnetwork.services.fingerprint import Decision, DedupCache, classify, posting_from_cache
from loadnetwork.services.geo import ZipDirectory
from loadnetwork.services.portal_session import PortalLoginError, PortalSession
from loadnetwork.services.reaper import StaleLoadReaper

logger = logging.getLogger("scraper")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-blink-features=AutomationControlled",
    "--disable-popup-blocking",
    "--disable-features=TranslateUI",
    "--disable-extensions",
]
PROGRESS_EVERY = 25


@dataclass
class ScrapeStats:
    rows: int = 0
    new: int = 0
    cached: int = 0
    expired: int = 0
    empty_rows: int = 0
    no_bid_button: int = 0
    popup_failures: int = 0
    extraction_failures: int = 0
    row_errors: int = 0
    total: int = 0
    batches: int = 0
    inserted: int = 0
    updated: int = 0
    duplicates: int = 0
    failed: int = 0
    backups: int = 0
    stale_deleted: int = 0
    session: Optional[str] = None
    error: Optional[str] = None
    seconds: float = 0.0

    def absorb(self, result: SyncResult) -> None:
        self.batches += 1
        self.inserted += result.inserted
        self.updated += result.updated
        self.duplicates += result.duplicates
        self.failed += result.failed
        if result.backup_path:
            self.backups += 1


class LoadScraper:
    def __init__(
        self,
        engine: Engine,
        session: Optional[PortalSession] = None,
        synchronizer: Optional[BatchSynchronizer] = None,
        reaper: Optional[StaleLoadReaper] = None,
        zip_directory: Optional[ZipDirectory] = None,
        batch_size: Optional[int] = None,
        row_pause_seconds: float = 0.1,
        headless: Optional[bool] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.engine = engine
        self.session = session or PortalSession()
        self.synchronizer = synchronizer or BatchSynchronizer(engine)
        self.reaper = reaper or StaleLoadReaper(engine)
        self.zip_directory = zip_directory
        self.batch_size = settings.SYNC_BATCH_SIZE if batch_size is None else batch_size
        self.row_pause_seconds = row_pause_seconds
        self.headless = settings.SCRAPER_HEADLESS if headless is None else headless
        self.sleep = sleep
        self.stats = ScrapeStats()

    def run(self) -> dict:
        """Full scrape. Fatal errors are logged and reported in the result; cleanup always runs."""
        logger.info("🚀 Starting Sylectus scraper...")
        started = time.monotonic()
        try:
            connect_with_retry(self.engine)
            cache = DedupCache.from_store(self.engine)
            if self.zip_directory is None:
                self.zip_directory = self._load_zip_directory()

            with sync_playwright() as pw:
                browser = pw.chromium.launch(
                    headless=self.headless,
                    args=BROWSER_ARGS,
                    ignore_default_args=["--enable-automation"],
                )
                try:
                    context = browser.new_context(viewport={"width": 1366, "height": 768}, user_agent=USER_AGENT)
                    context.add_init_script("Object.defineProperty(navigator, 'webdriver', { get: () => false })")
                    page = context.new_page()
                    page.on("dialog", accept_dialog)

                    self.stats.session = self.session.acquire(context, page).value
                    frame = open_listing_frame(page)
                    observed = self.scrape_listing(context, frame, cache)
                    self.stats.stale_deleted = self.reaper.reap(observed)
                finally:
                    logger.info("🧹 Cleaning up...")
                    try:
                        browser.close()
                        logger.info("✅ Browser closed")
                    except PlaywrightError as e:
                        logger.warning(f"⚠️ Browser close failed: {e}")
        except (StoreConnectionError, PortalLoginError, ListingUnavailableError, PlaywrightError) as e:
            logger.error(f"❌ A critical error occurred during scraping: {e}")
            self.stats.error = str(e)
        finally:
            self.engine.dispose()
            logger.info("✅ Database disconnected")
            self.stats.seconds = round(time.monotonic() - started, 1)
            logger.info(f"🏁 Scraper run finished in {self.stats.seconds} seconds.")
        return asdict(self.stats)

    def scrape_listing(self, context, frame, cache: DedupCache) -> List[Posting]:
        """Walk every row of the open listing frame. Returns every posting observed this pass."""
        stats = self.stats
        detail = DetailExtractor(context)
        observed: List[Posting] = []
        batch: List[Posting] = []
        started = time.monotonic()

        stats.rows = count_rows(frame)
        logger.info(f"📋 Found {stats.rows} loads. Processing with batching...")

        for index in range(stats.rows):
            raw = read_row(frame, index)
            if raw is None or not raw.has_data:
                stats.empty_rows += 1
                continue

            verdict = classify(raw, cache)
            if verdict.decision is Decision.CACHE_HIT:
                posting = posting_from_cache(verdict.cached)
                stats.cached += 1
                logger.info(f"⚡ Database skip: {raw.broker_name} ({posting.origin.city} → {posting.destination.city})")
            else:
                logger.info(f"📋 Extracting: {raw.broker_name}")
                try:
                    outcome, fields = detail.fetch(frame, index)
                except PlaywrightError as e:
                    stats.row_errors += 1
                    logger.error(f"❌ Error processing {raw.broker_name}: {e}")
                    detail.close_popup()
                    continue

                if outcome is DetailOutcome.NO_BID_BUTTON:
                    stats.no_bid_button += 1
                    logger.warning(f"❌ Could not click bid button for: {raw.broker_name}")
                    continue
                if outcome is DetailOutcome.NO_POPUP:
                    stats.popup_failures += 1
                    logger.warning(f"❌ No popup appeared for: {raw.broker_name}")
                    continue
                if outcome is DetailOutcome.EXPIRED:
                    stats.expired += 1
                    logger.info(f"🚫 Expired: {raw.broker_name}")
                    continue

                if fields.likely_failure:
                    stats.extraction_failures += 1
                    logger.warning(f"⚠️ No data extracted for {raw.broker_name} - popup may not have loaded properly")

                posting = self._locate(build_posting(raw, verdict.source_id, fields.email, fields.notes))
                stats.new += 1
                logger.info(f"✅ {posting.origin.city} → {posting.destination.city} ({fields.email})")

            observed.append(posting)
            batch.append(posting)
            if len(batch) >= self.batch_size:
                self.stats.absorb(self.synchronizer.sync(batch))
                batch = []

            if len(observed) % PROGRESS_EVERY == 0:
                self._log_progress(len(observed), index, started)
            self.sleep(self.row_pause_seconds)

        detail.close_popup()
        if batch:
            logger.info(f"📦 Processing final batch of {len(batch)} loads...")
            self.stats.absorb(self.synchronizer.sync(batch))

        stats.total = len(observed)
        self._log_summary(started)
        return observed

    def _locate(self, posting: Posting) -> Posting:
        if not self.zip_directory:
            return posting
        return posting.model_copy(
            update={
                "origin": self.zip_directory.resolve(posting.origin),
                "destination": self.zip_directory.resolve(posting.destination),
            }
        )

    def _load_zip_directory(self) -> ZipDirectory:
        try:
            return ZipDirectory.from_store(self.engine)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Zip directory unavailable, loads will have no map points: {e}")
            return ZipDirectory()

    def _log_progress(self, done: int, index: int, started: float) -> None:
        elapsed = max(time.monotonic() - started, 0.001)
        rate = done / elapsed
        eta_minutes = ((self.stats.rows - index) / rate) / 60 if rate else 0.0
        logger.info(
            f"⚡ Progress: {done}/{self.stats.rows} | {rate:.1f}/s | ETA: {eta_minutes:.1f}m | "
            f"New: {self.stats.new} | Cached: {self.stats.cached} | Expired: {self.stats.expired}"
        )

    def _log_summary(self, started: float) -> None:
        s = self.stats
        logger.info(f"🎉 Scraping completed in {time.monotonic() - started:.1f} seconds!")
        logger.info(f"✅ New loads scraped: {s.new}")
        logger.info(f"⚡ Loads from cache: {s.cached}")
        logger.info(f"🚫 Expired loads skipped: {s.expired}")
        logger.info(f"⏭️ Empty rows skipped: {s.empty_rows}")
        logger.info(f"❌ Popup failures: {s.popup_failures} (no bid button: {s.no_bid_button}, errors: {s.row_errors})")
        logger.info(f"⚠️ Data extraction failures: {s.extraction_failures}")
        logger.info(f"📊 Total loads for this run: {s.total}")
        logger.info(
            f"💾 Stored: {s.inserted} inserted, {s.updated} updated, {s.duplicates} already present, "
            f"{s.failed} failed, {s.backups} batches backed up"
        )


def run_scrape(*, headless: Optional[bool] = None) -> dict:
    return LoadScraper(get_engine(), headless=headless).run()


def main() -> int:
    ap = argparse.ArgumentParser(description="Scrape the Sylectus load board into the loads table")
    ap.add_argument("--headed", action="store_true", help="Show the browser window")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    result = run_scrape(headless=False if args.headed else None)
    print(result)
    return 1 if result.get("error") else 0


if __name__ == "__main__":
    sys.exit(main())
