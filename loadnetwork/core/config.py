import os
from pathlib import Path

from dotenv import load_dotenv

# config.py is in loadnetwork/core/, project root is two levels up
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(_BASE_DIR / ".env")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    APP_ENV = os.getenv("APP_ENV", "development")
    DATABASE_URL = os.getenv("DATABASE_URL")

    # Sylectus portal credentials
    SYLECTUS_CORP_ID = os.getenv("SYLECTUS_CORP_ID")
    SYLECTUS_USERNAME = os.getenv("SYLECTUS_USERNAME")
    SYLECTUS_PASSWORD = os.getenv("SYLECTUS_PASSWORD")

    # Saved portal session (cookies). Freshness comes from the file mtime.
    PORTAL_COOKIES_PATH = os.getenv("PORTAL_COOKIES_PATH", "cookies.json")
    PORTAL_SESSION_MINUTES = int(os.getenv("PORTAL_SESSION_MINUTES", "45"))
    SCRAPER_HEADLESS = _env_bool("SCRAPER_HEADLESS", "true")

    # Portal timeouts (milliseconds)
    NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000"))
    PRE_SUBMIT_PAUSE_MS = int(os.getenv("PRE_SUBMIT_PAUSE_MS", "500"))
    FRAME_TIMEOUT_MS = int(os.getenv("FRAME_TIMEOUT_MS", "20000"))
    ROWS_TIMEOUT_MS = int(os.getenv("ROWS_TIMEOUT_MS", "15000"))
    POPUP_TIMEOUT_MS = int(os.getenv("POPUP_TIMEOUT_MS", "8000"))
    FIELD_TIMEOUT_MS = int(os.getenv("FIELD_TIMEOUT_MS", "2000"))
    FIELD_ATTEMPTS = int(os.getenv("FIELD_ATTEMPTS", "3"))

    # Batch sync
    SYNC_BATCH_SIZE = int(os.getenv("SYNC_BATCH_SIZE", "25"))
    INSERT_CHUNK_SIZE = int(os.getenv("INSERT_CHUNK_SIZE", "10"))
    INSERT_PAUSE_SECONDS = float(os.getenv("INSERT_PAUSE_SECONDS", "1.0"))
    FAILED_BATCH_DIR = os.getenv("FAILED_BATCH_DIR", ".")

    # Store retries: linear backoff, base * attempt
    DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BASE_SECONDS = float(os.getenv("DB_RETRY_BASE_SECONDS", "1.0"))

    # Never auto-delete this many stale loads or more in one run
    STALE_DELETE_CEILING = int(os.getenv("STALE_DELETE_CEILING", "500"))

    NOTIFIER_WINDOW_MINUTES = int(os.getenv("NOTIFIER_WINDOW_MINUTES", "5"))

    # SMTP for load alerts and bid inquiries
    EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.mailtrap.io")
    EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
    EMAIL_USER = os.getenv("EMAIL_USER")
    EMAIL_PASS = os.getenv("EMAIL_PASS")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "Load Network <alerts@loadnetwork.com>")
    BIDS_FROM = os.getenv("BIDS_FROM", "Load Network Bids <bids@loadnetwork.com>")
    BASE_URL = os.getenv("BASE_URL", "https://loadnetwork.com")


settings = Settings()
