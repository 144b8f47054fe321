"""
Portal session manager: reuse saved Sylectus cookies when they are fresh, otherwise log in.

Protocol: TRY_CACHED -> VALIDATE -> REUSE, with FULL_LOGIN as the fallback from any step.
A cookie file that will not parse is deleted; one that is merely old is ignored.
"""
import enum
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from playwright.sync_api import Error as PlaywrightError

from loadnetwork.core.config import settings
from loadnetwork.services.extractor import ListingUnavailableError, open_listing_frame

logger = logging.getLogger("portal_session")

LOGIN_URL = "https://www4.sylectus.com/Login.aspx?logout=true"
LOAD_BOARD_URL = "https://www4.sylectus.com/Main.aspx?page=II14_managepostedloads.asp?loadboard=True"

CORP_ID_INPUT_SELECTOR = "#ctl00_bodyPlaceholder_corporateIdField"
CONTINUE_BUTTON_SELECTOR = "#ctl00_bodyPlaceholder_corpLoginButton"
USERNAME_INPUT_SELECTOR = "#select2-ctl00_bodyPlaceholder_userList-container"
PASSWORD_INPUT_SELECTOR = "#ctl00_bodyPlaceholder_userPasswordField"
LOGIN_BUTTON_SELECTOR = "#ctl00_bodyPlaceholder_userLoginButton"


class PortalLoginError(RuntimeError):
    """Login form unreachable or credentials could not be submitted. Fatal to a run."""


class SessionState(str, enum.Enum):
    TRY_CACHED = "try_cached"
    VALIDATE = "validate"
    REUSE = "reuse"
    FULL_LOGIN = "full_login"


@dataclass(frozen=True)
class SessionTimeouts:
    frame_ms: int = 20000
    rows_ms: int = 15000
    navigation_ms: int = 30000
    pre_submit_ms: int = 500

    @classmethod
    def from_settings(cls) -> "SessionTimeouts":
        return cls(
            frame_ms=settings.FRAME_TIMEOUT_MS,
            rows_ms=settings.ROWS_TIMEOUT_MS,
            navigation_ms=settings.NAVIGATION_TIMEOUT_MS,
            pre_submit_ms=settings.PRE_SUBMIT_PAUSE_MS,
        )


@dataclass(frozen=True)
class PortalCredentials:
    corp_id: Optional[str]
    username: Optional[str]
    password: Optional[str]

    @classmethod
    def from_settings(cls) -> "PortalCredentials":
        return cls(settings.SYLECTUS_CORP_ID, settings.SYLECTUS_USERNAME, settings.SYLECTUS_PASSWORD)

    @property
    def complete(self) -> bool:
        return bool(self.corp_id and self.username and self.password)


class PortalSession:
    def __init__(
        self,
        credentials: Optional[PortalCredentials] = None,
        cookies_path: Optional[str] = None,
        max_age_minutes: Optional[int] = None,
        timeouts: Optional[SessionTimeouts] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.credentials = credentials or PortalCredentials.from_settings()
        self.cookies_path = Path(cookies_path or settings.PORTAL_COOKIES_PATH)
        self.max_age_seconds = (settings.PORTAL_SESSION_MINUTES if max_age_minutes is None else max_age_minutes) * 60
        self.timeouts = timeouts or SessionTimeouts.from_settings()
        self.clock = clock

    def acquire(self, context, page) -> SessionState:
        """
        Leave `page` authenticated and on the load board.
        Returns the terminal state: REUSE (saved cookies worked) or FULL_LOGIN.
        """
        logger.info("Checking for existing session...")
        state = SessionState.TRY_CACHED
        while True:
            if state is SessionState.TRY_CACHED:
                state = SessionState.VALIDATE if self._apply_saved_cookies(context) else SessionState.FULL_LOGIN
            elif state is SessionState.VALIDATE:
                state = SessionState.REUSE if self._validate(page) else SessionState.FULL_LOGIN
            elif state is SessionState.REUSE:
                logger.info("✅ Session is active!")
                return state
            else:
                self._full_login(context, page)
                return state

    def load_saved_cookies(self) -> Optional[List[dict]]:
        """Fresh, parseable cookies or None. Corrupt files are removed."""
        if not self.cookies_path.exists():
            logger.info("ℹ️ No cookie file found. Proceeding with full login.")
            return None
        age = self.clock() - self.cookies_path.stat().st_mtime
        if age >= self.max_age_seconds:
            logger.info(f"⚠️ Cookies are {age / 60:.0f} minutes old. Session considered expired.")
            return None
        try:
            cookies = json.loads(self.cookies_path.read_text(encoding="utf-8"))
            if not isinstance(cookies, list):
                raise ValueError("cookie file is not a list")
        except (OSError, ValueError) as e:
            logger.warning(f"ℹ️ Error reading cookies, deleting cookie file: {e}")
            self._delete_cookie_file()
            return None
        return cookies

    def save_cookies(self, context) -> None:
        logger.info("💾 Saving new session cookies...")
        try:
            self.cookies_path.write_text(json.dumps(context.cookies(), indent=2), encoding="utf-8")
        except OSError as e:
            # Next run just logs in again
            logger.warning(f"⚠️ Could not save cookies to {self.cookies_path}: {e}")
            return
        logger.info("🍪 Cookies saved.")

    def _delete_cookie_file(self) -> None:
        try:
            self.cookies_path.unlink()
            logger.info("🗑️ Corrupted cookie file deleted.")
        except OSError as e:
            logger.warning(f"⚠️ Could not delete cookie file: {e}")

    def _apply_saved_cookies(self, context) -> bool:
        cookies = self.load_saved_cookies()
        if not cookies:
            return False
        logger.info("🍪 Found recent cookies. Attempting to use session...")
        try:
            context.add_cookies(cookies)
        except PlaywrightError as e:
            logger.warning(f"⚠️ Saved cookies rejected by the browser: {e}")
            self._delete_cookie_file()
            return False
        return True

    def _validate(self, page) -> bool:
        logger.info("🎯 Navigating directly to load board to test session...")
        try:
            page.goto(LOAD_BOARD_URL, wait_until="networkidle", timeout=self.timeouts.navigation_ms)
            open_listing_frame(page, self.timeouts.frame_ms, self.timeouts.rows_ms)
        except (PlaywrightError, ListingUnavailableError) as e:
            logger.info(f"⚠️ Saved session is invalid: {e}")
            return False
        return True

    def _full_login(self, context, page) -> None:
        if not self.credentials.complete:
            raise PortalLoginError("SYLECTUS_CORP_ID, SYLECTUS_USERNAME and SYLECTUS_PASSWORD must be set")
        nav_ms = self.timeouts.navigation_ms
        logger.info("🔐 Logging in from scratch...")
        try:
            page.goto(LOGIN_URL, wait_until="domcontentloaded", timeout=nav_ms)
            page.fill(CORP_ID_INPUT_SELECTOR, self.credentials.corp_id)
            with page.expect_navigation(wait_until="domcontentloaded", timeout=nav_ms):
                page.click(CONTINUE_BUTTON_SELECTOR)

            # The user picker is a select2 widget: open it, type, pick the match
            page.click(USERNAME_INPUT_SELECTOR)
            page.keyboard.type(self.credentials.username)
            page.keyboard.press("Enter")
            page.fill(PASSWORD_INPUT_SELECTOR, self.credentials.password)
            page.wait_for_timeout(self.timeouts.pre_submit_ms)

            with page.expect_navigation(wait_until="domcontentloaded", timeout=nav_ms):
                page.click(LOGIN_BUTTON_SELECTOR)
        except PlaywrightError as e:
            raise PortalLoginError(f"Portal login failed: {e}") from e

        self.save_cookies(context)
        try:
            page.goto(LOAD_BOARD_URL, wait_until="domcontentloaded", timeout=nav_ms)
        except PlaywrightError as e:
            raise PortalLoginError(f"Could not open load board after login: {e}") from e
