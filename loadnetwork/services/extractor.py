"""
Row extractor for the Sylectus posted-loads board.

The listing lives in an iframe; each row's broker email and notes only show up in a
bid popup window. Selectors below are pinned to the current portal markup and are
expected to need maintenance when Sylectus changes its pages.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from loadnetwork.core.config import settings
from loadnetwork.schemas.load import NOT_AVAILABLE, RawRow

logger = logging.getLogger("extractor")

IFRAME_SELECTOR = 'iframe[id="iframe1"]'
TABLE_ROW_SELECTOR = "tbody > tr"
BROKER_LINK_SELECTOR = 'td:nth-child(1) a.nav[onclick*="promabprofile"]'
BID_BUTTON_SELECTOR = "td:nth-child(10) > input"

EMAIL_SELECTOR_ON_POPUP = (
    "#aspnetForm > div.popup-body > div.popup-content > div.popup-child.left-frame"
    " > div.trip-info-container > div:nth-child(1) > div:nth-child(1) > p:nth-child(2) > a"
)
NOTES_SELECTOR_ON_POPUP = (
    "#aspnetForm > div.popup-body > div.popup-content > div.popup-child.left-frame"
    " > div.trip-info-container > div:nth-child(2) > p"
)

EXPIRED_MARKERS = (
    "expired",
    "no longer accepting",
    "bid period has ended",
    "this order has expired",
)

NOTES_LABEL = "Notes:"
EMPTY_NOTES = "Notes: N/A"

_COUNT_ROWS_JS = "(rowSelector) => document.querySelectorAll(rowSelector).length"

_READ_ROW_JS = """
([index, rowSelector, brokerSelector]) => {
    const row = document.querySelectorAll(rowSelector)[index];
    if (!row) return null;
    const cell = (n) => row.querySelector(`td:nth-child(${n})`)?.innerText || '';
    const broker = row.querySelector(brokerSelector);
    return {
        origin_and_pu: cell(4),
        destination_and_del: cell(5),
        truck_and_miles: cell(7),
        pieces_and_weight: cell(8),
        broker_name: broker ? broker.innerText.trim() : '',
    };
}
"""

_HAS_BID_BUTTON_JS = """
([index, rowSelector, bidSelector]) => {
    const row = document.querySelectorAll(rowSelector)[index];
    return !!(row && row.querySelector(bidSelector));
}
"""

_CLICK_BID_BUTTON_JS = """
([index, rowSelector, bidSelector]) => {
    const row = document.querySelectorAll(rowSelector)[index];
    const button = row && row.querySelector(bidSelector);
    if (!button) return false;
    button.click();
    return true;
}
"""


class ListingUnavailableError(RuntimeError):
    """The load board frame never showed up. Fatal to a scrape run."""


def accept_dialog(dialog) -> None:
    """Auto-accept alert/confirm dialogs so they never block the run."""
    try:
        dialog.accept()
    except PlaywrightError as e:
        logger.debug(f"Dialog already handled: {e}")


def open_listing_frame(page, frame_timeout_ms: Optional[int] = None, rows_timeout_ms: Optional[int] = None):
    """Wait for the listing iframe and its first table row; return the frame."""
    frame_timeout_ms = settings.FRAME_TIMEOUT_MS if frame_timeout_ms is None else frame_timeout_ms
    rows_timeout_ms = settings.ROWS_TIMEOUT_MS if rows_timeout_ms is None else rows_timeout_ms
    handle = page.wait_for_selector(IFRAME_SELECTOR, timeout=frame_timeout_ms)
    frame = handle.content_frame() if handle else None
    if frame is None:
        raise ListingUnavailableError("Could not find the load board iframe")
    frame.wait_for_selector(TABLE_ROW_SELECTOR, timeout=rows_timeout_ms)
    return frame


def count_rows(frame) -> int:
    return frame.evaluate(_COUNT_ROWS_JS, TABLE_ROW_SELECTOR)


def read_row(frame, index: int) -> Optional[RawRow]:
    """Cell text for row `index`; None when the row is gone or the frame errored."""
    try:
        data = frame.evaluate(_READ_ROW_JS, [index, TABLE_ROW_SELECTOR, BROKER_LINK_SELECTOR])
    except PlaywrightError as e:
        logger.error(f"Error getting row data for index {index}: {e}")
        return None
    if not data:
        return None
    return RawRow(**data)


def is_expired(popup) -> bool:
    try:
        if popup.is_closed():
            return False
        text = popup.inner_text("body").lower()
    except PlaywrightError as e:
        logger.warning(f"⚠️ Could not check expiration status: {e}")
        return False
    return any(marker in text for marker in EXPIRED_MARKERS)


def read_field(
    popup,
    selector: str,
    attempts: Optional[int] = None,
    timeout_ms: Optional[int] = None,
) -> str:
    """
    Read one popup field with bounded retries. Empty text or 'N/A' counts as a miss.
    Returns NOT_AVAILABLE when every attempt misses or the popup went away.
    """
    attempts = settings.FIELD_ATTEMPTS if attempts is None else attempts
    timeout_ms = settings.FIELD_TIMEOUT_MS if timeout_ms is None else timeout_ms
    for _ in range(attempts):
        if popup.is_closed():
            return NOT_AVAILABLE
        try:
            popup.wait_for_selector(selector, timeout=timeout_ms)
            text = (popup.inner_text(selector, timeout=timeout_ms) or "").strip()
        except PlaywrightTimeoutError:
            continue
        except PlaywrightError as e:
            message = str(e).lower()
            if "detached" in message or "execution context" in message:
                return NOT_AVAILABLE
            continue
        if text and text != NOT_AVAILABLE:
            return text
    return NOT_AVAILABLE


@dataclass(frozen=True)
class DetailFields:
    email: str
    notes: str

    @property
    def likely_failure(self) -> bool:
        """Both fields missing usually means the popup never rendered, not an empty posting."""
        return self.email == NOT_AVAILABLE and self.notes in (NOT_AVAILABLE, EMPTY_NOTES)


def extract_detail(popup, attempts: Optional[int] = None, timeout_ms: Optional[int] = None) -> DetailFields:
    email = read_field(popup, EMAIL_SELECTOR_ON_POPUP, attempts, timeout_ms)
    notes = read_field(popup, NOTES_SELECTOR_ON_POPUP, attempts, timeout_ms)
    if notes.startswith(NOTES_LABEL) and not notes[len(NOTES_LABEL):].strip():
        notes = EMPTY_NOTES
    return DetailFields(email=email, notes=notes)


class DetailOutcome(str, enum.Enum):
    OK = "ok"
    NO_BID_BUTTON = "no_bid_button"
    NO_POPUP = "no_popup"
    EXPIRED = "expired"


class DetailExtractor:
    """
    Opens bid popups one at a time. Any popup still open is closed before the next click,
    so there is never more than one outstanding wait for a new page.
    """

    def __init__(
        self,
        context,
        popup_timeout_ms: Optional[int] = None,
        field_timeout_ms: Optional[int] = None,
        field_attempts: Optional[int] = None,
        settle_ms: int = 800,
    ):
        self.context = context
        self.popup_timeout_ms = settings.POPUP_TIMEOUT_MS if popup_timeout_ms is None else popup_timeout_ms
        self.field_timeout_ms = settings.FIELD_TIMEOUT_MS if field_timeout_ms is None else field_timeout_ms
        self.field_attempts = settings.FIELD_ATTEMPTS if field_attempts is None else field_attempts
        self.settle_ms = settle_ms
        self.current_popup = None

    def close_popup(self) -> None:
        popup, self.current_popup = self.current_popup, None
        if popup is None or popup.is_closed():
            return
        try:
            popup.close()
        except PlaywrightError as e:
            logger.debug(f"Popup close failed: {e}")

    def open_detail(self, frame, index: int) -> Tuple[DetailOutcome, Optional[object]]:
        """Click the row's bid button and wait (bounded) for the popup. Timeout -> NO_POPUP."""
        self.close_popup()
        args = [index, TABLE_ROW_SELECTOR, BID_BUTTON_SELECTOR]
        if not frame.evaluate(_HAS_BID_BUTTON_JS, args):
            return DetailOutcome.NO_BID_BUTTON, None
        try:
            with self.context.expect_page(timeout=self.popup_timeout_ms) as page_info:
                frame.evaluate(_CLICK_BID_BUTTON_JS, args)
            popup = page_info.value
        except PlaywrightTimeoutError:
            return DetailOutcome.NO_POPUP, None
        popup.on("dialog", accept_dialog)
        self.current_popup = popup
        popup.wait_for_timeout(self.settle_ms)
        return DetailOutcome.OK, popup

    def fetch(self, frame, index: int) -> Tuple[DetailOutcome, Optional[DetailFields]]:
        outcome, popup = self.open_detail(frame, index)
        if outcome is not DetailOutcome.OK:
            return outcome, None
        if is_expired(popup):
            return DetailOutcome.EXPIRED, None
        return DetailOutcome.OK, extract_detail(popup, self.field_attempts, self.field_timeout_ms)
