"""
Helpers shared by the providers: page fetching (plain HTTP or a headless
browser), venue fields from a config section, and date/time parsing.
"""

import re
from datetime import date, datetime, time
from typing import Optional

import requests
from dateutil import parser as dateparser
from dateutil.relativedelta import relativedelta

from showsync.errors import FetchError, ParseError
from showsync.models import ProviderEvent, RawEvent

# Used when a source lists a date but no start time
DEFAULT_SHOW_TIME = time(20, 0)

_CLOCK_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?", re.IGNORECASE)
_TRAILING_ID_RE = re.compile(r"/(\d+)/?(?:\?|$)")


def fetch_html(session: requests.Session, source: str, url: str, timeout: float = 30) -> str:
    if not url:
        raise FetchError(source, "no url configured")
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(source, f"GET {url} failed: {exc}") from exc
    return resp.text


def render_page(source: str, url: str, wait_for: str, timeout_ms: int = 60000, evaluate: Optional[str] = None):
    """
    Load `url` in headless Chromium and wait for `wait_for`, a JS expression
    (when `evaluate` is given) or a CSS selector.

    Returns the rendered HTML, or the result of evaluating `evaluate` in the page.
    """
    if not url:
        raise FetchError(source, "no url configured")
    try:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright
    except ImportError as exc:
        raise FetchError(source, "playwright is not installed (pip install playwright && playwright install chromium)") from exc

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            page = browser.new_page()
            try:
                page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
                if evaluate is not None:
                    page.wait_for_function(wait_for, timeout=timeout_ms // 2, polling=500)
                    return page.evaluate(evaluate)
                page.wait_for_selector(wait_for, state="attached", timeout=timeout_ms // 2)
                return page.content()
            finally:
                browser.close()
    except PlaywrightError as exc:
        raise FetchError(source, f"rendering {url} failed: {exc}") from exc


def parse_clock(text: Optional[str]) -> Optional[time]:
    """'8:00 pm' / '8pm' / '7:30 P.M.' -> time; None when no clock time is found."""
    if not text:
        return None
    m = _CLOCK_RE.search(text)
    if not m:
        return None
    hour = int(m.group(1))
    minute = int(m.group(2) or 0)
    if hour > 12 or minute > 59:
        return None
    if m.group(3).lower() == "p" and hour != 12:
        hour += 12
    elif m.group(3).lower() == "a" and hour == 12:
        hour = 0
    return time(hour, minute)


def format_clock(value: Optional[time]) -> Optional[str]:
    if value is None:
        return None
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'PM' if value.hour >= 12 else 'AM'}"


def combine(day: date, at: Optional[time]) -> datetime:
    return datetime.combine(day, at or DEFAULT_SHOW_TIME)


def infer_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """'Thu Feb 19' -> that day this year, or next year if this year's is over two months gone."""
    today = today or date.today()
    cleaned = re.sub(r"^[A-Za-z]+\s+", "", text.strip())
    if not cleaned:
        return None
    cutoff = today.replace(day=1) - relativedelta(months=2)
    for year in (today.year, today.year + 1):
        try:
            parsed = dateparser.parse(f"{cleaned} {year}").date()
        except (ValueError, OverflowError):
            continue
        if year == today.year and parsed < cutoff:
            continue
        return parsed
    return None


def numeric_url_id(url: str) -> str:
    """The trailing numeric path segment of a ticket url, e.g. .../event/a-wilhelm-scream/670245?afflky=x -> 670245."""
    m = _TRAILING_ID_RE.search(url)
    return m.group(1) if m else url


def new_event(raw: RawEvent, venue_cfg: dict, start_local: datetime, source_event_id: str, **fields) -> ProviderEvent:
    """A ProviderEvent carrying the venue fields from the source's config section."""
    if not source_event_id:
        raise ParseError(f"{raw.source_venue}: event has no id")
    return ProviderEvent(
        start_local=start_local,
        venue_name=venue_cfg.get("name", ""),
        venue_city=venue_cfg.get("city", ""),
        venue_state=venue_cfg.get("state", ""),
        venue_address=venue_cfg.get("address"),
        source_venue=raw.source_venue,
        source_event_id=str(source_event_id),
        source_url=raw.url,
        **fields,
    )
