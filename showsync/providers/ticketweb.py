"""
TicketWeb WordPress calendar: uses Playwright (headless Chromium).

Calendar page: e.g. https://www.valleybarphx.com/calendar/
  - Events:  window.all_events, filled in by the calendar script; each entry has
             id, title, start ("2026-01-30" or "2026-01-30 20:00:00"),
             displayTime ("8:00 pm"), doors ("Doors: 7:00 pm") and imageUrl
             (an <img> tag).
  - Tickets: [id^="tw-event-dialog-<id>"] a[href*="ticketweb"] in the page.
  - Titles are HTML-entity encoded and often in capitals ("THE NATIONAL");
    shouting titles are title-cased.
"""

import html
import re
from typing import Optional

import requests
from bs4 import BeautifulSoup
from dateutil import parser as dateparser

from showsync.canonicalize import split_artists
from showsync.errors import FetchError, ParseError
from showsync.models import ProviderEvent, RawEvent
from showsync.providers.base import combine, format_clock, new_event, parse_clock, render_page

_EXTRACT_JS = """
() => {
  const tickets = {};
  document.querySelectorAll('[id^="tw-event-dialog-"] a[href*="ticketweb"]').forEach((a) => {
    const dialog = a.closest('[id^="tw-event-dialog-"]');
    if (dialog) tickets[dialog.id.replace('tw-event-dialog-', '')] = a.href;
  });
  return { events: window.all_events || [], tickets };
}
"""

_LOWERCASE_WORDS = {"a", "an", "the", "and", "but", "or", "for", "nor", "on", "at", "to", "by", "with", "of", "in"}
_UPPERCASE_RE = re.compile(r"^(dj|mc|vs\.?|ft\.?|feat\.?)$", re.IGNORECASE)
_TOUR_SUFFIX_RE = re.compile(r"\s*[–-]\s*[^–-]*tour.*$", re.IGNORECASE)
_SOLD_OUT_RE = re.compile(r"\s*[–-]?\s*\(?sold.?out!?\)?\s*$", re.IGNORECASE)
_CANCELLED_RE = re.compile(r"^\s*(?:cancel+ed|postponed)\s*[:–-]\s*", re.IGNORECASE)


def title_case(text: str, force: bool = False) -> str:
    """Title-case `text` unless it is already mostly lower case (or `force`)."""
    if not text:
        return text
    if not force:
        upper = sum(1 for c in text if "A" <= c <= "Z")
        lower = sum(1 for c in text if "a" <= c <= "z")
        if lower > upper:
            return text

    words = []
    for i, word in enumerate(text.split(" ")):
        if _UPPERCASE_RE.match(word):
            words.append(word.upper())
            continue
        word = word.lower()
        if i > 0 and word in _LOWERCASE_WORDS:
            words.append(word)
            continue
        words.append("-".join(part[:1].upper() + part[1:] for part in word.split("-")))
    return " ".join(words)


def _image_src(img_html: Optional[str]) -> Optional[str]:
    if not img_html:
        return None
    img = BeautifulSoup(img_html, "lxml").find("img")
    return img.get("src") if img else None


def fetch(key: str, venue_cfg: dict, session: requests.Session) -> list[RawEvent]:
    url = venue_cfg.get("url", "")
    data = render_page(key, url, wait_for="() => typeof window.all_events !== 'undefined'", evaluate=_EXTRACT_JS)
    if not isinstance(data, dict):
        raise FetchError(key, f"calendar data missing from {url}")
    tickets = data.get("tickets") or {}
    raws = []
    for event in data.get("events") or []:
        event = dict(event)
        event["ticketUrl"] = tickets.get(str(event.get("id")))
        raws.append(RawEvent(source_venue=key, payload=event, url=url))
    return raws


def parse(raw: RawEvent, venue_cfg: dict) -> ProviderEvent:
    data = raw.payload
    start_raw = str(data.get("start") or "").strip()
    if not start_raw:
        raise ParseError(f"{raw.source_venue}: event {data.get('id', '?')} has no start")
    try:
        start = dateparser.parse(start_raw)
    except (ValueError, OverflowError) as exc:
        raise ParseError(f"{raw.source_venue}: bad start '{start_raw}'") from exc

    show_time = parse_clock(data.get("displayTime"))
    if show_time is None and (start.hour or start.minute):
        show_time = start.time()

    title = html.unescape(data.get("title") or "").strip()
    is_cancelled = bool(_CANCELLED_RE.search(title))
    title = _CANCELLED_RE.sub("", title)
    is_sold_out = bool(_SOLD_OUT_RE.search(title))
    title = title_case(_SOLD_OUT_RE.sub("", title).strip())
    lineup = _TOUR_SUFFIX_RE.sub("", title).strip() or title

    return new_event(
        raw,
        venue_cfg,
        start_local=combine(start.date(), show_time),
        source_event_id=str(data.get("id") or ""),
        title=title or None,
        artist_names=split_artists(lineup) if lineup else [],
        age_requirement=(data.get("ageRestriction") or None),
        ticket_url=data.get("ticketUrl") or None,
        image_url=_image_src(data.get("imageUrl")),
        doors_time=format_clock(parse_clock(data.get("doors"))),
        is_sold_out=is_sold_out,
        is_cancelled=is_cancelled,
    )
