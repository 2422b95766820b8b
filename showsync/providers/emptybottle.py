"""
Empty Bottle events widget: uses Playwright, since the list is rendered
client-side (https://www.emptybottle.com/).

  - Event cards: .eb-item
  - Title:       .title, may carry "*SOLD OUT*" / "*CANCELLED*" markers and a
                 "FREE MONDAY w/ " series prefix
  - Date:        .date, e.g. "Thu February 19" (no year)
  - Time:        .start-time, e.g. "9:00PM" (no doors time is listed)
  - Lineup:      .performing li; the first entry can be a series label
                 ("FREE MONDAY w") or "Series Name with Artist"
  - Ages:        .restrictions
  - Tickets:     a.buy-button, a TicketWeb url whose trailing number is the id:
                 https://www.ticketweb.com/event/dana-clickbait-cel-empty-bottle-tickets/14054484
  - Image:       background-image url() on .item-image-inner
"""

import re
from datetime import date
from typing import Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from showsync.errors import ParseError
from showsync.models import ProviderEvent, RawEvent
from showsync.providers.base import combine, infer_date, new_event, numeric_url_id, parse_clock, render_page

_CONTAINER = ".eb-item"
_MARKER_RE = re.compile(r"^\*(?:SOLD OUT|CANCELLED)\*\s*", re.IGNORECASE)
_SOLD_OUT_RE = re.compile(r"\*SOLD OUT\*\s*", re.IGNORECASE)
_CANCELLED_RE = re.compile(r"\*CANCELLED\*\s*", re.IGNORECASE)
_SERIES_STUB_RE = re.compile(r"^FREE\s+\w+\s+w$", re.IGNORECASE)
_SERIES_PREFIX_RE = re.compile(r"^FREE\s+\w+\s+w/\s*", re.IGNORECASE)
_SERIES_WITH_RE = re.compile(r"^.+?\swith\s+(.+)$", re.IGNORECASE)
_BACKGROUND_RE = re.compile(r"url\(([^)]+)\)")


def clean_title(title: str) -> tuple[str, bool, bool]:
    """Returns (title, is_sold_out, is_free) with markers and any series prefix removed."""
    sold_out = bool(_SOLD_OUT_RE.search(title))
    cleaned = _SOLD_OUT_RE.sub("", title)
    cleaned = _CANCELLED_RE.sub("", cleaned).strip()
    free = bool(re.match(r"FREE\b", cleaned, re.IGNORECASE))
    if free:
        cleaned = _SERIES_PREFIX_RE.sub("", cleaned).strip()
    return cleaned, sold_out, free


def clean_artists(names: list[str]) -> list[str]:
    artists = []
    for i, name in enumerate(names):
        name = _MARKER_RE.sub("", " ".join(name.split()))
        if i == 0:
            if _SERIES_STUB_RE.match(name):
                continue
            m = _SERIES_WITH_RE.match(name)
            if m:
                name = m.group(1).strip()
        if not name or re.match(r"FREE\s", name, re.IGNORECASE):
            continue
        artists.append(name)
    return artists


def _image(card) -> Optional[str]:
    inner = card.select_one(".item-image-inner")
    m = _BACKGROUND_RE.search(inner.get("style", "")) if inner else None
    return m.group(1).strip("'\"") if m else None


def _text(card, selector: str) -> str:
    el = card.select_one(selector)
    return el.get_text(" ", strip=True) if el else ""


def fetch(key: str, venue_cfg: dict, session: requests.Session) -> list[RawEvent]:
    url = venue_cfg.get("url", "")
    html = render_page(key, url, wait_for=_CONTAINER)
    soup = BeautifulSoup(html, "lxml")
    return [RawEvent(source_venue=key, payload=str(card), url=url) for card in soup.select(_CONTAINER)]


def parse(raw: RawEvent, venue_cfg: dict, today: Optional[date] = None) -> ProviderEvent:
    card = BeautifulSoup(raw.payload, "lxml")

    buy = card.select_one("a.buy-button")
    ticket_url = urljoin(raw.url or "", buy.get("href", "").strip()) if buy and buy.get("href") else ""
    if not ticket_url:
        raise ParseError(f"{raw.source_venue}: event card has no buy button")

    date_text = _text(card, ".date")
    day = infer_date(date_text, today)
    if day is None:
        raise ParseError(f"{raw.source_venue}: unreadable date '{date_text}'")

    raw_title = _text(card, ".title")
    title, sold_out, free = clean_title(raw_title)
    artists = clean_artists([li.get_text(" ", strip=True) for li in card.select(".performing li")])
    title = title or (artists[0] if artists else raw_title)

    return new_event(
        raw,
        venue_cfg,
        start_local=combine(day, parse_clock(_text(card, ".start-time"))),
        source_event_id=numeric_url_id(ticket_url),
        title=title or None,
        artist_names=artists or ([title] if title else []),
        price="Free" if free else None,
        age_requirement=_text(card, ".restrictions") or None,
        ticket_url=ticket_url,
        image_url=_image(card),
        is_sold_out=sold_out,
    )
