"""
SeeTickets list widget embedded on a venue site: uses Playwright, since the
widget is rendered client-side (e.g. https://therebellounge.com/events/).

  - Event cards: .seetickets-list-event-container
  - Title/URL:   p.title a  (the href is the SeeTickets ticket page, whose
                 numeric path segment is the event id:
                 https://wl.seetickets.us/event/a-wilhelm-scream/670245?afflky=...)
  - Headliners:  p.headliners (proper case, co-headliners comma separated)
  - Support:     p.supporting-talent, e.g. "with X, Y and Z"
  - Date:        p.date, e.g. "Thu Feb 19" (no year)
  - Times:       p.doortime-showtime, e.g. "Doors at 7:00 PM / Show at 8:00 PM"
  - Price/ages:  span.price, span.ages
  - Sold-out:    "sold out" text inside .buy-and-share-block

The year is the current one unless that puts the date more than two months
in the past, in which case the listing is for next year.
"""

import re
from datetime import date
from typing import Optional

import requests
from bs4 import BeautifulSoup

from showsync.errors import ParseError
from showsync.models import ProviderEvent, RawEvent
from showsync.providers.base import (
    combine,
    format_clock,
    infer_date,
    new_event,
    numeric_url_id,
    parse_clock,
    render_page,
)

_CONTAINER = ".seetickets-list-event-container"
_DOORS_RE = re.compile(r"doors\s+at\s+(\d{1,2}:\d{2}\s*[ap]m)", re.IGNORECASE)
_SHOW_RE = re.compile(r"show\s+at\s+(\d{1,2}:\d{2}\s*[ap]m)", re.IGNORECASE)
_AGES_RE = re.compile(r"(\d{1,2})\+")
_SPECIAL_GUESTS_RE = re.compile(r"^special\s+guests?$", re.IGNORECASE)
_AND_RE = re.compile(r"\s+and\s+", re.IGNORECASE)


def _clean_name(name: str) -> str:
    return " ".join(name.split()).strip(" ,;")


def lineup(headliners: str, supporting: Optional[str] = None) -> list[str]:
    artists = [_clean_name(n) for n in headliners.split(",")]
    if supporting:
        rest = re.sub(r"^with\s+", "", supporting.strip(), flags=re.IGNORECASE)
        for part in rest.split(","):
            artists.extend(_clean_name(n) for n in _AND_RE.split(part))
    return [a for a in artists if a and not _SPECIAL_GUESTS_RE.match(a)]


def _text(card, selector: str) -> str:
    el = card.select_one(selector)
    return el.get_text(" ", strip=True) if el else ""


def _age(text: str) -> Optional[str]:
    if not text:
        return None
    if re.search(r"all\s*ages?", text, re.IGNORECASE):
        return "All Ages"
    m = _AGES_RE.search(text)
    return f"{m.group(1)}+" if m else text


def fetch(key: str, venue_cfg: dict, session: requests.Session) -> list[RawEvent]:
    url = venue_cfg.get("url", "")
    html = render_page(key, url, wait_for=_CONTAINER)
    soup = BeautifulSoup(html, "lxml")
    return [RawEvent(source_venue=key, payload=str(card), url=url) for card in soup.select(_CONTAINER)]


def parse(raw: RawEvent, venue_cfg: dict, today: Optional[date] = None) -> ProviderEvent:
    card = BeautifulSoup(raw.payload, "lxml")

    link = card.select_one("p.title a")
    ticket_url = link.get("href", "").strip() if link else ""
    if not ticket_url:
        raise ParseError(f"{raw.source_venue}: event card has no ticket link")
    title = link.get_text(" ", strip=True)
    headliners = _text(card, "p.headliners") or title

    date_text = _text(card, "p.date")
    day = infer_date(date_text, today)
    if day is None:
        raise ParseError(f"{raw.source_venue}: unreadable date '{date_text}'")

    times = _text(card, "p.doortime-showtime")
    doors = _DOORS_RE.search(times)
    show = _SHOW_RE.search(times)

    price = _text(card, "span.price")
    if price and not price.startswith("$"):
        price = f"${price}"

    img = card.select_one("img")
    buy_block = _text(card, ".buy-and-share-block")

    return new_event(
        raw,
        venue_cfg,
        start_local=combine(day, parse_clock(show.group(1)) if show else None),
        source_event_id=numeric_url_id(ticket_url),
        title=headliners or None,
        artist_names=lineup(headliners, _text(card, "p.supporting-talent")),
        price=price or None,
        age_requirement=_age(_text(card, "span.ages")),
        ticket_url=ticket_url,
        image_url=(img.get("src") or None) if img else None,
        doors_time=format_clock(parse_clock(doors.group(1))) if doors else None,
        is_sold_out=bool(re.search(r"sold\s*out", buy_block, re.IGNORECASE)),
    )
