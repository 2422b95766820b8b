"""
Listing pages that embed schema.org MusicEvent JSON-LD blocks
(e.g. Arizona Financial Theatre's /shows page).

  - Events: <script type="application/ld+json"> holding a MusicEvent object or
    a list of them; other @types and malformed blocks are ignored.
  - Id:     Ticketmaster event id from a url ending in /event/<ID>, otherwise a
            stable hash of name|startDate.
  - Date:   startDate, e.g. "2026-02-07T19:00:00-07:00" (venue wall clock kept).
  - Artists: performer names; without performers, the name with any
            " - The Something Tour" suffix removed.
"""

import json
import logging
import re
from typing import Optional

import requests
from bs4 import BeautifulSoup
from dateutil import parser as dateparser

from showsync.errors import ParseError
from showsync.models import ProviderEvent, RawEvent
from showsync.providers.base import combine, fetch_html, format_clock, new_event

log = logging.getLogger(__name__)

_TM_EVENT_RE = re.compile(r"/event/([A-Za-z0-9]+)$")
_TOUR_SUFFIX_RE = re.compile(r"\s*[-–—]\s*(?:the\s+)?[^-–—]*tour.*$", re.IGNORECASE)
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(_BASE36[r])
    return "".join(reversed(digits))


def _name_date_hash(name: str, start: str) -> str:
    h = 0
    for ch in f"{name}|{start}":
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return f"jsonld-{_base36(abs(h))}"


def event_id(data: dict) -> str:
    m = _TM_EVENT_RE.search(data.get("url") or "")
    if m:
        return m.group(1)
    return _name_date_hash(data.get("name") or "", data.get("startDate") or "")


def artists(data: dict) -> list[str]:
    performers = data.get("performer") or []
    if isinstance(performers, dict):
        performers = [performers]
    names = [(p.get("name") or "").strip() for p in performers if isinstance(p, dict)]
    names = [n for n in names if n]
    if names:
        return names

    title = (data.get("name") or "").strip()
    cleaned = _TOUR_SUFFIX_RE.sub("", title).strip()
    return [cleaned or title] if title else []


def _ticket_url(data: dict) -> Optional[str]:
    return data.get("url") or offer(data).get("url")


def offer(data: dict) -> dict:
    offers = data.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    return offers if isinstance(offers, dict) else {}


def _price(data: dict) -> Optional[str]:
    offers = offer(data)
    low = offers.get("lowPrice") or offers.get("price")
    high = offers.get("highPrice")
    if low is None:
        return None
    return f"${low} - ${high}" if high and high != low else f"${low}"


def image(data: dict) -> Optional[str]:
    image = data.get("image")
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url")
    return image or None


def music_events(html: str) -> list[dict]:
    return ld_events(html, ("MusicEvent",))


def ld_events(html: str, types: tuple[str, ...]) -> list[dict]:
    """Every JSON-LD object in `html` whose @type is one of `types`."""
    soup = BeautifulSoup(html, "lxml")
    found = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            log.debug("Skipping malformed JSON-LD block")
            continue
        items = data if isinstance(data, list) else [data]
        found.extend(i for i in items if isinstance(i, dict) and i.get("@type") in types)
    return found


def fetch(key: str, venue_cfg: dict, session: requests.Session) -> list[RawEvent]:
    url = venue_cfg.get("url", "")
    html = fetch_html(session, key, url)
    return [RawEvent(source_venue=key, payload=data, url=url) for data in music_events(html)]


def parse(raw: RawEvent, venue_cfg: dict) -> ProviderEvent:
    data = raw.payload
    start_raw = data.get("startDate")
    if not start_raw:
        raise ParseError(f"{raw.source_venue}: '{data.get('name', '?')}' has no startDate")
    try:
        start = dateparser.isoparse(start_raw)
    except (ValueError, OverflowError) as exc:
        raise ParseError(f"{raw.source_venue}: bad startDate '{start_raw}'") from exc
    if "T" not in start_raw:
        start = combine(start.date(), None)

    doors = None
    if data.get("doorTime"):
        try:
            doors = format_clock(dateparser.isoparse(data["doorTime"]).time())
        except (ValueError, OverflowError):
            doors = None

    status = (data.get("eventStatus") or "").lower()
    return new_event(
        raw,
        venue_cfg,
        # the listing's own offset is the venue's; keep the wall clock
        start_local=start.replace(tzinfo=None),
        source_event_id=event_id(data),
        title=(data.get("name") or "").strip() or None,
        artist_names=artists(data),
        price=_price(data),
        ticket_url=_ticket_url(data),
        image_url=image(data),
        doors_time=doors,
        is_sold_out=str(offer(data).get("availability") or "").lower().endswith("soldout"),
        is_cancelled=status.endswith("eventcancelled"),
    )
