"""
Wix venue sites (e.g. https://www.celebritytheatre.com): there is no listing
page to scrape, so event pages are found through the site's event sitemap and
each page is fetched for its JSON-LD.

  - Sitemap: `sitemap_url` in the venue config, e.g.
             https://www.celebritytheatre.com/event-pages-sitemap.xml;
             only <loc> entries shaped like /events/<slug> are kept.
  - Event:   first JSON-LD block with @type "Event" (Wix) or "MusicEvent".
  - Id:      the <slug> from the page url.
  - Date:    startDate, e.g. "2026-03-14T20:00:00-07:00" (venue wall clock kept).
  - Price:   offers.price, 0 meaning free.

Past events stay in the sitemap and are dropped on fetch.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Optional

import requests
from bs4 import BeautifulSoup
from dateutil import parser as dateparser

from showsync.errors import FetchError, ParseError
from showsync.models import ProviderEvent, RawEvent
from showsync.providers import jsonld
from showsync.providers.base import combine, fetch_html, new_event

log = logging.getLogger(__name__)

_EVENT_PATH_RE = re.compile(r"/events/([^/?#]+)/?$")
_PAGE_WORKERS = 10


def event_urls(sitemap_xml: str) -> list[str]:
    soup = BeautifulSoup(sitemap_xml, "lxml-xml")
    urls = [loc.get_text(strip=True) for loc in soup.find_all("loc")]
    return [u for u in urls if _EVENT_PATH_RE.search(u)]


def event_slug(url: str) -> str:
    m = _EVENT_PATH_RE.search(url)
    return m.group(1) if m else url


def _is_upcoming(data: dict, today: date) -> bool:
    try:
        return dateparser.isoparse(data.get("startDate") or "").date() >= today
    except (ValueError, OverflowError):
        # parse() reports it
        return True


def _fetch_page(key: str, url: str, session: requests.Session) -> Optional[dict]:
    try:
        html = fetch_html(session, key, url)
    except FetchError as exc:
        log.warning("Skipping %s: %s", url, exc)
        return None
    events = jsonld.ld_events(html, ("Event", "MusicEvent"))
    return events[0] if events else None


def fetch(key: str, venue_cfg: dict, session: requests.Session, today: Optional[date] = None) -> list[RawEvent]:
    sitemap_url = venue_cfg.get("sitemap_url", "")
    urls = event_urls(fetch_html(session, key, sitemap_url))
    log.debug("%s: %d event pages in sitemap", key, len(urls))
    if not urls:
        return []

    with ThreadPoolExecutor(max_workers=min(_PAGE_WORKERS, len(urls))) as pool:
        pages = list(pool.map(lambda u: _fetch_page(key, u, session), urls))

    today = today or date.today()
    return [
        RawEvent(source_venue=key, payload=data, url=url)
        for url, data in zip(urls, pages)
        if data is not None and _is_upcoming(data, today)
    ]


def _price(data: dict) -> Optional[str]:
    value = jsonld.offer(data).get("price")
    if value is None or value == "":
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if amount == 0:
        return "Free"
    return f"${amount:g}"


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

    availability = [str(o.get("availability") or "") for o in _offers(data)]
    return new_event(
        raw,
        venue_cfg,
        start_local=start.replace(tzinfo=None),
        source_event_id=event_slug(raw.url),
        title=(data.get("name") or "").strip() or None,
        artist_names=jsonld.artists(data),
        price=_price(data),
        ticket_url=jsonld.offer(data).get("url") or data.get("url"),
        image_url=jsonld.image(data),
        is_sold_out=any("SoldOut" in a for a in availability),
        is_cancelled="EventCancelled" in (data.get("eventStatus") or ""),
    )


def _offers(data: dict) -> list[dict]:
    offers = data.get("offers") or []
    if isinstance(offers, dict):
        offers = [offers]
    return [o for o in offers if isinstance(o, dict)]
