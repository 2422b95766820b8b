"""
Provider events -> canonical shows.

Venue-local wall-clock times are converted to UTC with a fixed per-region
hour offset. There is no daylight-saving handling: the offsets describe the
regions the configured venues are in, and a region missing from the table is
a validation failure rather than a guess.
"""

import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from showsync.errors import ValidationError
from showsync.models import (
    Batch,
    CanonicalArtist,
    CanonicalShow,
    CanonicalVenue,
    ProviderEvent,
    ShowArtist,
)

# Standard-time offsets in hours, keyed by US state abbreviation
DEFAULT_REGION_OFFSETS: dict[str, int] = {
    "AZ": -7,
    "CA": -8,
    "NV": -8,
    "CO": -7,
    "NM": -7,
    "TX": -6,
    "IL": -6,
    "NY": -5,
}

_NUMBER_RE = re.compile(r"\d+(?:\.\d{1,2})?")
_RANGE_RE = re.compile(r"(\d+(?:\.\d{1,2})?)\s*(?:-|–|to)\s*\$?\s*(\d+(?:\.\d{1,2})?)", re.IGNORECASE)
_WITH_RE = re.compile(r"\s+with\s+", re.IGNORECASE)


def region_offset(state: Optional[str], offsets: dict[str, int]) -> Optional[int]:
    if not state:
        return None
    return offsets.get(state.strip().upper())


def to_utc(start_local: datetime, state: str, offsets: dict[str, int]) -> datetime:
    if start_local.tzinfo is not None:
        return start_local.astimezone(timezone.utc)
    offset = region_offset(state, offsets)
    if offset is None:
        raise ValidationError(f"no UTC offset configured for region '{state}'")
    local_tz = timezone(timedelta(hours=offset))
    return start_local.replace(tzinfo=local_tz).astimezone(timezone.utc)


def local_date(instant: datetime, state: Optional[str], offsets: dict[str, int]) -> date:
    """Venue calendar date of a UTC instant; the UTC date when the region is unknown."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    offset = region_offset(state, offsets)
    if offset is None:
        return instant.date()
    return (instant + timedelta(hours=offset)).date()


def local_day_bounds(day: date, state: Optional[str], offsets: dict[str, int]) -> tuple[datetime, datetime]:
    """UTC [start, end) of a venue-local calendar day."""
    offset = region_offset(state, offsets) or 0
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc) - timedelta(hours=offset)
    return start, start + timedelta(days=1)


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """
    Normalise free-text prices.

    "$20" -> 20, "20.00" -> 20.00, "Free" -> 0, "$15 - $20" -> 15,
    "$20 ADV / $25 DOS" -> 20. Anything without a number is None.
    """
    if text is None:
        return None
    raw = str(text).strip()
    if not raw:
        return None
    if "free" in raw.lower():
        return Decimal("0")
    raw = raw.replace(",", "")

    range_match = _RANGE_RE.search(raw)
    if range_match:
        low, high = (Decimal(g) for g in range_match.groups())
        return min(low, high)

    number = _NUMBER_RE.search(raw)
    if not number:
        return None
    try:
        return Decimal(number.group())
    except InvalidOperation:
        return None


def _split_and_trim(text: str, sep: str) -> list[str]:
    return [p.strip() for p in text.split(sep) if p.strip()]


def split_artists(title: str) -> list[str]:
    """Best-effort split of a listing title like "A with B, C" into artist names."""
    title = title.strip()
    if not title:
        return []
    if "," in title and not _WITH_RE.search(title):
        return _split_and_trim(title, ",")

    parts = _WITH_RE.split(title, maxsplit=1)
    if len(parts) == 2 and parts[0].strip():
        return [parts[0].strip()] + _split_and_trim(parts[1], ",")

    for sep in (" / ", " | ", " + "):
        if sep in title:
            return _split_and_trim(title, sep)

    # "Tom & Jerry" is one act; only split when both sides look like full names
    if " & " in title:
        halves = title.split(" & ")
        if len(halves) == 2 and all(len(h.strip()) > 10 for h in halves):
            return _split_and_trim(title, " & ")

    return [title]


def _lineup(event: ProviderEvent) -> list[ShowArtist]:
    names: list[str] = []
    seen: set[str] = set()
    source_names = event.artist_names or (split_artists(event.title) if event.title else [])
    for name in source_names:
        name = " ".join(name.split())
        if not name or name.casefold() in seen:
            continue
        seen.add(name.casefold())
        names.append(name)

    headliner_idx = 0
    if event.headliner:
        wanted = " ".join(event.headliner.split()).casefold()
        for i, name in enumerate(names):
            if name.casefold() == wanted:
                headliner_idx = i
                break

    return [
        ShowArtist(name=name, position=i, headliner=(i == headliner_idx))
        for i, name in enumerate(names)
    ]


def canonicalize(
    event: ProviderEvent,
    offsets: dict[str, int],
    scraped_at: Optional[datetime] = None,
) -> CanonicalShow:
    for field_name in ("venue_name", "venue_city", "venue_state"):
        if not (getattr(event, field_name) or "").strip():
            raise ValidationError(f"event {event.source_event_id or '?'} is missing {field_name}")

    state = event.venue_state.strip().upper()
    venue = CanonicalVenue(
        name=event.venue_name.strip(),
        city=event.venue_city.strip(),
        state=state,
        address=event.venue_address,
    )

    desc_parts = []
    if event.doors_time:
        desc_parts.append(f"Doors: {event.doors_time}")
    if event.ticket_url:
        desc_parts.append(f"Tickets: {event.ticket_url}")

    return CanonicalShow(
        title=(event.title or "").strip() or None,
        event_date=to_utc(event.start_local, state, offsets),
        venue=venue,
        artists=_lineup(event),
        price=parse_price(event.price),
        age_requirement=event.age_requirement,
        description=" | ".join(desc_parts) or None,
        ticket_url=event.ticket_url,
        image_url=event.image_url,
        is_sold_out=event.is_sold_out,
        is_cancelled=event.is_cancelled,
        status="pending",
        source="scraper",
        source_venue=event.source_venue,
        source_event_id=event.source_event_id or None,
        scraped_at=scraped_at or datetime.now(timezone.utc),
    )


def display_label(show: CanonicalShow, offsets: dict[str, int]) -> str:
    """The title when there is one, else "Headliner at Venue on YYYY-MM-DD"."""
    if show.title:
        return show.title
    day = local_date(show.event_date, show.venue.state, offsets).isoformat()
    headliner = show.headliner
    if headliner:
        return f"{headliner.name} at {show.venue.name} on {day}"
    return f"Show at {show.venue.name} on {day}"


def batch_from_shows(shows: list[CanonicalShow]) -> Batch:
    """Collect the distinct venues and artists referenced by `shows` into a Batch."""
    batch = Batch(shows=list(shows))
    venue_keys: set[tuple[str, str]] = set()
    artist_keys: set[str] = set()
    for show in shows:
        vkey = (show.venue.name.casefold(), show.venue.city.casefold())
        if vkey not in venue_keys:
            venue_keys.add(vkey)
            batch.venues.append(show.venue)
        for artist in show.artists:
            if artist.name.casefold() not in artist_keys:
                artist_keys.add(artist.name.casefold())
                batch.artists.append(CanonicalArtist(name=artist.name))
    return batch
