"""
Slug generation.

Slugs are derived from an entity's name (and, for shows, its venue-local
date). When a base slug already belongs to another row the newcomer gets its
own id appended, so the row with the lowest id keeps the bare slug as long as
slugs are assigned in id order. An already-assigned slug is never changed.
"""

import logging
import re
from datetime import date
from typing import Callable, Optional

from showsync.canonicalize import local_date

log = logging.getLogger(__name__)

_INVALID_RE = re.compile(r"[^a-z0-9 -]")
_SPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-{2,}")


def slugify(*parts: str) -> str:
    text = " ".join(p for p in parts if p).lower()
    text = _INVALID_RE.sub("", text)
    text = _SPACE_RE.sub("-", text.strip())
    text = _HYPHENS_RE.sub("-", text)
    return text.strip("-")


def artist_slug(name: str) -> str:
    return slugify(name)


def venue_slug(name: str, city: str, state: str) -> str:
    """name+city+state, so same-named venues in different cities get distinct slugs."""
    return slugify(name, city, state)


def show_slug(
    event_date: date,
    title: Optional[str] = None,
    headliner: Optional[str] = None,
    venue: Optional[str] = None,
    show_id: Optional[int] = None,
) -> str:
    """title+date, else headliner-at-venue+date, else show-<id>+date."""
    day = event_date.isoformat()
    if title and slugify(title):
        return slugify(title, day)
    if headliner and venue and slugify(headliner) and slugify(venue):
        return slugify(headliner, "at", venue, day)
    return slugify("show", str(show_id) if show_id is not None else "", day)


def unique_slug(base: str, entity_id: int, owner_of: Callable[[str], Optional[int]]) -> str:
    """
    Return `base` unless another entity owns it, in which case `-<entity_id>`
    is appended (repeatedly, in the unlikely case that is taken as well).

    `owner_of` returns the id of the row currently holding a slug, or None.
    """
    candidate = base
    while True:
        owner = owner_of(candidate)
        if owner is None or owner == entity_id:
            return candidate
        candidate = f"{candidate}-{entity_id}"


def backfill_slugs(store, offsets: dict[str, int]) -> dict[str, int]:
    """
    Give every venue, artist and show without a slug one. Safe to re-run.

    Returns the number of slugs assigned per table.
    """
    counts = {"venues": 0, "artists": 0, "shows": 0}

    for venue_id in store.ids_missing_slug("venues"):
        venue = store.get_venue(venue_id)
        base = venue_slug(venue.name, venue.city, venue.state) or f"venue-{venue_id}"
        with store.transaction():
            slug = store.assign_slug("venues", venue_id, base)
        log.info("Venue %d: %s -> %s", venue_id, venue.name, slug)
        counts["venues"] += 1

    for artist_id in store.ids_missing_slug("artists"):
        artist = store.get_artist(artist_id)
        base = artist_slug(artist.name) or f"artist-{artist_id}"
        with store.transaction():
            slug = store.assign_slug("artists", artist_id, base)
        log.info("Artist %d: %s -> %s", artist_id, artist.name, slug)
        counts["artists"] += 1

    for show_id in store.ids_missing_slug("shows"):
        show = store.get_show(show_id)
        headliner = show.headliner
        base = show_slug(
            local_date(show.event_date, show.venue.state, offsets),
            title=show.title,
            headliner=headliner.name if headliner else None,
            venue=show.venue.name,
            show_id=show_id,
        )
        with store.transaction():
            slug = store.assign_slug("shows", show_id, base)
        log.info("Show %d -> %s", show_id, slug)
        counts["shows"] += 1

    return counts
