"""
Identity resolution against a target store.

A show is a duplicate when, in this order:
  1. it carries (source_venue, source_event_id) and a show with the same pair
     exists, or
  2. a show with the same natural key exists: headliner (or the title, for a
     show without a lineup), venue name and venue-local calendar date. Status
     and origin of the existing show do not matter.

Otherwise it is new, and its venue (name + city) and artists (name) are
looked up so the importer can reuse them or create them alongside the show.
Several equally good matches resolve to the lowest id.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from showsync.canonicalize import local_date, local_day_bounds
from showsync.errors import ConflictError
from showsync.models import CanonicalArtist, CanonicalShow, CanonicalVenue, NaturalKey

log = logging.getLogger(__name__)

NEW = "new"
DUPLICATE = "duplicate"

MATCH_SOURCE = "source"
MATCH_NATURAL_KEY = "natural_key"
MATCH_NAME = "name"


@dataclass
class Resolution:
    kind: str
    existing_id: Optional[int] = None
    matched_on: Optional[str] = None
    # For new shows: None means "create alongside the show"
    venue_id: Optional[int] = None
    artist_ids: dict[str, Optional[int]] = field(default_factory=dict)
    conflict: Optional[ConflictError] = None

    @property
    def is_duplicate(self) -> bool:
        return self.kind == DUPLICATE


def normalize_name(name: Optional[str]) -> str:
    return " ".join((name or "").split()).casefold()


def _pick_lowest(what: str, ids: list[int]) -> tuple[int, Optional[ConflictError]]:
    ids = sorted(ids)
    if len(ids) == 1:
        return ids[0], None
    conflict = ConflictError(what, ids)
    log.warning("%s", conflict)
    return ids[0], conflict


class IdentityResolver:
    def __init__(self, store, offsets: dict[str, int]):
        self.store = store
        self.offsets = offsets

    def natural_key(self, show: CanonicalShow) -> Optional[NaturalKey]:
        headliner = show.headliner
        who = normalize_name(headliner.name if headliner else show.title)
        venue = normalize_name(show.venue.name)
        if not who or not venue or show.event_date is None:
            return None
        day = local_date(show.event_date, show.venue.state, self.offsets)
        return NaturalKey(headliner=who, venue=venue, date=day)

    def _show_key(self, show: CanonicalShow) -> str:
        headliner = show.headliner
        return normalize_name(headliner.name if headliner else show.title)

    def resolve_show(self, show: CanonicalShow) -> Resolution:
        if show.has_source_identity:
            existing = self.store.find_show_by_source(show.source_venue, show.source_event_id)
            if existing is not None:
                return Resolution(DUPLICATE, existing_id=existing, matched_on=MATCH_SOURCE)

        key = self.natural_key(show)
        if key is not None:
            start, end = local_day_bounds(key.date, show.venue.state, self.offsets)
            matches = [
                s.id for s in self.store.find_shows_at_venue(show.venue.name, start, end)
                if self._show_key(s) == key.headliner
            ]
            if matches:
                existing, conflict = _pick_lowest(f"show {key}", matches)
                return Resolution(DUPLICATE, existing_id=existing, matched_on=MATCH_NATURAL_KEY, conflict=conflict)

        resolution = Resolution(NEW)
        venue = self.resolve_venue(show.venue)
        resolution.venue_id = venue.existing_id
        resolution.conflict = venue.conflict
        for entry in show.artists:
            artist = self.resolve_artist(CanonicalArtist(name=entry.name))
            resolution.artist_ids[normalize_name(entry.name)] = artist.existing_id
            resolution.conflict = resolution.conflict or artist.conflict
        return resolution

    def resolve_venue(self, venue: CanonicalVenue) -> Resolution:
        matches = [v.id for v in self.store.find_venues(venue.name, venue.city)]
        if not matches:
            return Resolution(NEW)
        existing, conflict = _pick_lowest(f"venue '{venue.name}' in {venue.city}", matches)
        return Resolution(DUPLICATE, existing_id=existing, matched_on=MATCH_NAME, conflict=conflict)

    def resolve_artist(self, artist: CanonicalArtist) -> Resolution:
        matches = [a.id for a in self.store.find_artists(artist.name)]
        if not matches:
            return Resolution(NEW)
        existing, conflict = _pick_lowest(f"artist '{artist.name}'", matches)
        return Resolution(DUPLICATE, existing_id=existing, matched_on=MATCH_NAME, conflict=conflict)
