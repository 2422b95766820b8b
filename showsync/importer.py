"""
Batch import into one target store.

Venues are imported first, then artists, then shows, since shows point at
the other two. Every record gets exactly one outcome line; a failing record
is reported as ERROR (or SKIP when it lacks the field that identifies it)
and the batch carries on. Live writes are committed per record.

A dry run resolves identities exactly like a live run but never writes. It
remembers what it would have created earlier in the same batch so that a
repeated record reports DUPLICATE, as it would when imported for real.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from showsync.canonicalize import DEFAULT_REGION_OFFSETS, display_label, local_date
from showsync.errors import PersistenceError, ShowSyncError, ValidationError
from showsync.models import (
    DUPLICATE,
    ERROR,
    IMPORTED,
    SHOW_SOURCES,
    SHOW_STATUSES,
    SKIP,
    WOULD_IMPORT,
    Batch,
    BatchResult,
    CanonicalArtist,
    CanonicalShow,
    CanonicalVenue,
    Outcome,
)
from showsync.resolver import MATCH_SOURCE, IdentityResolver, Resolution, normalize_name
from showsync.slugs import artist_slug, show_slug, venue_slug

log = logging.getLogger(__name__)

# A unique-constraint race is retried once against fresh state
_MAX_ATTEMPTS = 2


class _MissingIdentity(ValidationError):
    """The record lacks the field that identifies it at all; reported as SKIP."""


@dataclass
class _Planned:
    venues: set = field(default_factory=set)
    artists: set = field(default_factory=set)
    shows: set = field(default_factory=set)


def import_batch(
    batch: Batch,
    store,
    dry_run: bool = False,
    offsets: Optional[dict[str, int]] = None,
) -> BatchResult:
    return Importer(store, offsets).run(batch, dry_run)


class Importer:
    def __init__(self, store, offsets: Optional[dict[str, int]] = None):
        self.store = store
        self.offsets = offsets if offsets is not None else dict(DEFAULT_REGION_OFFSETS)
        self.resolver = IdentityResolver(store, self.offsets)

    def run(self, batch: Batch, dry_run: bool = False) -> BatchResult:
        result = BatchResult()
        planned = _Planned()

        for venue in batch.venues:
            self._process(result.venues, self._import_venue, venue, dry_run, planned)
        for artist in batch.artists:
            self._process(result.artists, self._import_artist, artist, dry_run, planned)
        for show in batch.shows:
            self._process(result.shows, self._import_show, show, dry_run, planned)

        for name in ("venues", "artists", "shows"):
            outcome: Outcome = getattr(result, name)
            log.info(
                "%s%s: %d total, %d %s, %d duplicates, %d errors",
                "[dry run] " if dry_run else "", name, outcome.total, outcome.imported,
                "would import" if dry_run else "imported", outcome.duplicates, outcome.errors,
            )
        return result

    def _process(self, outcome: Outcome, handler: Callable, record, dry_run: bool, planned: _Planned) -> None:
        try:
            status, message = handler(record, dry_run, planned)
        except _MissingIdentity as exc:
            status, message = SKIP, str(exc)
        except ShowSyncError as exc:
            status, message = ERROR, str(exc)
        except Exception as exc:
            log.exception("Unexpected failure importing %r", record)
            status, message = ERROR, f"unexpected error: {exc}"
        if status in (ERROR, SKIP):
            log.warning("%s: %s", status, message)
        outcome.record(status, message)

    # --- Venues ---

    def _import_venue(self, venue: CanonicalVenue, dry_run: bool, planned: _Planned) -> tuple[str, str]:
        _validate_venue(venue)
        label = f"Venue '{venue.name}' in {venue.city}, {venue.state}"

        for attempt in range(_MAX_ATTEMPTS):
            resolution = self.resolver.resolve_venue(venue)
            if resolution.is_duplicate:
                if not dry_run:
                    with self.store.transaction():
                        self._ensure_venue_slug(resolution.existing_id)
                return DUPLICATE, _with_conflict(f"{label} already exists (ID: {resolution.existing_id})", resolution)

            if dry_run:
                key = (normalize_name(venue.name), normalize_name(venue.city))
                if key in planned.venues:
                    return DUPLICATE, f"{label} appears earlier in this batch"
                planned.venues.add(key)
                return WOULD_IMPORT, label

            try:
                with self.store.transaction():
                    venue_id = self._create_venue(venue)
            except PersistenceError:
                if attempt + 1 < _MAX_ATTEMPTS:
                    continue
                raise
            return IMPORTED, f"{label} (ID: {venue_id})"
        raise PersistenceError(f"could not import {label}")

    def _create_venue(self, venue: CanonicalVenue) -> int:
        venue_id = self.store.insert_venue(venue)
        self._ensure_venue_slug(venue_id)
        return venue_id

    def _ensure_venue_slug(self, venue_id: int) -> None:
        if self.store.has_slug("venues", venue_id):
            return
        venue = self.store.get_venue(venue_id)
        base = venue_slug(venue.name, venue.city, venue.state) or f"venue-{venue_id}"
        self.store.assign_slug("venues", venue_id, base)

    # --- Artists ---

    def _import_artist(self, artist: CanonicalArtist, dry_run: bool, planned: _Planned) -> tuple[str, str]:
        if not normalize_name(artist.name):
            raise _MissingIdentity("Artist name is required")
        label = f"Artist '{artist.name}'"

        for attempt in range(_MAX_ATTEMPTS):
            resolution = self.resolver.resolve_artist(artist)
            if resolution.is_duplicate:
                if not dry_run:
                    with self.store.transaction():
                        self._ensure_artist_slug(resolution.existing_id)
                return DUPLICATE, _with_conflict(f"{label} already exists (ID: {resolution.existing_id})", resolution)

            if dry_run:
                key = normalize_name(artist.name)
                if key in planned.artists:
                    return DUPLICATE, f"{label} appears earlier in this batch"
                planned.artists.add(key)
                return WOULD_IMPORT, label

            try:
                with self.store.transaction():
                    artist_id = self._create_artist(artist)
            except PersistenceError:
                if attempt + 1 < _MAX_ATTEMPTS:
                    continue
                raise
            return IMPORTED, f"{label} (ID: {artist_id})"
        raise PersistenceError(f"could not import {label}")

    def _create_artist(self, artist: CanonicalArtist) -> int:
        artist_id = self.store.insert_artist(artist)
        self._ensure_artist_slug(artist_id)
        return artist_id

    def _ensure_artist_slug(self, artist_id: int) -> None:
        if self.store.has_slug("artists", artist_id):
            return
        artist = self.store.get_artist(artist_id)
        self.store.assign_slug("artists", artist_id, artist_slug(artist.name) or f"artist-{artist_id}")

    # --- Shows ---

    def _import_show(self, show: CanonicalShow, dry_run: bool, planned: _Planned) -> tuple[str, str]:
        _validate_show(show)
        label = f"Show '{display_label(show, self.offsets)}'"

        for attempt in range(_MAX_ATTEMPTS):
            resolution = self.resolver.resolve_show(show)
            if resolution.is_duplicate:
                if not dry_run:
                    with self.store.transaction():
                        if resolution.matched_on == MATCH_SOURCE:
                            self.store.refresh_scraped_fields(resolution.existing_id, show)
                        self._ensure_show_slug(resolution.existing_id)
                how = "source event id" if resolution.matched_on == MATCH_SOURCE else "headliner, venue and date"
                return DUPLICATE, _with_conflict(
                    f"{label} already imported as show #{resolution.existing_id} (matched on {how})", resolution,
                )

            if dry_run:
                keys = self._planned_show_keys(show)
                if keys & planned.shows:
                    return DUPLICATE, f"{label} appears earlier in this batch"
                planned.shows.update(keys)
                return WOULD_IMPORT, _with_conflict(label, resolution)

            try:
                with self.store.transaction():
                    show_id = self._create_show(show, resolution)
            except PersistenceError:
                if attempt + 1 < _MAX_ATTEMPTS:
                    log.debug("Retrying %s after a write conflict", label)
                    continue
                raise
            return IMPORTED, _with_conflict(f"{label} (ID: {show_id})", resolution)
        raise PersistenceError(f"could not import {label}")

    def _planned_show_keys(self, show: CanonicalShow) -> set:
        keys = set()
        if show.has_source_identity:
            keys.add(("source", show.source_venue, show.source_event_id))
        natural = self.resolver.natural_key(show)
        if natural is not None:
            keys.add(("natural", natural.headliner, natural.venue, natural.date))
        return keys

    def _create_show(self, show: CanonicalShow, resolution: Resolution) -> int:
        venue_id = resolution.venue_id
        if venue_id is None:
            venue_id = self._create_venue(show.venue)

        lineup = []
        seen_ids: set[int] = set()
        for entry in show.artists:
            artist_id = resolution.artist_ids.get(normalize_name(entry.name))
            if artist_id is None:
                artist_id = self._create_artist(CanonicalArtist(name=entry.name))
                resolution.artist_ids[normalize_name(entry.name)] = artist_id
            if artist_id in seen_ids:
                continue
            seen_ids.add(artist_id)
            lineup.append((artist_id, entry))

        show_id = self.store.insert_show(show, venue_id, lineup)
        self._ensure_show_slug(show_id)
        return show_id

    def _ensure_show_slug(self, show_id: int) -> None:
        if self.store.has_slug("shows", show_id):
            return
        stored = self.store.get_show(show_id)
        headliner = stored.headliner
        base = show_slug(
            local_date(stored.event_date, stored.venue.state, self.offsets),
            title=stored.title,
            headliner=headliner.name if headliner else None,
            venue=stored.venue.name,
            show_id=show_id,
        )
        self.store.assign_slug("shows", show_id, base)


def _validate_venue(venue: CanonicalVenue) -> None:
    if not normalize_name(venue.name):
        raise _MissingIdentity("Venue name is required")
    if not (venue.city or "").strip() or not (venue.state or "").strip():
        raise ValidationError(f"Venue '{venue.name}' requires both city and state")


def _validate_show(show: CanonicalShow) -> None:
    if show.event_date is None:
        raise _MissingIdentity("Show event date is required")
    if not normalize_name(show.title) and show.headliner is None:
        raise _MissingIdentity("Show title or headliner is required")
    if show.venue is None:
        raise ValidationError("Show has no venue")
    _validate_venue(show.venue)
    if show.status not in SHOW_STATUSES:
        raise ValidationError(f"Unknown show status '{show.status}'")
    if show.source not in SHOW_SOURCES:
        raise ValidationError(f"Unknown show source '{show.source}'")


def _with_conflict(message: str, resolution: Resolution) -> str:
    if resolution.conflict is None:
        return message
    return f"{message} [{resolution.conflict}]"
