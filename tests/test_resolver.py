from datetime import datetime, timezone

from showsync.importer import import_batch
from showsync.models import Batch, CanonicalArtist, ShowArtist
from showsync.resolver import (
    DUPLICATE,
    MATCH_NATURAL_KEY,
    MATCH_SOURCE,
    NEW,
    IdentityResolver,
    normalize_name,
)

from conftest import make_show


def _seed(store, offsets, *shows):
    import_batch(Batch(shows=list(shows)), store, offsets=offsets)


def test_normalize_name():
    assert normalize_name("  The   NATIONAL ") == "the national"
    assert normalize_name(None) == ""


def test_source_pair_wins_over_natural_key(store, offsets):
    _seed(store, offsets, make_show("Wand", source="scraper", source_venue="valley-bar", source_event_id="1"))
    resolver = IdentityResolver(store, offsets)

    # Same source id, different headliner and date: still the same event
    moved = make_show("Wand & Friends", when=datetime(2026, 2, 5, 3, tzinfo=timezone.utc),
                      source="scraper", source_venue="valley-bar", source_event_id="1")
    resolution = resolver.resolve_show(moved)

    assert resolution.kind == DUPLICATE
    assert resolution.matched_on == MATCH_SOURCE
    assert resolution.existing_id == 1


def test_natural_key_matches_regardless_of_status_and_origin(store, offsets):
    _seed(store, offsets, make_show("The National", status="approved", source="user"))
    resolver = IdentityResolver(store, offsets)

    # Scraped copy: no source id, different case, a later time the same local evening
    scraped = make_show("the national", when=datetime(2026, 1, 31, 5, 30, tzinfo=timezone.utc), source="scraper")
    resolution = resolver.resolve_show(scraped)

    assert resolution.kind == DUPLICATE
    assert resolution.matched_on == MATCH_NATURAL_KEY


def test_natural_key_uses_venue_local_date(store, offsets):
    _seed(store, offsets, make_show("The National"))  # 2026-01-30 20:00 in Phoenix
    resolver = IdentityResolver(store, offsets)

    next_day = make_show("The National", when=datetime(2026, 1, 31, 20, 0, tzinfo=timezone.utc))
    assert resolver.resolve_show(next_day).kind == NEW


def test_new_show_reuses_known_venue_and_artists(store, offsets):
    _seed(store, offsets, make_show("Wand", "Ty Segall"))
    resolver = IdentityResolver(store, offsets)

    resolution = resolver.resolve_show(
        make_show("Ty Segall", "Someone New", when=datetime(2026, 2, 7, 3, tzinfo=timezone.utc))
    )

    assert resolution.kind == NEW
    assert resolution.venue_id == 1
    assert resolution.artist_ids == {"ty segall": 2, "someone new": None}


def test_equal_matches_resolve_to_lowest_id_with_conflict(store, offsets):
    wand = ShowArtist("Wand", 0, True)
    with store.transaction():
        venue_id = store.insert_venue(make_show().venue)
        artist_id = store.insert_artist(CanonicalArtist("Wand"))
        first = store.insert_show(make_show("Wand", source_venue="a", source_event_id="1"), venue_id, [(artist_id, wand)])
        second = store.insert_show(make_show("Wand", source_venue="b", source_event_id="2"), venue_id, [(artist_id, wand)])

    resolution = IdentityResolver(store, offsets).resolve_show(make_show("Wand"))

    assert resolution.kind == DUPLICATE
    assert resolution.existing_id == min(first, second)
    assert resolution.conflict is not None
    assert resolution.conflict.candidate_ids == [first, second]
