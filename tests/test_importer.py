from decimal import Decimal

from showsync.errors import PersistenceError
from showsync.importer import import_batch
from showsync.models import Batch, CanonicalArtist, CanonicalVenue

from conftest import make_show

TABLES = ("venues", "artists", "shows", "show_artists")


def _counts(store):
    return {t: store.count(t) for t in TABLES}


def _totals(outcome):
    return {"total": outcome.total, "imported": outcome.imported,
            "duplicates": outcome.duplicates, "errors": outcome.errors}


def _full_batch():
    return Batch(
        venues=[CanonicalVenue(name="Valley Bar", city="Phoenix", state="AZ", address="130 N Central Ave")],
        artists=[CanonicalArtist(name="The National"), CanonicalArtist(name="Lucy Dacus")],
        shows=[
            make_show("The National", "Lucy Dacus", source="scraper", source_venue="valley-bar", source_event_id="vb-8842"),
            make_show("Wand", venue="Crescent Ballroom", title="Wand (Late Show)"),
        ],
    )


def test_same_batch_twice_imports_then_duplicates(store, offsets):
    batch = Batch(shows=[make_show("The National")])

    first = import_batch(batch, store, offsets=offsets)
    second = import_batch(batch, store, offsets=offsets)

    assert _totals(first.shows) == {"total": 1, "imported": 1, "duplicates": 0, "errors": 0}
    assert _totals(second.shows) == {"total": 1, "imported": 0, "duplicates": 1, "errors": 0}


def test_reimport_adds_no_rows_and_reports_every_record_duplicate(store, offsets):
    import_batch(_full_batch(), store, offsets=offsets)
    before = _counts(store)

    result = import_batch(_full_batch(), store, offsets=offsets)

    assert _counts(store) == before
    for outcome in (result.venues, result.artists, result.shows):
        assert outcome.duplicates == outcome.total
        assert all(m.startswith("DUPLICATE: ") for m in outcome.messages)


def test_import_creates_venues_and_artists_for_shows(store, offsets):
    result = import_batch(_full_batch(), store, offsets=offsets)

    assert result.venues.messages == ["IMPORTED: Venue 'Valley Bar' in Phoenix, AZ (ID: 1)"]
    assert result.artists.messages == [
        "IMPORTED: Artist 'The National' (ID: 1)",
        "IMPORTED: Artist 'Lucy Dacus' (ID: 2)",
    ]
    assert result.shows.imported == 2
    assert _counts(store) == {"venues": 2, "artists": 3, "shows": 2, "show_artists": 3}

    show = store.get_show(1)
    assert [(a.name, a.headliner) for a in show.artists] == [("The National", True), ("Lucy Dacus", False)]
    assert show.status == "pending"
    assert show.price == Decimal("25")


def test_dry_run_never_writes(store, offsets):
    import_batch(Batch(shows=[make_show("The National")]), store, offsets=offsets)
    before = _counts(store)

    result = import_batch(_full_batch(), store, dry_run=True, offsets=offsets)

    assert _counts(store) == before
    assert result.venues.messages == ["DUPLICATE: Venue 'Valley Bar' in Phoenix, AZ already exists (ID: 1)"]
    assert result.artists.messages == [
        "DUPLICATE: Artist 'The National' already exists (ID: 1)",
        "WOULD IMPORT: Artist 'Lucy Dacus'",
    ]
    # the scraped copy matches on headliner, venue and date
    assert result.shows.duplicates == 1
    assert result.shows.messages[1] == "WOULD IMPORT: Show 'Wand (Late Show)'"


def test_dry_run_reports_repeats_within_batch_as_duplicates(store, offsets):
    batch = Batch(
        artists=[CanonicalArtist(name="Wand"), CanonicalArtist(name="wand")],
        shows=[make_show("Wand"), make_show("WAND")],
    )

    result = import_batch(batch, store, dry_run=True, offsets=offsets)

    assert _totals(result.artists) == {"total": 2, "imported": 1, "duplicates": 1, "errors": 0}
    assert _totals(result.shows) == {"total": 2, "imported": 1, "duplicates": 1, "errors": 0}
    assert _counts(store) == {t: 0 for t in TABLES}


def test_scraped_show_without_source_id_matches_natural_key(store, offsets):
    import_batch(Batch(shows=[make_show("The National", status="approved")]), store, offsets=offsets)

    result = import_batch(Batch(shows=[make_show("The National", source="scraper")]), store, offsets=offsets)

    assert result.shows.imported == 0
    assert result.shows.duplicates == 1
    assert "matched on headliner, venue and date" in result.shows.messages[0]
    assert store.count("shows") == 1


def test_rescrape_refreshes_only_scraped_fields(store, offsets):
    original = make_show("The National", title="The National", source="scraper",
                         source_venue="valley-bar", source_event_id="vb-8842", price=Decimal("45"))
    import_batch(Batch(shows=[original]), store, offsets=offsets)

    rescraped = make_show("The National", title="THE NATIONAL - SOLD OUT", source="scraper",
                          source_venue="valley-bar", source_event_id="vb-8842",
                          price=Decimal("50"), is_sold_out=True, status="approved")
    result = import_batch(Batch(shows=[rescraped]), store, offsets=offsets)

    assert result.shows.duplicates == 1
    assert store.count("shows") == 1
    stored = store.get_show(1)
    assert stored.price == Decimal("50")
    assert stored.is_sold_out is True
    assert stored.title == "The National"
    assert stored.status == "pending"


def test_bad_records_do_not_stop_the_batch(store, offsets):
    batch = Batch(
        venues=[CanonicalVenue(name="Nowhere", city="", state="AZ")],
        artists=[CanonicalArtist(name="  "), CanonicalArtist(name="Wand")],
        shows=[
            make_show("Wand", status="published"),
            make_show("Wand", city=""),
            make_show("Ty Segall"),
        ],
    )

    result = import_batch(batch, store, offsets=offsets)

    assert result.venues.messages == ["ERROR: Venue 'Nowhere' requires both city and state"]
    assert result.artists.messages == ["SKIP: Artist name is required", "IMPORTED: Artist 'Wand' (ID: 1)"]
    assert _totals(result.artists) == {"total": 2, "imported": 1, "duplicates": 0, "errors": 1}
    assert _totals(result.shows) == {"total": 3, "imported": 1, "duplicates": 0, "errors": 2}
    assert result.shows.messages[0] == "ERROR: Unknown show status 'published'"
    assert store.count("shows") == 1


def test_show_without_date_is_skipped(store, offsets):
    result = import_batch(Batch(shows=[make_show("Wand", when=None)]), store, offsets=offsets)
    assert result.shows.messages == ["SKIP: Show event date is required"]
    assert result.shows.errors == 1


def test_show_without_title_or_lineup_is_skipped_on_every_run(store, offsets):
    batch = Batch(shows=[make_show(None)])

    first = import_batch(batch, store, offsets=offsets)
    second = import_batch(batch, store, offsets=offsets)

    for result in (first, second):
        assert result.shows.messages == ["SKIP: Show title or headliner is required"]
        assert result.shows.errors == 1
    assert store.count("shows") == 0


def test_show_with_title_but_no_lineup_is_idempotent(store, offsets):
    batch = Batch(shows=[make_show(None, title="Holiday Hootenanny")])

    import_batch(batch, store, offsets=offsets)
    second = import_batch(batch, store, offsets=offsets)

    assert _totals(second.shows) == {"total": 1, "imported": 0, "duplicates": 1, "errors": 0}
    assert store.count("shows") == 1


def test_write_failure_is_an_error_for_that_record_only(store, offsets, monkeypatch):
    real_insert = store.insert_show

    def flaky_insert(show, venue_id, artist_ids):
        if show.title == "Broken":
            raise PersistenceError("disk I/O error")
        return real_insert(show, venue_id, artist_ids)

    monkeypatch.setattr(store, "insert_show", flaky_insert)
    batch = Batch(shows=[make_show("Wand", title="Broken"), make_show("Ty Segall")])

    result = import_batch(batch, store, offsets=offsets)

    assert result.shows.messages[0] == "ERROR: disk I/O error"
    assert result.shows.imported == 1
    # the failed show's venue and artist were rolled back with it
    assert store.count("shows") == 1
    assert store.count("venues") == 1
    assert store.find_artists("Wand") == []


def test_insert_race_is_reported_as_duplicate(store, offsets, monkeypatch):
    real_insert = store.insert_artist
    calls = []

    def racing_insert(artist):
        calls.append(artist.name)
        if len(calls) == 1:
            # another writer commits the same artist first
            real_insert(artist)
            store.conn.commit()
            raise PersistenceError("UNIQUE constraint failed: artists.name")
        return real_insert(artist)

    monkeypatch.setattr(store, "insert_artist", racing_insert)

    result = import_batch(Batch(artists=[CanonicalArtist(name="Wand")]), store, offsets=offsets)

    assert result.artists.messages == ["DUPLICATE: Artist 'Wand' already exists (ID: 1)"]
    assert store.count("artists") == 1

