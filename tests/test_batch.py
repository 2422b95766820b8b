import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from showsync.batch import (
    batch_from_dict,
    batch_to_dict,
    dump_batch,
    load_batch,
    result_from_dict,
    show_from_dict,
    show_to_dict,
)
from showsync.errors import ValidationError
from showsync.models import Batch

from conftest import make_show


def test_show_wire_format_uses_camel_case():
    show = make_show("The National", "Lucy Dacus", source="scraper",
                     source_venue="valley-bar", source_event_id="vb-8842",
                     scraped_at=datetime(2026, 1, 2, 12, 0, tzinfo=timezone.utc), is_sold_out=True)

    data = show_to_dict(show)

    assert data["eventDate"] == "2026-01-31T03:00:00Z"
    assert data["sourceVenue"] == "valley-bar"
    assert data["sourceEventId"] == "vb-8842"
    assert data["scrapedAt"] == "2026-01-02T12:00:00Z"
    assert data["isSoldOut"] is True
    assert data["price"] == 25.0
    assert data["venues"] == [{"name": "Valley Bar", "city": "Phoenix", "state": "AZ", "verified": False}]
    assert data["artists"] == [
        {"name": "The National", "position": 0, "setType": "headliner"},
        {"name": "Lucy Dacus", "position": 1, "setType": "opener"},
    ]
    assert "title" not in data


def test_show_from_exported_payload():
    show = show_from_dict({
        "title": "Wand",
        "eventDate": "2026-03-01T03:00:00Z",
        "status": "APPROVED",
        "price": 18.5,
        "venues": [{"name": "Crescent Ballroom", "city": "Phoenix", "state": "AZ", "instagram": "@crescentphx"}],
        "artists": [{"name": "Ty Segall", "position": 1, "setType": "opener"},
                    {"name": "Wand", "position": 0, "setType": "headliner"}],
    })

    assert show.event_date == datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc)
    assert show.status == "approved"
    assert show.source == "user"
    assert show.price == Decimal("18.5")
    assert show.venue.social.instagram == "@crescentphx"
    assert [a.name for a in show.artists] == ["Wand", "Ty Segall"]
    assert show.headliner.name == "Wand"


def test_invalid_event_date_becomes_none():
    assert show_from_dict({"eventDate": "next friday"}).event_date is None


def test_dump_and_load_batch(tmp_path):
    batch = Batch(shows=[make_show("The National")])
    path = tmp_path / "out" / "batch.json"

    dump_batch(batch, path)
    loaded = load_batch(path)

    assert json.loads(path.read_text())["shows"][0]["eventDate"] == "2026-01-31T03:00:00Z"
    assert batch_to_dict(loaded) == batch_to_dict(batch)


def test_load_batch_rejects_bad_files(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2")
    with pytest.raises(ValidationError):
        load_batch(bad)
    with pytest.raises(ValidationError):
        load_batch(tmp_path / "missing.json")


def test_batch_from_dict_tolerates_missing_sections():
    assert len(batch_from_dict({"artists": [{"name": "Wand"}]})) == 1


def test_result_from_dict():
    result = result_from_dict({
        "shows": {"total": 2, "imported": 1, "duplicates": 1, "errors": 0,
                  "messages": ["IMPORTED: Show 'x'", "DUPLICATE: Show 'y'"]},
        "artists": {"total": 1, "imported": 0, "duplicates": 0, "updated": 1, "errors": 1, "messages": None},
    })

    assert result.shows.duplicates == 1
    assert result.artists.errors == 1
    assert result.artists.messages == []
    assert result.venues.total == 0
