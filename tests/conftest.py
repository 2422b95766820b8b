from datetime import datetime, timezone
from decimal import Decimal

import pytest

import showsync.db as db_module
from showsync.canonicalize import DEFAULT_REGION_OFFSETS
from showsync.models import CanonicalShow, CanonicalVenue, ShowArtist


@pytest.fixture
def store(tmp_path):
    s = db_module.connect(tmp_path / "shows.db")
    yield s
    s.close()


@pytest.fixture
def offsets():
    return dict(DEFAULT_REGION_OFFSETS)


def make_show(
    headliner="The National",
    *openers,
    venue="Valley Bar",
    city="Phoenix",
    state="AZ",
    when=datetime(2026, 1, 31, 3, 0, tzinfo=timezone.utc),
    **fields,
) -> CanonicalShow:
    artists = [ShowArtist(name=headliner, position=0, headliner=True)] if headliner else []
    artists += [ShowArtist(name=name, position=i) for i, name in enumerate(openers, start=1)]
    fields.setdefault("price", Decimal("25"))
    return CanonicalShow(
        event_date=when,
        venue=CanonicalVenue(name=venue, city=city, state=state),
        artists=artists,
        **fields,
    )
