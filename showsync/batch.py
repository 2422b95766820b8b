"""
JSON wire format shared by batch files and the environments' export/import
endpoints. Keys are camelCase; event dates are RFC 3339 UTC strings.
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from showsync.db import format_ts
from showsync.errors import ValidationError
from showsync.models import (
    Batch,
    BatchResult,
    CanonicalArtist,
    CanonicalShow,
    CanonicalVenue,
    Outcome,
    ShowArtist,
    Social,
)

log = logging.getLogger(__name__)

_SOCIAL_FIELDS = ("instagram", "facebook", "twitter", "youtube", "spotify", "soundcloud", "bandcamp", "website")


def _parse_ts(value: Optional[str], field_name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        # the importer reports a show without a date as SKIP
        log.warning("Ignoring invalid %s '%s'", field_name, value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


def _social_to_dict(social: Social) -> dict:
    return {name: getattr(social, name) for name in _SOCIAL_FIELDS}


def _social_from_dict(data: dict) -> Social:
    return Social(**{name: data.get(name) for name in _SOCIAL_FIELDS})


def venue_to_dict(venue: CanonicalVenue) -> dict:
    return _drop_none({
        "name": venue.name,
        "address": venue.address,
        "city": venue.city,
        "state": venue.state,
        "zipcode": venue.zipcode,
        "verified": venue.verified,
        "slug": venue.slug,
        **_social_to_dict(venue.social),
    })


def venue_from_dict(data: dict) -> CanonicalVenue:
    return CanonicalVenue(
        name=data.get("name") or "",
        address=data.get("address"),
        city=data.get("city") or "",
        state=data.get("state") or "",
        zipcode=data.get("zipcode"),
        verified=bool(data.get("verified", False)),
        social=_social_from_dict(data),
    )


def artist_to_dict(artist: CanonicalArtist) -> dict:
    return _drop_none({
        "name": artist.name,
        "city": artist.city,
        "state": artist.state,
        "bandcampEmbedUrl": artist.bandcamp_embed_url,
        "slug": artist.slug,
        **_social_to_dict(artist.social),
    })


def artist_from_dict(data: dict) -> CanonicalArtist:
    return CanonicalArtist(
        name=data.get("name") or "",
        city=data.get("city"),
        state=data.get("state"),
        bandcamp_embed_url=data.get("bandcampEmbedUrl"),
        social=_social_from_dict(data),
    )


def show_to_dict(show: CanonicalShow) -> dict:
    return _drop_none({
        "title": show.title,
        "eventDate": format_ts(show.event_date),
        "city": show.venue.city,
        "state": show.venue.state,
        "price": float(show.price) if show.price is not None else None,
        "ageRequirement": show.age_requirement,
        "description": show.description,
        "ticketUrl": show.ticket_url,
        "imageUrl": show.image_url,
        "status": show.status,
        "source": show.source,
        "sourceVenue": show.source_venue,
        "sourceEventId": show.source_event_id,
        "scrapedAt": format_ts(show.scraped_at),
        "isSoldOut": show.is_sold_out,
        "isCancelled": show.is_cancelled,
        "slug": show.slug,
        "venues": [venue_to_dict(show.venue)],
        "artists": [
            {"name": a.name, "position": a.position, "setType": "headliner" if a.headliner else "opener"}
            for a in show.artists
        ],
    })


def show_from_dict(data: dict) -> CanonicalShow:
    venues = data.get("venues") or []
    if venues:
        venue = venue_from_dict(venues[0])
    else:
        venue = CanonicalVenue(name="", city=data.get("city") or "", state=data.get("state") or "")

    raw_artists = sorted(data.get("artists") or [], key=lambda a: a.get("position", 0))
    has_marked = any(a.get("setType") == "headliner" for a in raw_artists)
    artists = []
    for i, a in enumerate(raw_artists):
        headliner = a.get("setType") == "headliner" if has_marked else i == 0
        artists.append(ShowArtist(name=a.get("name") or "", position=a.get("position", i), headliner=headliner))

    price = data.get("price")
    return CanonicalShow(
        title=data.get("title") or None,
        event_date=_parse_ts(data.get("eventDate"), "eventDate"),
        venue=venue,
        artists=artists,
        price=Decimal(str(price)) if price is not None else None,
        age_requirement=data.get("ageRequirement"),
        description=data.get("description"),
        ticket_url=data.get("ticketUrl"),
        image_url=data.get("imageUrl"),
        is_sold_out=bool(data.get("isSoldOut", False)),
        is_cancelled=bool(data.get("isCancelled", False)),
        status=(data.get("status") or "pending").lower(),
        source=data.get("source") or ("scraper" if data.get("sourceEventId") else "user"),
        source_venue=data.get("sourceVenue"),
        source_event_id=data.get("sourceEventId"),
        scraped_at=_parse_ts(data.get("scrapedAt"), "scrapedAt"),
    )


def batch_to_dict(batch: Batch) -> dict[str, Any]:
    return {
        "venues": [venue_to_dict(v) for v in batch.venues],
        "artists": [artist_to_dict(a) for a in batch.artists],
        "shows": [show_to_dict(s) for s in batch.shows],
    }


def batch_from_dict(data: dict) -> Batch:
    return Batch(
        venues=[venue_from_dict(v) for v in data.get("venues") or []],
        artists=[artist_from_dict(a) for a in data.get("artists") or []],
        shows=[show_from_dict(s) for s in data.get("shows") or []],
    )


def dump_batch(batch: Batch, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(batch_to_dict(batch), indent=2))


def load_batch(path: Path) -> Batch:
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"cannot read batch file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"batch file {path} does not hold a JSON object")
    return batch_from_dict(data)


def outcome_from_dict(data: Optional[dict]) -> Outcome:
    data = data or {}
    return Outcome(
        total=data.get("total", 0),
        imported=data.get("imported", 0),
        duplicates=data.get("duplicates", 0),
        errors=data.get("errors", 0),
        messages=list(data.get("messages") or []),
    )


def result_from_dict(data: dict) -> BatchResult:
    return BatchResult(
        shows=outcome_from_dict(data.get("shows")),
        artists=outcome_from_dict(data.get("artists")),
        venues=outcome_from_dict(data.get("venues")),
    )


def result_to_dict(result: BatchResult) -> dict:
    return asdict(result)
