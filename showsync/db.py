import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Optional, Union

from showsync.errors import PersistenceError
from showsync.models import (
    CanonicalArtist,
    CanonicalShow,
    CanonicalVenue,
    ShowArtist,
    Social,
)
from showsync.slugs import unique_slug

_SLUG_TABLES = ("shows", "artists", "venues")
_SOCIAL_COLUMNS = ("instagram", "facebook", "twitter", "youtube", "spotify", "soundcloud", "bandcamp", "website")
_SOCIAL_DDL = ",\n".join(f"            {c:<18} TEXT" for c in _SOCIAL_COLUMNS)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def connect(db_path: Union[Path, str]) -> "Store":
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    _create_schema(conn)
    return Store(conn)


def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(f"""
        CREATE TABLE IF NOT EXISTS venues (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            name               TEXT NOT NULL,
            slug               TEXT UNIQUE,
            address            TEXT,
            city               TEXT NOT NULL,
            state              TEXT NOT NULL,
            zipcode            TEXT,
            verified           INTEGER NOT NULL DEFAULT 0,
{_SOCIAL_DDL}
        );
        CREATE UNIQUE INDEX IF NOT EXISTS venues_name_city
            ON venues (lower(name), lower(city));

        CREATE TABLE IF NOT EXISTS artists (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            name               TEXT NOT NULL,
            slug               TEXT UNIQUE,
            city               TEXT,
            state              TEXT,
            bandcamp_embed_url TEXT,
{_SOCIAL_DDL}
        );
        CREATE UNIQUE INDEX IF NOT EXISTS artists_name
            ON artists (lower(name));

        CREATE TABLE IF NOT EXISTS shows (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            title           TEXT,
            slug            TEXT UNIQUE,
            event_date      TEXT NOT NULL,
            venue_id        INTEGER NOT NULL REFERENCES venues(id),
            price           TEXT,
            age_requirement TEXT,
            description     TEXT,
            ticket_url      TEXT,
            image_url       TEXT,
            is_sold_out     INTEGER NOT NULL DEFAULT 0,
            is_cancelled    INTEGER NOT NULL DEFAULT 0,
            status          TEXT NOT NULL DEFAULT 'pending',
            source          TEXT NOT NULL DEFAULT 'user',
            source_venue    TEXT,
            source_event_id TEXT,
            scraped_at      TEXT
        );
        CREATE UNIQUE INDEX IF NOT EXISTS shows_source_identity
            ON shows (source_venue, source_event_id)
            WHERE source_venue IS NOT NULL AND source_event_id IS NOT NULL;
        CREATE INDEX IF NOT EXISTS shows_event_date ON shows (event_date);

        CREATE TABLE IF NOT EXISTS show_artists (
            show_id   INTEGER NOT NULL REFERENCES shows(id),
            artist_id INTEGER NOT NULL REFERENCES artists(id),
            position  INTEGER NOT NULL,
            set_type  TEXT NOT NULL,
            PRIMARY KEY (show_id, artist_id)
        );
    """)
    conn.commit()


def format_ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class Store:
    """
    One environment's persisted shows, artists and venues.

    The connection is shared between threads; every statement and every
    transaction holds the store lock.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            try:
                yield
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise PersistenceError(str(exc)) from exc
            except BaseException:
                self.conn.rollback()
                raise

    def _execute(self, sql: str, params=()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self.conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc

    def count(self, table: str) -> int:
        if table not in _SLUG_TABLES + ("show_artists",):
            raise ValueError(f"unknown table: {table}")
        return self._execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    # --- Venues ---

    def find_venues(self, name: str, city: str) -> list[CanonicalVenue]:
        rows = self._execute(
            "SELECT * FROM venues WHERE lower(name) = lower(?) AND lower(city) = lower(?) ORDER BY id",
            (name.strip(), city.strip()),
        ).fetchall()
        return [_row_to_venue(r) for r in rows]

    def get_venue(self, venue_id: int) -> Optional[CanonicalVenue]:
        row = self._execute("SELECT * FROM venues WHERE id = ?", (venue_id,)).fetchone()
        return _row_to_venue(row) if row else None

    def insert_venue(self, venue: CanonicalVenue) -> int:
        params = {
            "name": venue.name.strip(),
            "address": venue.address,
            "city": venue.city.strip(),
            "state": venue.state.strip(),
            "zipcode": venue.zipcode,
            "verified": 1 if venue.verified else 0,
            **_social_params(venue.social),
        }
        cursor = self._execute(
            f"""
            INSERT INTO venues (name, address, city, state, zipcode, verified, {", ".join(_SOCIAL_COLUMNS)})
            VALUES (:name, :address, :city, :state, :zipcode, :verified,
                    {", ".join(":" + c for c in _SOCIAL_COLUMNS)})
            """,
            params,
        )
        return cursor.lastrowid

    # --- Artists ---

    def find_artists(self, name: str) -> list[CanonicalArtist]:
        rows = self._execute(
            "SELECT * FROM artists WHERE lower(name) = lower(?) ORDER BY id",
            (" ".join(name.split()),),
        ).fetchall()
        return [_row_to_artist(r) for r in rows]

    def get_artist(self, artist_id: int) -> Optional[CanonicalArtist]:
        row = self._execute("SELECT * FROM artists WHERE id = ?", (artist_id,)).fetchone()
        return _row_to_artist(row) if row else None

    def insert_artist(self, artist: CanonicalArtist) -> int:
        params = {
            "name": " ".join(artist.name.split()),
            "city": artist.city,
            "state": artist.state,
            "bandcamp_embed_url": artist.bandcamp_embed_url,
            **_social_params(artist.social),
        }
        cursor = self._execute(
            f"""
            INSERT INTO artists (name, city, state, bandcamp_embed_url, {", ".join(_SOCIAL_COLUMNS)})
            VALUES (:name, :city, :state, :bandcamp_embed_url,
                    {", ".join(":" + c for c in _SOCIAL_COLUMNS)})
            """,
            params,
        )
        return cursor.lastrowid

    # --- Shows ---

    def find_show_by_source(self, source_venue: str, source_event_id: str) -> Optional[int]:
        row = self._execute(
            "SELECT id FROM shows WHERE source_venue = ? AND source_event_id = ?",
            (source_venue, source_event_id),
        ).fetchone()
        return row["id"] if row else None

    def find_shows_at_venue(self, venue_name: str, start: datetime, end: datetime) -> list[CanonicalShow]:
        """Shows at a venue (by name, any city) with start <= event_date < end, oldest id first."""
        rows = self._execute(
            """
            SELECT shows.id FROM shows
            JOIN venues ON venues.id = shows.venue_id
            WHERE lower(venues.name) = lower(?)
              AND shows.event_date >= ? AND shows.event_date < ?
            ORDER BY shows.id
            """,
            (venue_name.strip(), format_ts(start), format_ts(end)),
        ).fetchall()
        return [self.get_show(r["id"]) for r in rows]

    def get_show(self, show_id: int) -> Optional[CanonicalShow]:
        row = self._execute("SELECT * FROM shows WHERE id = ?", (show_id,)).fetchone()
        if not row:
            return None
        artist_rows = self._execute(
            """
            SELECT artists.name, show_artists.position, show_artists.set_type
            FROM show_artists JOIN artists ON artists.id = show_artists.artist_id
            WHERE show_artists.show_id = ?
            ORDER BY show_artists.position
            """,
            (show_id,),
        ).fetchall()
        return _row_to_show(row, self.get_venue(row["venue_id"]), artist_rows)

    def insert_show(self, show: CanonicalShow, venue_id: int, artist_ids: list[tuple[int, ShowArtist]]) -> int:
        cursor = self._execute(
            """
            INSERT INTO shows (title, event_date, venue_id, price, age_requirement, description,
                               ticket_url, image_url, is_sold_out, is_cancelled, status, source,
                               source_venue, source_event_id, scraped_at)
            VALUES (:title, :event_date, :venue_id, :price, :age_requirement, :description,
                    :ticket_url, :image_url, :is_sold_out, :is_cancelled, :status, :source,
                    :source_venue, :source_event_id, :scraped_at)
            """,
            {
                "title": show.title,
                "event_date": format_ts(show.event_date),
                "venue_id": venue_id,
                "price": str(show.price) if show.price is not None else None,
                "age_requirement": show.age_requirement,
                "description": show.description,
                "ticket_url": show.ticket_url,
                "image_url": show.image_url,
                "is_sold_out": 1 if show.is_sold_out else 0,
                "is_cancelled": 1 if show.is_cancelled else 0,
                "status": show.status,
                "source": show.source,
                "source_venue": show.source_venue or None,
                "source_event_id": show.source_event_id or None,
                "scraped_at": format_ts(show.scraped_at),
            },
        )
        show_id = cursor.lastrowid
        for artist_id, entry in artist_ids:
            self._execute(
                "INSERT INTO show_artists (show_id, artist_id, position, set_type) VALUES (?, ?, ?, ?)",
                (show_id, artist_id, entry.position, "headliner" if entry.headliner else "opener"),
            )
        return show_id

    def refresh_scraped_fields(self, show_id: int, show: CanonicalShow) -> None:
        """Update only fields a re-scrape may own; admin-editable fields are left alone."""
        self._execute(
            """
            UPDATE shows SET
                scraped_at  = COALESCE(:scraped_at, scraped_at),
                price       = COALESCE(:price, price),
                is_sold_out = :is_sold_out
            WHERE id = :id
            """,
            {
                "id": show_id,
                "scraped_at": format_ts(show.scraped_at),
                "price": str(show.price) if show.price is not None else None,
                "is_sold_out": 1 if show.is_sold_out else 0,
            },
        )

    def select_shows(
        self,
        status: str = "all",
        limit: Optional[int] = None,
        offset: int = 0,
        from_date: Optional[datetime] = None,
    ) -> list[CanonicalShow]:
        clauses, params = [], []
        if status and status != "all":
            clauses.append("status = ?")
            params.append(status)
        if from_date:
            clauses.append("event_date >= ?")
            params.append(format_ts(from_date))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT id FROM shows {where} ORDER BY event_date DESC, id"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        rows = self._execute(sql, params).fetchall()
        return [self.get_show(r["id"]) for r in rows]

    # --- Slugs ---

    def slug_owner(self, table: str, slug: str) -> Optional[int]:
        _check_slug_table(table)
        row = self._execute(f"SELECT id FROM {table} WHERE slug = ?", (slug,)).fetchone()
        return row["id"] if row else None

    def has_slug(self, table: str, entity_id: int) -> bool:
        _check_slug_table(table)
        row = self._execute(f"SELECT slug FROM {table} WHERE id = ?", (entity_id,)).fetchone()
        return bool(row and row["slug"])

    def assign_slug(self, table: str, entity_id: int, base: str) -> str:
        """Give a row without a slug its collision-free slug; an existing slug is returned unchanged."""
        _check_slug_table(table)
        with self._lock:
            row = self._execute(f"SELECT slug FROM {table} WHERE id = ?", (entity_id,)).fetchone()
            if row and row["slug"]:
                return row["slug"]
            slug = unique_slug(base, entity_id, lambda s: self.slug_owner(table, s))
            self._execute(f"UPDATE {table} SET slug = ? WHERE id = ?", (slug, entity_id))
            return slug

    def ids_missing_slug(self, table: str) -> list[int]:
        _check_slug_table(table)
        rows = self._execute(f"SELECT id FROM {table} WHERE slug IS NULL OR slug = '' ORDER BY id").fetchall()
        return [r["id"] for r in rows]


def _check_slug_table(table: str) -> None:
    if table not in _SLUG_TABLES:
        raise ValueError(f"unknown table: {table}")


def _social_params(social: Social) -> dict:
    return {c: getattr(social, c) for c in _SOCIAL_COLUMNS}


def _row_to_social(row: sqlite3.Row) -> Social:
    return Social(**{c: row[c] for c in _SOCIAL_COLUMNS})


def _row_to_venue(row: sqlite3.Row) -> CanonicalVenue:
    return CanonicalVenue(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        address=row["address"],
        city=row["city"],
        state=row["state"],
        zipcode=row["zipcode"],
        verified=bool(row["verified"]),
        social=_row_to_social(row),
    )


def _row_to_artist(row: sqlite3.Row) -> CanonicalArtist:
    return CanonicalArtist(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        city=row["city"],
        state=row["state"],
        bandcamp_embed_url=row["bandcamp_embed_url"],
        social=_row_to_social(row),
    )


def _row_to_show(row: sqlite3.Row, venue: CanonicalVenue, artist_rows: list[sqlite3.Row]) -> CanonicalShow:
    return CanonicalShow(
        id=row["id"],
        title=row["title"],
        slug=row["slug"],
        event_date=parse_ts(row["event_date"]),
        venue=venue,
        artists=[
            ShowArtist(name=a["name"], position=a["position"], headliner=a["set_type"] == "headliner")
            for a in artist_rows
        ],
        price=Decimal(row["price"]) if row["price"] is not None else None,
        age_requirement=row["age_requirement"],
        description=row["description"],
        ticket_url=row["ticket_url"],
        image_url=row["image_url"],
        is_sold_out=bool(row["is_sold_out"]),
        is_cancelled=bool(row["is_cancelled"]),
        status=row["status"],
        source=row["source"],
        source_venue=row["source_venue"],
        source_event_id=row["source_event_id"],
        scraped_at=parse_ts(row["scraped_at"]),
    )
