from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

SHOW_STATUSES = ("pending", "approved", "rejected", "private")
SHOW_SOURCES = ("user", "scraper")

# Stable outcome vocabulary shown to callers
IMPORTED = "IMPORTED"
WOULD_IMPORT = "WOULD IMPORT"
DUPLICATE = "DUPLICATE"
ERROR = "ERROR"
SKIP = "SKIP"


@dataclass
class Social:
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    twitter: Optional[str] = None
    youtube: Optional[str] = None
    spotify: Optional[str] = None
    soundcloud: Optional[str] = None
    bandcamp: Optional[str] = None
    website: Optional[str] = None


@dataclass
class CanonicalVenue:
    name: str
    city: str
    state: str
    address: Optional[str] = None
    zipcode: Optional[str] = None
    verified: bool = False
    social: Social = field(default_factory=Social)
    slug: Optional[str] = None
    # Populated by the store after insert
    id: Optional[int] = field(default=None, repr=False)


@dataclass
class CanonicalArtist:
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    bandcamp_embed_url: Optional[str] = None
    social: Social = field(default_factory=Social)
    slug: Optional[str] = None
    id: Optional[int] = field(default=None, repr=False)


@dataclass
class ShowArtist:
    name: str
    position: int
    headliner: bool = False


@dataclass
class CanonicalShow:
    event_date: datetime           # tz-aware, always UTC
    venue: CanonicalVenue
    artists: list[ShowArtist] = field(default_factory=list)
    title: Optional[str] = None
    price: Optional[Decimal] = None
    age_requirement: Optional[str] = None
    description: Optional[str] = None
    ticket_url: Optional[str] = None
    image_url: Optional[str] = None
    is_sold_out: bool = False
    is_cancelled: bool = False
    status: str = "pending"
    source: str = "user"
    source_venue: Optional[str] = None     # provider/venue key that scraped it
    source_event_id: Optional[str] = None  # the source's own event id
    scraped_at: Optional[datetime] = None
    slug: Optional[str] = None
    id: Optional[int] = field(default=None, repr=False)

    @property
    def headliner(self) -> Optional[ShowArtist]:
        for artist in self.artists:
            if artist.headliner:
                return artist
        return self.artists[0] if self.artists else None

    @property
    def has_source_identity(self) -> bool:
        return bool(self.source_venue and self.source_event_id)


@dataclass
class RawEvent:
    source_venue: str
    payload: Any                   # provider-specific dict or HTML fragment
    url: str = ""


@dataclass
class ProviderEvent:
    start_local: datetime          # naive, venue wall-clock time
    venue_name: str
    venue_city: str
    venue_state: str
    source_venue: str
    source_event_id: str
    source_url: str
    artist_names: list[str] = field(default_factory=list)
    title: Optional[str] = None
    headliner: Optional[str] = None  # set only when the source marks one explicitly
    price: Optional[str] = None      # free text, e.g. "$20", "Free"
    age_requirement: Optional[str] = None
    venue_address: Optional[str] = None
    ticket_url: Optional[str] = None
    image_url: Optional[str] = None
    doors_time: Optional[str] = None
    is_sold_out: bool = False
    is_cancelled: bool = False


@dataclass
class Batch:
    venues: list[CanonicalVenue] = field(default_factory=list)
    artists: list[CanonicalArtist] = field(default_factory=list)
    shows: list[CanonicalShow] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.venues) + len(self.artists) + len(self.shows)


@dataclass
class Outcome:
    total: int = 0
    imported: int = 0
    duplicates: int = 0
    errors: int = 0
    messages: list[str] = field(default_factory=list)

    def record(self, status: str, message: str) -> None:
        self.total += 1
        if status in (IMPORTED, WOULD_IMPORT):
            self.imported += 1
        elif status == DUPLICATE:
            self.duplicates += 1
        else:
            self.errors += 1
        self.messages.append(f"{status}: {message}")


@dataclass
class BatchResult:
    shows: Outcome = field(default_factory=Outcome)
    artists: Outcome = field(default_factory=Outcome)
    venues: Outcome = field(default_factory=Outcome)


@dataclass
class NaturalKey:
    headliner: str
    venue: str
    date: date

    def __str__(self) -> str:
        return f"{self.headliner} @ {self.venue} on {self.date.isoformat()}"
