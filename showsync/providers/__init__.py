"""
Provider registry.

A provider is a pair of plain functions:

    fetch(key, venue_cfg, session) -> list[RawEvent]   # network, may raise FetchError
    parse(raw, venue_cfg) -> ProviderEvent             # pure, may raise ParseError

Each [venues.<key>] section of config.toml names its provider. To support a
new kind of listing page, add a module with fetch/parse and register it in
PROVIDERS below.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, Optional

import requests

from showsync.errors import ConfigError, FetchError, ParseError
from showsync.models import ProviderEvent
from showsync.providers import emptybottle, jsonld, seetickets, ticketweb, wix
from showsync.sessions import make_session

log = logging.getLogger(__name__)


class Provider(NamedTuple):
    name: str
    fetch: Callable
    parse: Callable


PROVIDERS: dict[str, Provider] = {
    "jsonld": Provider("jsonld", jsonld.fetch, jsonld.parse),
    "ticketweb": Provider("ticketweb", ticketweb.fetch, ticketweb.parse),
    "seetickets": Provider("seetickets", seetickets.fetch, seetickets.parse),
    "wix": Provider("wix", wix.fetch, wix.parse),
    "emptybottle": Provider("emptybottle", emptybottle.fetch, emptybottle.parse),
}


@dataclass
class FetchReport:
    source: str
    events: list[ProviderEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def get_provider(key: str, venue_cfg: dict) -> Provider:
    name = venue_cfg.get("provider")
    if not name:
        raise ConfigError(f"{key}: no provider configured")
    if name not in PROVIDERS:
        raise ConfigError(f"{key}: unknown provider '{name}' (available: {', '.join(sorted(PROVIDERS))})")
    return PROVIDERS[name]


def collect(key: str, venue_cfg: dict, session: Optional[requests.Session] = None) -> FetchReport:
    """Fetch one source and parse every event; a bad event becomes a warning."""
    report = FetchReport(source=key)
    try:
        provider = get_provider(key, venue_cfg)
        raws = provider.fetch(key, venue_cfg, session or make_session())
    except (ConfigError, FetchError) as exc:
        log.error("Fetching %s failed: %s", key, exc)
        report.error = str(exc)
        return report
    except Exception as exc:
        log.exception("Fetching %s failed unexpectedly", key)
        report.error = f"unexpected error: {exc!r}"
        return report

    seen: set[str] = set()
    for raw in raws:
        try:
            event = provider.parse(raw, venue_cfg)
        except ParseError as exc:
            log.warning("Skipping event from %s: %s", key, exc)
            report.warnings.append(str(exc))
            continue
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            log.warning("Skipping malformed event from %s: %r", key, exc)
            report.warnings.append(f"{key}: malformed event: {exc}")
            continue
        # listings repeat an event when it spans several calendar cells
        if event.source_event_id in seen:
            continue
        seen.add(event.source_event_id)
        report.events.append(event)

    log.info("%s: %d events, %d warnings", key, len(report.events), len(report.warnings))
    return report


def collect_all(sources: dict[str, dict], max_workers: int = 4) -> dict[str, FetchReport]:
    """Collect several sources concurrently; one failing source does not stop the rest."""
    if not sources:
        return {}
    session = make_session()
    reports: dict[str, FetchReport] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(sources))) as pool:
        futures = {pool.submit(collect, key, cfg, session): key for key, cfg in sources.items()}
        for future in as_completed(futures):
            key = futures[future]
            reports[key] = future.result()
    return {key: reports[key] for key in sources}
