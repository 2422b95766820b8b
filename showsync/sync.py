"""
Replicate one batch into several target environments.

Each target is checked for configuration and a credential before anything is
sent to it; a target that fails the check, or whose import fails, is recorded
in `SyncReport.failures` while the other targets carry on. Targets are
independent: there is no rollback across them.
"""

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Optional

from showsync import db
from showsync.canonicalize import batch_from_shows
from showsync.client import EnvironmentClient
from showsync.errors import AuthError, ConfigError, ShowSyncError
from showsync.importer import import_batch
from showsync.models import Batch, BatchResult

log = logging.getLogger(__name__)


@dataclass
class SyncReport:
    results: dict[str, BatchResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class LocalTarget:
    """An in-process store behind the same interface as EnvironmentClient."""

    def __init__(self, store, offsets: Optional[dict[str, int]] = None, name: str = "local"):
        self.store = store
        self.offsets = offsets
        self.name = name

    def import_batch(self, batch: Batch, dry_run: bool = False) -> BatchResult:
        return import_batch(batch, self.store, dry_run=dry_run, offsets=self.offsets)

    def export_batch(self, status: Optional[str] = "approved") -> Batch:
        return batch_from_shows(self.store.select_shows(status=status or "all"))

    def close(self) -> None:
        self.store.close()


def require_credentials(
    targets: list[str],
    credentials: dict[str, str],
    environments: Optional[dict[str, dict]] = None,
) -> None:
    """Raise AuthError for the first target without a credential. Local database targets need none."""
    for name in targets:
        if (environments or {}).get(name, {}).get("database"):
            continue
        if not credentials.get(name):
            raise AuthError(name)


def open_target(
    name: str,
    environments: dict[str, dict],
    credentials: dict[str, str],
    client_factory: Callable = EnvironmentClient,
    offsets: Optional[dict[str, int]] = None,
):
    """The client for one configured environment; raises ConfigError / AuthError before any request."""
    env = environments.get(name)
    if env is None:
        raise ConfigError(f"{name}: unknown environment (known: {', '.join(sorted(environments)) or 'none'})")
    if env.get("database"):
        # a database path instead of a url: import in-process, no credential needed
        try:
            store = db.connect(env["database"])
        except (OSError, sqlite3.Error) as exc:
            raise ConfigError(f"{name}: cannot open database {env['database']}: {exc}") from exc
        return LocalTarget(store, offsets, name=name)
    if not env.get("url"):
        raise ConfigError(f"{name}: no url configured")
    token = credentials.get(name)
    if not token:
        raise AuthError(name)
    return client_factory(name, env["url"], token)


def sync_targets(
    batch: Batch,
    targets: list[str],
    environments: dict[str, dict],
    credentials: dict[str, str],
    dry_run: bool = False,
    client_factory: Callable = EnvironmentClient,
    max_workers: int = 4,
    offsets: Optional[dict[str, int]] = None,
) -> SyncReport:
    """
    Import `batch` into every environment named in `targets`.

    `environments` maps a name to its config section (a `url`, or a local
    `database` path) and `credentials` maps a name to its bearer token.
    Never raises for a single target's failure.
    """
    report = SyncReport()
    clients = {}

    for name in dict.fromkeys(targets):
        try:
            clients[name] = open_target(name, environments, credentials, client_factory, offsets)
        except ShowSyncError as exc:
            log.warning("Skipping target %s: %s", name, exc)
            report.failures[name] = str(exc)

    if not clients:
        return report

    try:
        _run_imports(batch, clients, dry_run, max_workers, report)
    finally:
        for client in clients.values():
            client.close()
    return report


def _run_imports(batch: Batch, clients: dict, dry_run: bool, max_workers: int, report: SyncReport) -> None:
    mode = "dry run" if dry_run else "import"
    with ThreadPoolExecutor(max_workers=min(max_workers, len(clients))) as pool:
        futures = {pool.submit(client.import_batch, batch, dry_run): name for name, client in clients.items()}
        for future in as_completed(futures):
            name = futures[future]
            try:
                report.results[name] = future.result()
            except ShowSyncError as exc:
                log.error("%s to %s failed: %s", mode, name, exc)
                report.failures[name] = str(exc)
            except Exception as exc:
                log.exception("Unexpected failure syncing to %s", name)
                report.failures[name] = f"unexpected error: {exc}"
            else:
                log.info("%s to %s finished", mode, name)
