import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from showsync import __version__
import showsync.config as cfg_module
import showsync.db as db_module
from showsync.batch import dump_batch, load_batch, result_to_dict
from showsync.canonicalize import batch_from_shows, canonicalize
from showsync.errors import ShowSyncError, ValidationError
from showsync.importer import import_batch
from showsync.logs import configure_logging
from showsync.models import Batch, BatchResult
from showsync.providers import collect_all
from showsync.slugs import backfill_slugs
from showsync.sync import open_target, require_credentials, sync_targets

log = logging.getLogger(__name__)


def _print_result(result: BatchResult, dry_run: bool, verbose: bool = False) -> None:
    verb = "would import" if dry_run else "imported"
    for name in ("venues", "artists", "shows"):
        outcome = getattr(result, name)
        if not outcome.total:
            continue
        print(
            f"  {name}: {outcome.total} total, {outcome.imported} {verb}, "
            f"{outcome.duplicates} duplicates, {outcome.errors} errors"
        )
        for message in outcome.messages:
            if verbose or not message.startswith("DUPLICATE"):
                print(f"    {message}")


def _discover(args, cfg) -> Batch:
    enabled_venues = cfg_module.get_venues(cfg)
    offsets = cfg_module.get_region_offsets(cfg)

    if args.venue:
        if args.venue not in enabled_venues:
            print(f"Error: no enabled venue '{args.venue}' in the config.", file=sys.stderr)
            print(f"Configured venues: {', '.join(sorted(enabled_venues))}", file=sys.stderr)
            sys.exit(1)
        sources = {args.venue: enabled_venues[args.venue]}
    else:
        sources = enabled_venues

    if not sources:
        print("No enabled venues found. Check your config.toml [venues] section.")
        return Batch()

    scraped_at = datetime.now(timezone.utc)
    shows = []
    for key, report in collect_all(sources).items():
        name = sources[key].get("name", key)
        if not report.ok:
            print(f"{name}: FAILED ({report.error})")
            continue
        kept = 0
        for event in report.events:
            try:
                shows.append(canonicalize(event, offsets, scraped_at=scraped_at))
                kept += 1
            except ValidationError as exc:
                report.warnings.append(str(exc))
                log.warning("Dropping event %s: %s", event.source_event_id, exc)
        warned = f" ({len(report.warnings)} skipped)" if report.warnings else ""
        print(f"{name}: {kept} events{warned}.")

    return batch_from_shows(shows)


def _cmd_discover(args, cfg):
    batch = _discover(args, cfg)
    out = Path(args.out)
    dump_batch(batch, out)
    print(f"Wrote {len(batch.shows)} shows, {len(batch.artists)} artists, {len(batch.venues)} venues to '{out}'.")


def _import_locally(batch: Batch, args, cfg) -> None:
    store = db_module.connect(cfg_module.get_database_path(cfg))
    try:
        result = import_batch(batch, store, dry_run=args.dry_run, offsets=cfg_module.get_region_offsets(cfg))
    finally:
        store.close()
    if getattr(args, "json", False):
        print(json.dumps(result_to_dict(result), indent=2))
        return
    print("Dry run (nothing written):" if args.dry_run else "Import:")
    _print_result(result, args.dry_run, args.verbose)


def _cmd_import(args, cfg):
    _import_locally(load_batch(Path(args.file)), args, cfg)


def _cmd_run(args, cfg):
    batch = _discover(args, cfg)
    _import_locally(batch, args, cfg)


def _cmd_export(args, cfg):
    target = open_target(
        args.env,
        cfg_module.get_environments(cfg),
        cfg_module.get_credentials(cfg),
        offsets=cfg_module.get_region_offsets(cfg),
    )
    status = None if args.status == "all" else args.status
    try:
        batch = target.export_batch(status=status)
    finally:
        target.close()
    out = Path(args.out)
    dump_batch(batch, out)
    print(f"Exported {len(batch.shows)} shows, {len(batch.artists)} artists, {len(batch.venues)} venues from {args.env} to '{out}'.")


def _cmd_sync(args, cfg):
    batch = load_batch(Path(args.file))
    if args.strict:
        require_credentials(args.target, cfg_module.get_credentials(cfg), cfg_module.get_environments(cfg))
    report = sync_targets(
        batch,
        args.target,
        cfg_module.get_environments(cfg),
        cfg_module.get_credentials(cfg),
        dry_run=args.dry_run,
        offsets=cfg_module.get_region_offsets(cfg),
    )
    if args.json:
        print(json.dumps({
            "results": {name: result_to_dict(r) for name, r in report.results.items()},
            "failures": report.failures,
        }, indent=2))
    else:
        _print_sync_report(report, args)
    if not report.ok:
        sys.exit(1)


def _print_sync_report(report, args):
    for name in args.target:
        if name in report.results:
            print(f"{name}{' (dry run)' if args.dry_run else ''}:")
            _print_result(report.results[name], args.dry_run, args.verbose)
        elif name in report.failures:
            print(f"{name}: FAILED ({report.failures[name]})")


def _cmd_backfill_slugs(args, cfg):
    store = db_module.connect(cfg_module.get_database_path(cfg))
    try:
        counts = backfill_slugs(store, cfg_module.get_region_offsets(cfg))
    finally:
        store.close()
    print(
        f"Assigned slugs to {counts['venues']} venues, {counts['artists']} artists "
        f"and {counts['shows']} shows."
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="showsync",
        description="Discover live-music listings and sync them between environments",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", default="config.toml", metavar="PATH",
        help="Path to config.toml (default: config.toml)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Debug logging, and list duplicates in import results",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # discover
    sp_discover = subparsers.add_parser("discover", help="Fetch venue listings and write a batch file")
    sp_discover.add_argument(
        "--venue", metavar="KEY",
        help="Only fetch this venue (by its key in config.toml)",
    )
    sp_discover.add_argument(
        "--out", default="data/batch.json", metavar="FILE",
        help="Where to write the batch (default: data/batch.json)",
    )

    # import
    sp_import = subparsers.add_parser("import", help="Import a batch file into the local database")
    sp_import.add_argument("file", metavar="FILE")
    sp_import.add_argument("--dry-run", action="store_true", help="Report what would happen without writing")
    sp_import.add_argument("--json", action="store_true", help="Print the per-record results as JSON")

    # run (discover + import)
    sp_run = subparsers.add_parser("run", help="Discover all venues then import into the local database")
    sp_run.add_argument(
        "--venue", metavar="KEY",
        help="Only fetch this venue (by its key in config.toml)",
    )
    sp_run.add_argument("--dry-run", action="store_true", help="Report what would happen without writing")

    # export
    sp_export = subparsers.add_parser("export", help="Export records from an environment to a batch file")
    sp_export.add_argument("--env", required=True, metavar="NAME", help="Environment name from config.toml")
    sp_export.add_argument(
        "--status", default="approved", choices=("approved", "pending", "rejected", "private", "all"),
        help="Only export shows with this status (default: approved)",
    )
    sp_export.add_argument("--out", required=True, metavar="FILE")

    # sync
    sp_sync = subparsers.add_parser("sync", help="Import a batch file into one or more environments")
    sp_sync.add_argument("file", metavar="FILE")
    sp_sync.add_argument(
        "--target", required=True, action="append", metavar="NAME",
        help="Environment to import into; repeat for several",
    )
    sp_sync.add_argument("--dry-run", action="store_true", help="Report what would happen without writing")
    sp_sync.add_argument(
        "--strict", action="store_true",
        help="Refuse to start unless every target has a credential",
    )
    sp_sync.add_argument("--json", action="store_true", help="Print the per-target results as JSON")

    # backfill-slugs
    subparsers.add_parser("backfill-slugs", help="Assign slugs to records that have none")

    args = parser.parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    commands = {
        "discover": _cmd_discover,
        "import": _cmd_import,
        "run": _cmd_run,
        "export": _cmd_export,
        "sync": _cmd_sync,
        "backfill-slugs": _cmd_backfill_slugs,
    }
    try:
        cfg = cfg_module.load(Path(args.config))
        commands[args.command](args, cfg)
    except ShowSyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
