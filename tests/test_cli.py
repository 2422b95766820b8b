import json

import pytest

import showsync.db as db_module
from showsync.batch import dump_batch
from showsync.cli import main
from showsync.models import Batch

from conftest import make_show


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    for key in ("SHOWSYNC_STAGE_TOKEN", "SHOWSYNC_PRODUCTION_TOKEN"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text(
        '[database]\npath = "data/shows.db"\n\n'
        '[environments.production]\nurl = "https://api.example.com"\n'
    )
    dump_batch(Batch(shows=[make_show("The National")]), tmp_path / "batch.json")
    return tmp_path


def test_import_dry_run_then_live(workspace, capsys):
    main(["import", "batch.json", "--dry-run"])
    out = capsys.readouterr().out
    assert "Dry run" in out
    assert "shows: 1 total, 1 would import" in out
    assert db_module.connect(workspace / "data" / "shows.db").count("shows") == 0

    main(["import", "batch.json"])
    out = capsys.readouterr().out
    assert "shows: 1 total, 1 imported" in out
    assert db_module.connect(workspace / "data" / "shows.db").count("shows") == 1


def test_sync_without_token_exits_non_zero(workspace, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["sync", "batch.json", "--target", "production", "--dry-run"])

    assert exc.value.code == 1
    assert "production: FAILED" in capsys.readouterr().out


def test_backfill_slugs(workspace, capsys):
    main(["import", "batch.json"])
    capsys.readouterr()

    main(["backfill-slugs"])

    assert "Assigned slugs to 0 venues, 0 artists and 0 shows." in capsys.readouterr().out


def test_missing_batch_file_is_reported(workspace, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["import", "nope.json"])

    assert exc.value.code == 1
    assert "cannot read batch file" in capsys.readouterr().err


def test_sync_strict_refuses_to_start_without_token(workspace, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["sync", "batch.json", "--target", "production", "--strict"])

    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert "Error: production: no credential configured" in captured.err
    assert "FAILED" not in captured.out


def test_import_json_output(workspace, capsys):
    main(["import", "batch.json", "--json"])

    result = json.loads(capsys.readouterr().out)
    assert result["shows"]["imported"] == 1
    assert result["venues"] == {"total": 0, "imported": 0, "duplicates": 0, "errors": 0, "messages": []}
