import pytest
import responses as rsps

from showsync.errors import AuthError
from showsync.models import Batch, BatchResult
from showsync.sync import LocalTarget, open_target, require_credentials, sync_targets

from conftest import make_show

ENVIRONMENTS = {
    "stage": {"url": "https://api-stage.example.com"},
    "production": {"url": "https://api.example.com"},
}

_EMPTY = {"total": 0, "imported": 0, "duplicates": 0, "errors": 0, "messages": []}


@rsps.activate
def test_missing_credential_fails_only_that_target():
    rsps.add(rsps.POST, "https://api-stage.example.com/admin/data/import", json={
        "shows": {"total": 1, "imported": 1, "duplicates": 0, "errors": 0, "messages": ["WOULD IMPORT: Show 'x'"]},
        "artists": _EMPTY,
        "venues": _EMPTY,
    })

    report = sync_targets(
        Batch(shows=[make_show("The National")]),
        ["stage", "production"],
        ENVIRONMENTS,
        {"stage": "stage-token"},
        dry_run=True,
    )

    assert report.results["stage"].shows.imported == 1
    assert "production" not in report.results
    assert "no credential configured" in report.failures["production"]
    assert not report.ok
    # nothing was sent to production
    assert [c.request.url for c in rsps.calls] == ["https://api-stage.example.com/admin/data/import"]


@rsps.activate
def test_unknown_target_is_a_configuration_failure():
    report = sync_targets(Batch(), ["qa"], ENVIRONMENTS, {"qa": "token"})

    assert report.results == {}
    assert "unknown environment" in report.failures["qa"]
    assert len(rsps.calls) == 0


def test_failing_target_does_not_affect_others():
    class FakeClient:
        def __init__(self, name, base_url, token):
            self.name = name

        def import_batch(self, batch, dry_run=False):
            if self.name == "production":
                raise AuthError(self.name, "credential rejected (HTTP 401)")
            return BatchResult()

        def close(self):
            pass

    report = sync_targets(
        Batch(), ["stage", "production"], ENVIRONMENTS,
        {"stage": "a", "production": "b"}, client_factory=FakeClient,
    )

    assert isinstance(report.results["stage"], BatchResult)
    assert "credential rejected" in report.failures["production"]


def test_require_credentials_is_strict():
    require_credentials(["stage"], {"stage": "a"})
    with pytest.raises(AuthError):
        require_credentials(["stage", "production"], {"stage": "a"})


def test_require_credentials_skips_local_databases():
    environments = {**ENVIRONMENTS, "local": {"database": "data/shows.db"}}
    require_credentials(["local", "stage"], {"stage": "a"}, environments)


def test_open_target_raises_before_any_request():
    with pytest.raises(AuthError):
        open_target("production", ENVIRONMENTS, {})


def test_local_database_target(tmp_path, offsets):
    environments = {"local": {"database": str(tmp_path / "local.db")}}
    batch = Batch(shows=[make_show("The National")])

    first = sync_targets(batch, ["local"], environments, {}, offsets=offsets)
    second = sync_targets(batch, ["local"], environments, {}, offsets=offsets)

    assert first.results["local"].shows.imported == 1
    assert second.results["local"].shows.duplicates == 1


def test_local_target_exports_by_status(store, offsets):
    target = LocalTarget(store, offsets)
    target.import_batch(Batch(shows=[
        make_show("The National", status="approved"),
        make_show("Wand", venue="Crescent Ballroom"),
    ]))

    exported = target.export_batch(status="approved")

    assert [s.headliner.name for s in exported.shows] == ["The National"]
    assert [v.name for v in exported.venues] == ["Valley Bar"]
    assert len(target.export_batch(status="all").shows) == 2


def test_unusable_database_fails_only_that_target(tmp_path, offsets):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    environments = {
        "broken": {"database": str(blocker / "shows.db")},
        "local": {"database": str(tmp_path / "local.db")},
    }

    report = sync_targets(Batch(shows=[make_show("The National")]), ["broken", "local"], environments, {}, offsets=offsets)

    assert report.results["local"].shows.imported == 1
    assert "cannot open database" in report.failures["broken"]
    assert not report.ok


def test_targets_are_closed_after_sync(tmp_path, offsets, monkeypatch):
    closed = []
    monkeypatch.setattr(LocalTarget, "close", lambda self: closed.append(self.name))
    environments = {"a": {"database": str(tmp_path / "a.db")}, "b": {"database": str(tmp_path / "b.db")}}

    sync_targets(Batch(), ["a", "b"], environments, {}, offsets=offsets)

    assert sorted(closed) == ["a", "b"]
