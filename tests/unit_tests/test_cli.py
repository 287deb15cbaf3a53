from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from click.testing import CliRunner

from share_api import cli as cli_module
from share_api.cli import cli, find_orphaned_keys, record_id_from_key


@pytest.fixture
def wired_cli(monkeypatch, object_store, metadata_store):
    """Point the CLI at the in-memory stores."""
    monkeypatch.setattr(cli_module.ObjectStore, "from_settings", classmethod(lambda cls, settings: object_store))
    monkeypatch.setattr(cli_module, "metadata_store_from_settings", lambda settings: metadata_store)
    return CliRunner()


def test_record_id_from_key():
    file_id = str(ObjectId())

    assert record_id_from_key(f"{file_id}_report_v2.pdf") == file_id
    assert record_id_from_key("short_name.txt") == ""
    assert record_id_from_key("no-separator") == ""


def test_find_orphaned_keys():
    kept, orphaned = str(ObjectId()), str(ObjectId())
    modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
    objects = [(f"{kept}_a.txt", modified), (f"{orphaned}_b.txt", modified), ("stray-object", modified)]

    assert find_orphaned_keys(objects, {kept}) == [f"{orphaned}_b.txt", "stray-object"]


def test_find_orphaned_keys_skips_recent_objects():
    old, recent = f"{ObjectId()}_old.txt", f"{ObjectId()}_new.txt"
    cutoff = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    objects = [(old, cutoff - timedelta(minutes=1)), (recent, cutoff)]

    assert find_orphaned_keys(objects, set(), modified_before=cutoff) == [old]


def test_find_orphans_reports_without_deleting(wired_cli, object_store, metadata_store):
    kept = ObjectId()
    metadata_store.documents[kept] = {"_id": kept}
    object_store.objects = {f"{kept}_a.txt": b"1", f"{ObjectId()}_b.txt": b"2"}

    result = wired_cli.invoke(cli, ["find-orphans"])

    assert result.exit_code == 0, result.output
    assert "Found 1 orphaned object(s)" in result.output
    assert len(object_store.objects) == 2
    assert metadata_store.called("close")


def test_find_orphans_delete(wired_cli, object_store):
    orphan = f"{ObjectId()}_b.txt"
    object_store.objects = {orphan: b"2"}

    result = wired_cli.invoke(cli, ["find-orphans", "--delete"])

    assert result.exit_code == 0, result.output
    assert "Removed 1 orphaned object(s), 0 failed" in result.output
    assert object_store.objects == {}


def test_find_orphans_delete_failure_exits_nonzero(wired_cli, object_store):
    object_store.objects = {f"{ObjectId()}_b.txt": b"2"}
    object_store.fail("remove")

    result = wired_cli.invoke(cli, ["find-orphans", "--delete"])

    assert result.exit_code != 0
    assert len(object_store.objects) == 1


def test_find_orphans_delete_skips_recent_upload(wired_cli, object_store):
    stale = f"{ObjectId()}_stale.txt"
    object_store.objects = {stale: b"1"}
    recent = f"{ObjectId()}_recent.txt"
    object_store.put(recent, b"2")

    result = wired_cli.invoke(cli, ["find-orphans", "--delete"])

    assert result.exit_code == 0, result.output
    assert "Removed 1 orphaned object(s), 0 failed" in result.output
    assert list(object_store.objects) == [recent]


def test_find_orphans_older_than_zero_includes_recent_upload(wired_cli, object_store):
    recent = f"{ObjectId()}_recent.txt"
    object_store.put(recent, b"2")
    object_store.modified[recent] = datetime.now(timezone.utc) - timedelta(seconds=1)

    result = wired_cli.invoke(cli, ["find-orphans", "--older-than", "0"])

    assert result.exit_code == 0, result.output
    assert recent in result.output


def test_find_orphans_rejects_negative_age(wired_cli):
    result = wired_cli.invoke(cli, ["find-orphans", "--older-than", "-5"])

    assert result.exit_code != 0


def test_find_orphans_with_clean_bucket(wired_cli):
    result = wired_cli.invoke(cli, ["find-orphans"])

    assert result.exit_code == 0
    assert "No orphaned objects found" in result.output


def test_init_db(wired_cli, metadata_store, object_store):
    result = wired_cli.invoke(cli, ["init-db"])

    assert result.exit_code == 0, result.output
    assert object_store.called("ensure_bucket")
    assert metadata_store.called("init_collections")


def test_show_config(wired_cli):
    result = wired_cli.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "S3 Bucket:" in result.output
