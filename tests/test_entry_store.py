import json

import pytest

from memnet.db import SnapshotFile
from memnet.errors import SnapshotCorruptError, ValidationError
from memnet.services.entry_store import EntryStore


def _store(tmp_path):
    return EntryStore(SnapshotFile(str(tmp_path / "memory.json"), "key"))


def test_store_then_retrieve_counts_each_access(tmp_path):
    store = _store(tmp_path)
    store.store("profile", {"name": "Ada", "langs": ["en", "fr"]}, "json")

    first = store.retrieve("profile")
    second = store.retrieve("profile")

    assert first.value == {"name": "Ada", "langs": ["en", "fr"]}
    assert first.access_count == 1
    assert second.access_count == 2


def test_store_is_a_pure_upsert(tmp_path):
    store = _store(tmp_path)
    original = store.store("note", "v1", description="first", tags=["a"])
    store.retrieve("note")

    replaced = store.store("note", "v2")

    assert len(store) == 1
    assert replaced.value == "v2"
    assert replaced.description is None
    assert replaced.tags == []
    assert replaced.access_count == 0
    assert replaced.id != original.id


def test_update_missing_key_never_creates(tmp_path):
    store = _store(tmp_path)
    assert store.update("ghost", "value") is None
    assert "ghost" not in store
    assert len(store) == 0


def test_update_replaces_only_given_fields(tmp_path):
    store = _store(tmp_path)
    store.store("note", "v1", description="keep me", tags=["x"])

    updated = store.update("note", "v2")
    assert updated.value == "v2"
    assert updated.description == "keep me"
    assert updated.tags == ["x"]

    updated = store.update("note", "v3", tags=["y", "y", "z"])
    assert updated.tags == ["y", "z"]


def test_invalid_input_leaves_store_untouched(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(ValidationError):
        store.store("bad key", "value")
    with pytest.raises(ValidationError):
        store.store("key", None)
    with pytest.raises(ValidationError):
        store.store("key", "value", type="spreadsheet")
    assert len(store) == 0
    assert not (tmp_path / "memory.json").exists()


def test_delete_and_clear(tmp_path):
    store = _store(tmp_path)
    store.store("a", 1)
    store.store("b", 2)
    store.store("c", 3)

    assert store.delete("a") is True
    assert store.delete("a") is False
    assert store.clear_all() == 2
    assert store.list_entries() == []


def test_list_orders_by_recent_update(tmp_path):
    store = _store(tmp_path)
    store.store("old", 1)
    store.store("new", 2)
    store.update("old", 3)

    assert [entry.key for entry in store.list_entries()] == ["old", "new"]


def test_returned_entries_are_copies(tmp_path):
    store = _store(tmp_path)
    entry = store.store("list", [1, 2])
    entry.value.append(3)
    assert store.get("list").value == [1, 2]


def test_snapshot_survives_reload(tmp_path):
    store = _store(tmp_path)
    store.store("persisted", {"n": 1}, "json", tags=["t"])
    store.retrieve("persisted")

    reloaded = _store(tmp_path)
    entry = reloaded.get("persisted")
    assert entry.value == {"n": 1}
    assert entry.access_count == 1

    records = json.loads((tmp_path / "memory.json").read_text())
    assert records[0]["accessCount"] == 1
    assert "lastAccessed" in records[0]


def test_missing_snapshot_means_empty_store(tmp_path):
    assert len(_store(tmp_path)) == 0


@pytest.mark.parametrize("content", ["{not json", '{"key": "x"}', '[{"value": 1}]'])
def test_malformed_snapshot_is_fatal(tmp_path, content):
    (tmp_path / "memory.json").write_text(content)
    with pytest.raises(SnapshotCorruptError):
        _store(tmp_path)


def test_failed_snapshot_write_leaves_store_unchanged(tmp_path, monkeypatch):
    store = _store(tmp_path)
    store.store("kept", "v1")
    store.store("doomed", 1)

    def fail_write(self, records):
        raise OSError("disk full")

    monkeypatch.setattr(SnapshotFile, "write", fail_write)

    with pytest.raises(OSError):
        store.store("added", "x")
    with pytest.raises(OSError):
        store.update("kept", "v2")
    with pytest.raises(OSError):
        store.retrieve("kept")
    with pytest.raises(OSError):
        store.delete("doomed")
    with pytest.raises(OSError):
        store.clear_all()

    assert len(store) == 2
    assert "added" not in store
    assert store.get("kept").value == "v1"
    assert store.get("kept").access_count == 0
    assert store.get("doomed").value == 1
