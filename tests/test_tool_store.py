import json

import pytest

from memnet.db import SnapshotFile
from memnet.errors import DuplicateNameError, ValidationError
from memnet.services.tool_store import ToolStore

SCRIPT = "return args"


def _store(tmp_path):
    return ToolStore(SnapshotFile(str(tmp_path / "tools.json"), "id"))


def test_create_and_lookup_by_id_or_name(tmp_path):
    store = _store(tmp_path)
    tool = store.create_tool("echo", "Echo arguments", SCRIPT)

    assert store.get_tool(tool.id).name == "echo"
    assert store.get_tool("echo").id == tool.id
    assert store.get_tool("missing") is None
    assert tool.type == "processor"
    assert tool.usage_count == 0


def test_duplicate_name_is_rejected(tmp_path):
    store = _store(tmp_path)
    store.create_tool("echo", "Echo arguments", SCRIPT)
    with pytest.raises(DuplicateNameError) as excinfo:
        store.create_tool("echo", "Another echo", SCRIPT)
    assert excinfo.value.error_code == "duplicate_name"
    assert len(store) == 1


def test_create_validates_fields(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(ValidationError):
        store.create_tool("bad.name", "desc", SCRIPT)
    with pytest.raises(ValidationError):
        store.create_tool("ok", "", SCRIPT)
    with pytest.raises(ValidationError):
        store.create_tool("ok", "desc", SCRIPT, type="widget")
    assert len(store) == 0


def test_delete_by_name_removes_exactly_one(tmp_path):
    store = _store(tmp_path)
    store.create_tool("first", "First tool", SCRIPT)
    second = store.create_tool("second", "Second tool", SCRIPT)

    target = store.get_tool("second")
    assert store.delete_tool(target.id) is True
    remaining = store.list_tools()
    assert len(remaining) == 1
    assert remaining[0].name == "first"
    assert store.get_tool(second.id) is None


def test_usage_is_counted_and_persisted(tmp_path):
    store = _store(tmp_path)
    tool = store.create_tool("echo", "Echo arguments", SCRIPT)
    store.record_usage(tool.id)
    store.record_usage(tool.id)

    reloaded = _store(tmp_path)
    assert reloaded.get_tool("echo").usage_count == 2
    records = json.loads((tmp_path / "tools.json").read_text())
    assert records[0]["handlerCode"] == SCRIPT


def test_list_newest_first_and_clear(tmp_path):
    store = _store(tmp_path)
    store.create_tool("older", "Older", SCRIPT)
    store.create_tool("newer", "Newer", SCRIPT)

    assert [tool.name for tool in store.list_tools()] == ["newer", "older"]
    assert store.clear_all_tools() == 2
    assert len(store) == 0


def test_legacy_handler_script_field_is_accepted(tmp_path):
    (tmp_path / "tools.json").write_text(json.dumps([
        {"id": "t1", "name": "legacy", "description": "Old record", "handlerScript": "return 1"},
    ]))
    assert _store(tmp_path).get_tool("legacy").handler_script == "return 1"


def test_failed_snapshot_write_leaves_tools_unchanged(tmp_path, monkeypatch):
    store = _store(tmp_path)
    tool = store.create_tool("echo", "Echo arguments", SCRIPT)

    def fail_write(self, records):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(SnapshotFile, "write", fail_write)

    with pytest.raises(OSError):
        store.create_tool("other", "Another tool", SCRIPT)
    with pytest.raises(OSError):
        store.record_usage(tool.id)
    with pytest.raises(OSError):
        store.delete_tool(tool.id)
    with pytest.raises(OSError):
        store.clear_all_tools()

    assert len(store) == 1
    assert store.get_tool("other") is None
    assert store.get_tool("echo").usage_count == 0
