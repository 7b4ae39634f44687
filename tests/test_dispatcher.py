import json

import pytest

from memnet.services.dispatcher import ACTIONS, StoreRequest, dispatch, parse_request


def _ok(response):
    assert response["success"] is True, response
    return response["data"]


def test_envelope_shape(services):
    response = dispatch({"action": "store", "key": "greeting", "value": "hi"}, services)

    assert set(response) == {"success", "action", "message", "data", "timestamp", "metadata"}
    assert response["action"] == "store"
    assert response["data"]["key"] == "greeting"
    assert response["metadata"]["executionTime"] >= 0
    assert response["timestamp"].endswith("Z")


def test_parse_request_builds_typed_variant():
    request = parse_request({"action": "store", "key": "k", "value": 0, "toolName": "ignored"})
    assert request == StoreRequest(key="k", value=0)


def test_every_action_is_routed(services):
    for action in ACTIONS:
        response = dispatch({"action": action}, services)
        assert response["metadata"].get("errorType") != "internal_error", action


@pytest.mark.parametrize("payload, error_type, field", [
    ({"action": "teleport"}, "validation_error", "action"),
    ({}, "validation_error", "action"),
    ({"action": "store", "key": "bad key", "value": 1}, "validation_error", "key"),
    ({"action": "store", "key": "k"}, "validation_error", "value"),
    ({"action": "search", "query": ""}, "validation_error", "query"),
    ({"action": "execute_tool"}, "validation_error", "toolId"),
])
def test_validation_failures_become_envelopes(services, payload, error_type, field):
    response = dispatch(payload, services)
    assert response["success"] is False
    assert response["metadata"]["errorType"] == error_type
    assert response["metadata"]["field"] == field


def test_non_object_payload_is_rejected(services):
    response = dispatch("store", services)
    assert response["success"] is False
    assert response["action"] is None


def test_entry_lifecycle(services):
    _ok(dispatch({"action": "store", "key": "k", "value": {"a": 1}, "type": "json", "tags": ["x"]}, services))

    retrieved = _ok(dispatch({"action": "retrieve", "key": "k"}, services))
    assert retrieved["value"] == {"a": 1}
    assert retrieved["accessCount"] == 1
    assert retrieved["source"] == "local"

    updated = _ok(dispatch({"action": "update", "key": "k", "value": {"a": 2}}, services))
    assert updated["tags"] == ["x"]

    listing = _ok(dispatch({"action": "list"}, services))
    assert listing["pagination"]["total"] == 1

    deleted = _ok(dispatch({"action": "delete", "key": "k"}, services))
    assert deleted == {"key": "k", "deleted": True}

    missing = dispatch({"action": "retrieve", "key": "k"}, services)
    assert missing["success"] is False
    assert missing["metadata"]["errorType"] == "not_found"


def test_update_missing_entry_is_not_found(services):
    response = dispatch({"action": "update", "key": "ghost", "value": 1}, services)
    assert response["metadata"]["errorType"] == "not_found"
    assert len(services.entries) == 0


def test_tool_lifecycle(services):
    created = _ok(dispatch({
        "action": "create_tool",
        "toolName": "double",
        "toolDescription": "Doubles n",
        "toolType": "processor",
        "handlerCode": "return args['n'] * 2",
    }, services))

    executed = _ok(dispatch({"action": "execute_tool", "toolId": created["id"], "args": {"n": 21}}, services))
    assert executed["result"] == 42
    assert executed["tool"]["name"] == "double"

    duplicate = dispatch({
        "action": "create_tool",
        "toolName": "double",
        "toolDescription": "Again",
        "handlerCode": "return 1",
    }, services)
    assert duplicate["metadata"]["errorType"] == "duplicate_name"

    tools = _ok(dispatch({"action": "list_tools"}, services))
    assert tools["items"][0]["usageCount"] == 1

    deleted = _ok(dispatch({"action": "delete_tool", "toolName": "double"}, services))
    assert deleted["deleted"] is True
    assert len(services.tools) == 0


def test_create_tool_rejects_bad_script(services):
    response = dispatch({
        "action": "create_tool",
        "toolName": "sneaky",
        "toolDescription": "Imports things",
        "handlerCode": "import os\nreturn os.name",
    }, services)
    assert response["metadata"]["errorType"] == "validation_error"
    assert response["metadata"]["field"] == "handlerCode"
    assert len(services.tools) == 0


def test_failing_script_is_execution_error(services):
    _ok(dispatch({
        "action": "create_tool",
        "toolName": "fails",
        "toolDescription": "Always fails",
        "handlerCode": "raise RuntimeError('nope')",
    }, services))
    response = dispatch({"action": "execute_tool", "toolName": "fails"}, services)
    assert response["metadata"]["errorType"] == "execution_error"
    assert "fails" in response["message"]


def test_create_api_tool_stores_network_tool(services):
    data = _ok(dispatch({
        "action": "create_api_tool",
        "toolName": "status",
        "toolDescription": "Service status",
        "apiUrl": "https://status.example.com/api",
        "apiTimeout": 2000,
    }, services))
    assert data["network"] is True
    assert data["type"] == "processor"
    assert set(data["parameters"]) == {"body", "params", "customHeaders", "customAuth"}


def test_stats_export_import_reset(services):
    _ok(dispatch({"action": "store", "key": "a", "value": "x", "type": "text"}, services))
    _ok(dispatch({"action": "store", "key": "b", "value": [1], "type": "list"}, services))
    _ok(dispatch({"action": "retrieve", "key": "b"}, services))

    stats = _ok(dispatch({"action": "stats"}, services))
    assert stats["totalEntries"] == 2
    assert stats["typeDistribution"] == {"text": 1, "list": 1}
    assert stats["mostAccessedEntry"] == "b"

    exported = _ok(dispatch({"action": "export"}, services))
    assert len(exported["entries"]) == 2

    csv_text = _ok(dispatch({"action": "export", "format": "csv"}, services))
    assert csv_text.splitlines()[0] == "key,type,description,createdAt,accessCount"

    reset = _ok(dispatch({"action": "reset"}, services))
    assert reset["entries"]["cleared"] == 2

    exported["entries"].append({"key": "bad key", "value": 1})
    imported = _ok(dispatch({"action": "import", "value": json.dumps(exported)}, services))
    assert imported["restored"] == 2
    assert imported["skipped"] == 1
    assert len(services.entries) == 2


def test_public_store_reports_sync(mirror_services, fake_mirror):
    data = _ok(dispatch({"action": "store", "key": "shared", "value": 1, "tags": ["public"]}, mirror_services))
    assert data["firebaseSync"] is True
    assert len(fake_mirror.memories) == 1

    fake_mirror.down = True
    data = _ok(dispatch({"action": "store", "key": "shared", "value": 2, "tags": ["public"]}, mirror_services))
    assert data["firebaseSync"] is False
    assert mirror_services.entries.get("shared").value == 2


def test_public_clear_reports_remote_counts(mirror_services, fake_mirror):
    fake_mirror.seed_memory(key="r1", value=1)
    mirror_services.entries.store("l1", 1)

    data = _ok(dispatch({"action": "clear_all", "tags": ["public"]}, mirror_services))

    assert data == {"cleared": 1, "firebaseCleared": 1, "errors": []}


def test_sync_all_without_mirror_is_remote_error(services):
    response = dispatch({"action": "sync_all"}, services)
    assert response["metadata"]["errorType"] == "remote_error"


@pytest.mark.parametrize("tags", ["republication", "public", 5, ["public", 7]])
def test_malformed_tags_never_reach_the_mirror(mirror_services, fake_mirror, tags):
    fake_mirror.seed_memory(key="remote", value=1)

    response = dispatch({"action": "clear_all", "tags": tags}, mirror_services)

    assert response["success"] is False
    assert response["metadata"]["errorType"] == "validation_error"
    assert response["metadata"]["field"] == "tags"
    assert len(fake_mirror.memories) == 1
