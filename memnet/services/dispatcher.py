"""
Action dispatcher: one request type per action, one entry point.

``dispatch(payload, services)`` parses the camelCase action envelope into the
matching request dataclass, routes it to its handler and returns the response
envelope ``{success, action, message, data, timestamp, metadata}``.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, fields
from typing import Any, Callable, Optional

from memnet import __version__
from memnet.config import MAX_TAG_ITEMS, MAX_TAG_LENGTH
from memnet.db import MemoryServices
from memnet.errors import NotFoundError, ValidationError
from memnet.models import utc_now_iso
from memnet.services import memory_analysis, reconciliation
from memnet.services.api_tools import API_TOOL_PARAMETERS, build_api_tool_script
from memnet.services.memory_shared import ActionResult, action_boundary
from memnet.services.tool_sandbox import check_script
from memnet.validators import (
    require_fields,
    require_key,
    validate_choice,
    validate_mapping,
    validate_required,
    validate_string_list,
)

EXPORT_FORMATS = ("json", "csv", "txt")


@dataclass(frozen=True)
class StoreRequest:
    key: Optional[str] = None
    value: Any = None
    type: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class RetrieveRequest:
    key: Optional[str] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class SearchRequest:
    query: Optional[str] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class ListRequest:
    tags: Optional[list] = None
    page: Optional[int] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class DeleteRequest:
    key: Optional[str] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class UpdateRequest:
    key: Optional[str] = None
    value: Any = None
    description: Optional[str] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class CreateToolRequest:
    tool_name: Optional[str] = None
    tool_description: Optional[str] = None
    tool_type: Optional[str] = None
    parameters: Optional[dict] = None
    handler_code: Optional[str] = None
    network: bool = False
    tags: Optional[list] = None


@dataclass(frozen=True)
class CreateApiToolRequest:
    tool_name: Optional[str] = None
    tool_description: Optional[str] = None
    api_url: Optional[str] = None
    api_method: Optional[str] = None
    api_headers: Optional[dict] = None
    api_auth: Optional[dict] = None
    api_timeout: Optional[int] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class ExecuteToolRequest:
    tool_id: Optional[str] = None
    tool_name: Optional[str] = None
    args: Optional[dict] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class ListToolsRequest:
    tags: Optional[list] = None
    page: Optional[int] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class DeleteToolRequest:
    tool_id: Optional[str] = None
    tool_name: Optional[str] = None
    tags: Optional[list] = None


@dataclass(frozen=True)
class ClearAllRequest:
    tags: Optional[list] = None


@dataclass(frozen=True)
class ClearToolsRequest:
    tags: Optional[list] = None


@dataclass(frozen=True)
class ResetRequest:
    tags: Optional[list] = None


@dataclass(frozen=True)
class AnalyzeRequest:
    analysis_type: Optional[str] = None


@dataclass(frozen=True)
class SyncAllRequest:
    pass


@dataclass(frozen=True)
class ExportRequest:
    format: Optional[str] = None


@dataclass(frozen=True)
class ImportRequest:
    value: Any = None


ACTIONS: dict[str, type] = {
    "store": StoreRequest,
    "retrieve": RetrieveRequest,
    "search": SearchRequest,
    "list": ListRequest,
    "delete": DeleteRequest,
    "update": UpdateRequest,
    "create_tool": CreateToolRequest,
    "create_api_tool": CreateApiToolRequest,
    "execute_tool": ExecuteToolRequest,
    "list_tools": ListToolsRequest,
    "delete_tool": DeleteToolRequest,
    "clear_all": ClearAllRequest,
    "clear_tools": ClearToolsRequest,
    "reset": ResetRequest,
    "analyze": AnalyzeRequest,
    "stats": AnalyzeRequest,
    "sync_all": SyncAllRequest,
    "export": ExportRequest,
    "import": ImportRequest,
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def parse_request(payload: Any):
    """Build the request dataclass for ``payload["action"]``.

    Fields that do not belong to the action are ignored; explicit nulls are
    treated as absent.
    """
    if not isinstance(payload, dict):
        raise ValidationError("request must be an object", field="action", error_type="invalid_type")
    action = payload.get("action")
    if not action:
        raise ValidationError("action is required", field="action", error_type="required")
    request_cls = ACTIONS.get(action)
    if request_cls is None:
        raise ValidationError(
            f"Unknown action '{action}'. Valid actions: {', '.join(ACTIONS)}",
            field="action",
            error_type="invalid_value",
        )
    kwargs = {}
    for spec in fields(request_cls):
        value = payload.get(_camel(spec.name))
        if value is not None:
            kwargs[spec.name] = value
    validate_string_list(kwargs.get("tags"), "tags", MAX_TAG_ITEMS, MAX_TAG_LENGTH)
    return request_cls(**kwargs)


def _tool_identifier(tool_id: Optional[str], tool_name: Optional[str]) -> str:
    identifier = tool_id or tool_name
    if not identifier:
        raise ValidationError("toolId or toolName is required", field="toolId", error_type="required")
    return identifier


# Entries


def _handle_store(request: StoreRequest, services: MemoryServices) -> ActionResult:
    entry = services.entries.store(
        request.key,
        request.value,
        request.type or "text",
        request.description,
        request.tags,
    )
    data = entry.to_dict()
    mirror = reconciliation.mirror_for(services, request.tags)
    if mirror is not None:
        data.update(reconciliation.replicate_entry(mirror, entry))
    return ActionResult(f"Stored '{entry.key}'", data)


def _handle_retrieve(request: RetrieveRequest, services: MemoryServices) -> ActionResult:
    require_fields({"key": request.key})
    require_key(request.key)
    data = reconciliation.retrieve_public(services, request.key, request.tags)
    if data is None:
        raise NotFoundError(f"Entry '{request.key}' not found", kind="entry", identifier=request.key)
    return ActionResult(f"Retrieved '{request.key}' ({data['source']})", data)


def _handle_search(request: SearchRequest, services: MemoryServices) -> ActionResult:
    require_fields({"query": request.query})
    result = services.search.search(request.query, request.limit)
    return ActionResult(f"Found {result.total_found} result(s) for '{request.query}'", result.to_dict())


def _handle_list(request: ListRequest, services: MemoryServices) -> ActionResult:
    data = reconciliation.merged_list_entries(services, request.tags, request.page, request.limit)
    return ActionResult(f"Listed {len(data['items'])} of {data['pagination']['total']} entries", data)


def _handle_delete(request: DeleteRequest, services: MemoryServices) -> ActionResult:
    require_fields({"key": request.key})
    if reconciliation.mirror_for(services, request.tags) is not None:
        data = reconciliation.delete_public(services, request.key)
        return ActionResult(data["message"], data, success=data["success"])
    deleted = services.entries.delete(request.key)
    message = f"Deleted '{request.key}'" if deleted else f"Entry '{request.key}' not found"
    return ActionResult(message, {"key": request.key, "deleted": deleted})


def _handle_update(request: UpdateRequest, services: MemoryServices) -> ActionResult:
    entry = services.entries.update(request.key, request.value, request.description, request.tags)
    if entry is None:
        raise NotFoundError(f"Entry '{request.key}' not found", kind="entry", identifier=request.key)
    data = entry.to_dict()
    mirror = reconciliation.mirror_for(services, request.tags)
    if mirror is not None:
        data.update(reconciliation.replicate_entry(mirror, entry))
    return ActionResult(f"Updated '{entry.key}'", data)


# Tools


def _publish_tool(tool, tags, services: MemoryServices) -> dict:
    data = tool.to_dict()
    mirror = reconciliation.mirror_for(services, tags)
    if mirror is not None:
        data.update(reconciliation.replicate_tool(mirror, tool))
    return data


def _handle_create_tool(request: CreateToolRequest, services: MemoryServices) -> ActionResult:
    require_fields({
        "toolName": request.tool_name,
        "toolDescription": request.tool_description,
        "handlerCode": request.handler_code,
    })
    check_script(request.handler_code)
    tool = services.tools.create_tool(
        request.tool_name,
        request.tool_description,
        request.handler_code,
        request.tool_type or "processor",
        request.parameters,
        network=bool(request.network),
    )
    return ActionResult(f"Created tool '{tool.name}'", _publish_tool(tool, request.tags, services))


def _handle_create_api_tool(request: CreateApiToolRequest, services: MemoryServices) -> ActionResult:
    require_fields({
        "toolName": request.tool_name,
        "toolDescription": request.tool_description,
        "apiUrl": request.api_url,
    })
    script = build_api_tool_script(
        request.api_url,
        request.api_method or "GET",
        request.api_headers,
        request.api_auth,
        request.api_timeout,
    )
    tool = services.tools.create_tool(
        request.tool_name,
        request.tool_description,
        script,
        "processor",
        API_TOOL_PARAMETERS,
        network=True,
    )
    return ActionResult(f"Created API tool '{tool.name}'", _publish_tool(tool, request.tags, services))


def _handle_execute_tool(request: ExecuteToolRequest, services: MemoryServices) -> ActionResult:
    identifier = _tool_identifier(request.tool_id, request.tool_name)
    validate_mapping(request.args, "args")
    outcome = reconciliation.execute_with_fallback(services, identifier, request.args, request.tags)
    return ActionResult(f"Executed tool '{outcome.tool.name}'", outcome.to_dict())


def _handle_list_tools(request: ListToolsRequest, services: MemoryServices) -> ActionResult:
    data = reconciliation.merged_list_tools(services, request.tags, request.page, request.limit)
    return ActionResult(f"Listed {len(data['items'])} of {data['pagination']['total']} tools", data)


def _handle_delete_tool(request: DeleteToolRequest, services: MemoryServices) -> ActionResult:
    identifier = _tool_identifier(request.tool_id, request.tool_name)
    if reconciliation.mirror_for(services, request.tags) is not None:
        data = reconciliation.delete_tool_public(services, request.tool_id, request.tool_name)
        return ActionResult(data["message"], data, success=data["success"])
    tool = services.tools.get_tool(identifier)
    deleted = tool is not None and services.tools.delete_tool(tool.id)
    message = f"Deleted tool '{tool.name}'" if deleted else f"Tool '{identifier}' not found"
    return ActionResult(message, {"toolId": tool.id if tool else None, "deleted": deleted})


# Bulk operations


def _clear_entries(services: MemoryServices, tags) -> dict:
    data = {"cleared": services.entries.clear_all()}
    mirror = reconciliation.mirror_for(services, tags)
    if mirror is not None:
        remote = reconciliation.clear_remote_memories(mirror)
        data.update({"firebaseCleared": remote["deleted"], "errors": remote["errors"]})
    return data


def _clear_tools(services: MemoryServices, tags) -> dict:
    data = {"cleared": services.tools.clear_all_tools()}
    mirror = reconciliation.mirror_for(services, tags)
    if mirror is not None:
        remote = reconciliation.clear_remote_tools(mirror)
        data.update({"firebaseCleared": remote["deleted"], "errors": remote["errors"]})
    return data


def _handle_clear_all(request: ClearAllRequest, services: MemoryServices) -> ActionResult:
    data = _clear_entries(services, request.tags)
    return ActionResult(f"Cleared {data['cleared']} entries", data)


def _handle_clear_tools(request: ClearToolsRequest, services: MemoryServices) -> ActionResult:
    data = _clear_tools(services, request.tags)
    return ActionResult(f"Cleared {data['cleared']} tools", data)


def _handle_reset(request: ResetRequest, services: MemoryServices) -> ActionResult:
    data = {
        "entries": _clear_entries(services, request.tags),
        "tools": _clear_tools(services, request.tags),
    }
    return ActionResult(
        f"Reset: removed {data['entries']['cleared']} entries and {data['tools']['cleared']} tools",
        data,
    )


def _handle_analyze(request: AnalyzeRequest, services: MemoryServices) -> ActionResult:
    analysis_type = request.analysis_type or "summary"
    data = memory_analysis.analyze(services, analysis_type)
    return ActionResult(f"Analysis '{analysis_type}' complete", data)


def _handle_sync_all(request: SyncAllRequest, services: MemoryServices) -> ActionResult:
    data = reconciliation.sync_all(services)
    failed = data["memories"]["failed"] + data["tools"]["failed"]
    message = "Synced all records to the mirror" if not failed else f"Sync finished with {failed} failure(s)"
    return ActionResult(message, data, success=not failed)


def _entries_csv(entries: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["key", "type", "description", "createdAt", "accessCount"])
    for entry in entries:
        writer.writerow([
            entry["key"],
            entry["type"],
            entry["description"] or "",
            entry["createdAt"],
            entry["accessCount"],
        ])
    return buffer.getvalue()


def _entries_text(entries: list[dict]) -> str:
    lines = []
    for entry in entries:
        value = entry["value"]
        rendered = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
        lines.append(f"{entry['key']}: {rendered}")
    return "\n\n".join(lines)


def _handle_export(request: ExportRequest, services: MemoryServices) -> ActionResult:
    export_format = request.format or "json"
    validate_choice(export_format, "format", EXPORT_FORMATS)
    entries = [entry.to_dict() for entry in services.entries.list_entries()]
    if export_format == "csv":
        return ActionResult(f"Exported {len(entries)} entries as csv", _entries_csv(entries))
    if export_format == "txt":
        return ActionResult(f"Exported {len(entries)} entries as txt", _entries_text(entries))
    tools = [tool.to_dict() for tool in services.tools.list_tools()]
    data = {
        "entries": entries,
        "tools": tools,
        "timestamp": utc_now_iso(),
        "version": __version__,
    }
    return ActionResult(f"Exported {len(entries)} entries and {len(tools)} tools", data)


def _handle_import(request: ImportRequest, services: MemoryServices) -> ActionResult:
    result = validate_required({"value": request.value})
    if not result:
        raise ValidationError(result.error, field="value", error_type="required")
    payload = request.value
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise ValidationError("value must be an export object or its JSON text", field="value") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("entries"), list):
        raise ValidationError("value.entries must be a list", field="value", error_type="invalid_type")
    restored = 0
    errors = []
    for index, record in enumerate(payload["entries"]):
        if not isinstance(record, dict):
            errors.append({"index": index, "error": "entry must be an object"})
            continue
        try:
            services.entries.store(
                record.get("key"),
                record.get("value"),
                record.get("type") or "text",
                record.get("description"),
                record.get("tags"),
            )
        except ValidationError as exc:
            errors.append({"index": index, "key": record.get("key"), "error": str(exc)})
            continue
        restored += 1
    data = {"restored": restored, "skipped": len(errors), "errors": errors}
    return ActionResult(f"Imported {restored} entries ({len(errors)} skipped)", data)


_HANDLERS: dict[type, Callable[[Any, MemoryServices], ActionResult]] = {
    StoreRequest: _handle_store,
    RetrieveRequest: _handle_retrieve,
    SearchRequest: _handle_search,
    ListRequest: _handle_list,
    DeleteRequest: _handle_delete,
    UpdateRequest: _handle_update,
    CreateToolRequest: _handle_create_tool,
    CreateApiToolRequest: _handle_create_api_tool,
    ExecuteToolRequest: _handle_execute_tool,
    ListToolsRequest: _handle_list_tools,
    DeleteToolRequest: _handle_delete_tool,
    ClearAllRequest: _handle_clear_all,
    ClearToolsRequest: _handle_clear_tools,
    ResetRequest: _handle_reset,
    AnalyzeRequest: _handle_analyze,
    SyncAllRequest: _handle_sync_all,
    ExportRequest: _handle_export,
    ImportRequest: _handle_import,
}


@action_boundary
def dispatch(payload: Any, services: MemoryServices) -> ActionResult:
    request = parse_request(payload)
    return _HANDLERS[type(request)](request, services)
