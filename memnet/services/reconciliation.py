"""
Reconciliation between the local stores and the optional remote mirror.

Only requests tagged ``public`` touch the mirror, and only when one is
configured. Remote records win in merged reads; local writes stand when
replication fails. Nothing here holds state of its own.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Optional

from memnet.config import DEFAULT_PAGE_LIMIT, PUBLIC_TAG, logger
from memnet.db import MemoryServices
from memnet.errors import NotFoundError, RemoteSyncError, ValidationError
from memnet.models import SOURCE_LOCAL, SOURCE_MIRROR, MemoryEntry, ToolDefinition, parse_timestamp
from memnet.services.mirror_client import MirrorClient
from memnet.services.tool_sandbox import ExecutionOutcome
from memnet.validators import validate_limit


def is_public(tags: Optional[Iterable[str]]) -> bool:
    """True only for a tag list that contains the exact ``public`` tag."""
    return isinstance(tags, (list, tuple)) and PUBLIC_TAG in tags


def mirror_for(services: MemoryServices, tags: Optional[Iterable[str]]) -> Optional[MirrorClient]:
    """The mirror client when this request should reach it, else None."""
    if services.mirror is None or not is_public(tags):
        return None
    return services.mirror


def paginate(items: list[dict], page: Optional[int] = None, limit: Optional[int] = None) -> dict:
    page = 1 if page is None else page
    limit = DEFAULT_PAGE_LIMIT if limit is None else limit
    validate_limit(page, "page")
    validate_limit(limit, "limit")
    total = len(items)
    total_pages = math.ceil(total / limit)
    offset = (page - 1) * limit
    return {
        "items": items[offset:offset + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
    }


def _by_recency(items: list[dict], field: str) -> list[dict]:
    return sorted(reversed(items), key=lambda item: parse_timestamp(item.get(field)), reverse=True)


def _tagged(records: Iterable[dict], source: str) -> list[dict]:
    return [{**record, "source": source} for record in records]


def _log_remote_failure(operation: str, exc: Exception, **context: Any) -> None:
    logger.warning(
        "mirror_sync_failed",
        extra={"operation": operation, "error": str(exc), **context},
    )


def _merged_listing(
    local: list[dict],
    remote: list[dict],
    is_shadowed,
    sort_field: str,
    kind: str,
    page: Optional[int],
    limit: Optional[int],
    remote_error: Optional[str],
) -> dict:
    combined = _tagged(remote, SOURCE_MIRROR)
    combined.extend(_tagged((item for item in local if not is_shadowed(item)), SOURCE_LOCAL))
    result = paginate(_by_recency(combined, sort_field), page, limit)
    result["sources"] = {
        "local": len(local),
        "firebase": len(remote),
        "combined": len(combined),
    }
    result["type"] = kind
    if remote_error is not None:
        result["firebaseError"] = remote_error
    return result


def merged_list_entries(
    services: MemoryServices,
    tags: Optional[Iterable[str]] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> dict:
    """Local entries, merged with the mirror's when the request is public."""
    local = [entry.to_dict() for entry in services.entries.list_entries()]
    remote: list[dict] = []
    remote_error = None
    mirror = mirror_for(services, tags)
    if mirror is not None:
        try:
            remote = mirror.list_memories()
        except RemoteSyncError as exc:
            _log_remote_failure("list_memories", exc)
            remote_error = str(exc)
    remote_keys = {record.get("key") for record in remote}
    return _merged_listing(
        local,
        remote,
        lambda item: item["key"] in remote_keys,
        "updatedAt",
        "entries",
        page,
        limit,
        remote_error,
    )


def merged_list_tools(
    services: MemoryServices,
    tags: Optional[Iterable[str]] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> dict:
    local = [tool.to_dict() for tool in services.tools.list_tools()]
    remote: list[dict] = []
    remote_error = None
    mirror = mirror_for(services, tags)
    if mirror is not None:
        try:
            remote = mirror.list_tools()
        except RemoteSyncError as exc:
            _log_remote_failure("list_tools", exc)
            remote_error = str(exc)
    remote_ids = {record.get("id") for record in remote}
    remote_names = {record.get("name") for record in remote}
    return _merged_listing(
        local,
        remote,
        lambda item: item["id"] in remote_ids or item["name"] in remote_names,
        "createdAt",
        "tools",
        page,
        limit,
        remote_error,
    )


def replicate_entry(mirror: MirrorClient, entry: MemoryEntry) -> dict:
    """Push one entry; the outcome is reported, never raised."""
    try:
        remote = mirror.upsert_memory(entry.to_dict())
    except RemoteSyncError as exc:
        _log_remote_failure("upsert_memory", exc, key=entry.key)
        return {"firebaseSync": False, "firebaseError": str(exc)}
    return {"firebaseSync": True, "firebaseId": remote.get("id") if isinstance(remote, dict) else None}


def replicate_tool(mirror: MirrorClient, tool: ToolDefinition) -> dict:
    try:
        remote = mirror.upsert_tool(tool.to_dict())
    except RemoteSyncError as exc:
        _log_remote_failure("upsert_tool", exc, tool_name=tool.name)
        return {"firebaseSync": False, "firebaseError": str(exc)}
    return {"firebaseSync": True, "firebaseId": remote.get("id") if isinstance(remote, dict) else None}


def retrieve_public(services: MemoryServices, key: str, tags: Optional[Iterable[str]] = None) -> Optional[dict]:
    """Mirror copy first for public keys; any remote miss falls through to local."""
    mirror = mirror_for(services, tags)
    if mirror is not None:
        try:
            record = mirror.find_memory(key)
        except RemoteSyncError as exc:
            _log_remote_failure("retrieve", exc, key=key)
            record = None
        if record is not None:
            return {**record, "source": SOURCE_MIRROR}
    entry = services.entries.retrieve(key)
    if entry is None:
        return None
    return {**entry.to_dict(), "source": SOURCE_LOCAL}


def _public_delete_result(local_deleted: bool, remote_deleted: bool, results: list[str], label: str) -> dict:
    success = local_deleted or remote_deleted
    if success:
        message = f"Deleted {label}: " + ", ".join(results)
    else:
        message = f"{label} not found locally or on the mirror"
    return {
        "success": success,
        "localDeleted": local_deleted,
        "firebaseDeleted": remote_deleted,
        "results": results,
        "message": message,
    }


def delete_public(services: MemoryServices, key: str) -> dict:
    """Delete a public key on the mirror, then locally; either side may miss."""
    results = []
    remote_deleted = False
    try:
        record = services.mirror.find_memory(key)
        if record is None:
            results.append("mirror not found")
        else:
            services.mirror.delete_memory(record["id"])
            remote_deleted = True
            results.append("mirror deleted")
    except RemoteSyncError as exc:
        _log_remote_failure("delete_memory", exc, key=key)
        results.append(f"mirror error: {exc}")
    local_deleted = services.entries.delete(key)
    results.append("local deleted" if local_deleted else "local not found")
    return _public_delete_result(local_deleted, remote_deleted, results, f"entry '{key}'")


def delete_tool_public(
    services: MemoryServices,
    tool_id: Optional[str] = None,
    tool_name: Optional[str] = None,
) -> dict:
    results = []
    local = services.tools.get_tool(tool_id or tool_name)
    if local is None and tool_id and tool_name:
        local = services.tools.get_tool(tool_name)
    remote_deleted = False
    try:
        record = services.mirror.find_tool(
            tool_id or (local.id if local else None),
            tool_name or (local.name if local else None),
        )
        if record is None:
            results.append("mirror not found")
        else:
            services.mirror.delete_tool(record["id"])
            remote_deleted = True
            results.append("mirror deleted")
    except RemoteSyncError as exc:
        _log_remote_failure("delete_tool", exc, tool_id=tool_id)
        results.append(f"mirror error: {exc}")
    local_deleted = local is not None and services.tools.delete_tool(local.id)
    results.append("local deleted" if local_deleted else "local not found")
    return _public_delete_result(local_deleted, remote_deleted, results, f"tool '{tool_id or tool_name}'")


def _clear_remote(list_records, delete_record, label_field: str) -> dict:
    deleted = 0
    errors: list[dict] = []
    try:
        records = list_records()
    except RemoteSyncError as exc:
        _log_remote_failure("clear_list", exc)
        return {"deleted": 0, "errors": [{"error": str(exc)}]}
    for record in records:
        try:
            delete_record(record["id"])
        except (RemoteSyncError, KeyError) as exc:
            errors.append({"id": record.get("id"), label_field: record.get(label_field), "error": str(exc)})
            continue
        deleted += 1
    if errors:
        logger.warning("mirror_clear_incomplete", extra={"deleted": deleted, "failed": len(errors)})
    return {"deleted": deleted, "errors": errors}


def clear_remote_memories(mirror: MirrorClient) -> dict:
    """Delete every mirror entry one by one, collecting per-item failures."""
    return _clear_remote(mirror.list_memories, mirror.delete_memory, "key")


def clear_remote_tools(mirror: MirrorClient) -> dict:
    return _clear_remote(mirror.list_tools, mirror.delete_tool, "name")


def _fetch_remote_tool(mirror: MirrorClient, identifier: str) -> Optional[ToolDefinition]:
    record = mirror.get_tool(identifier)
    if record is None:
        record = mirror.find_tool(name=identifier)
    if record is None:
        return None
    try:
        return ToolDefinition.from_dict(record)
    except (ValidationError, TypeError, ValueError) as exc:
        raise RemoteSyncError(f"mirror returned a malformed tool record: {exc}") from exc


def execute_with_fallback(
    services: MemoryServices,
    identifier: str,
    args: Optional[dict] = None,
    tags: Optional[Iterable[str]] = None,
) -> ExecutionOutcome:
    """Run a local tool, or for public requests a mirror tool by id or name."""
    try:
        return services.executor.execute_tool(identifier, args)
    except NotFoundError as local_miss:
        mirror = mirror_for(services, tags)
        if mirror is None:
            raise
        try:
            tool = _fetch_remote_tool(mirror, identifier)
        except RemoteSyncError as exc:
            _log_remote_failure("get_tool", exc, tool_id=identifier)
            remote_cause = f"mirror lookup failed ({exc})"
        else:
            if tool is not None:
                return services.executor.run(tool, args, source=SOURCE_MIRROR)
            remote_cause = "not found on the mirror"
        raise NotFoundError(
            f"Tool '{identifier}' unavailable: {local_miss} locally; {remote_cause}",
            kind="tool",
            identifier=identifier,
        ) from local_miss


def sync_all(services: MemoryServices) -> dict:
    """Push every local entry and tool to the mirror."""
    mirror = services.mirror
    if mirror is None:
        raise RemoteSyncError("No mirror configured (set MEMNET_MIRROR_URL)")
    report = {}
    for kind, records, lister, upsert, label in (
        ("memories", services.entries.list_entries(), mirror.list_memories, mirror.upsert_memory, "key"),
        ("tools", services.tools.list_tools(), mirror.list_tools, mirror.upsert_tool, "name"),
    ):
        counters = {"success": 0, "failed": 0, "errors": []}
        known = lister()
        for record in records:
            payload = record.to_dict()
            try:
                upsert(payload, known)
            except RemoteSyncError as exc:
                counters["failed"] += 1
                counters["errors"].append({label: payload[label], "error": str(exc)})
                continue
            counters["success"] += 1
        report[kind] = counters
    logger.info(
        "mirror_sync_all",
        extra={
            "memories_synced": report["memories"]["success"],
            "tools_synced": report["tools"]["success"],
        },
    )
    return report
