"""
Tool store: durable map of tool definitions keyed by id, with name as a
secondary unique index.
"""

from __future__ import annotations

import copy
import threading
from typing import Optional

from memnet.config import (
    MAX_DESCRIPTION_LENGTH,
    MAX_HANDLER_CODE_LENGTH,
    TOOL_TYPES,
    logger,
)
from memnet.db import SnapshotFile
from memnet.errors import DuplicateNameError
from memnet.models import ToolDefinition, parse_timestamp
from memnet.validators import (
    require_fields,
    require_tool_name,
    validate_choice,
    validate_json_value,
    validate_mapping,
    validate_optional_text,
)


def sort_tools_by_recency(tools: list[ToolDefinition]) -> list[ToolDefinition]:
    return sorted(reversed(tools), key=lambda tool: parse_timestamp(tool.created_at), reverse=True)


class ToolStore:
    def __init__(self, snapshot: SnapshotFile):
        self._snapshot = snapshot
        self._lock = threading.Lock()
        self._tools: dict[str, ToolDefinition] = {}
        self._load()

    def _load(self) -> None:
        records = self._snapshot.load()
        for record in records:
            tool = ToolDefinition.from_dict(record)
            self._tools[tool.id] = tool
        logger.info("snapshot_loaded", extra={"path": self._snapshot.path, "tool_count": len(records)})

    def _commit(self, staged: dict[str, ToolDefinition]) -> None:
        """Write ``staged`` to the snapshot, then make it the live map."""
        self._snapshot.write([tool.to_dict() for tool in staged.values()])
        self._tools = staged

    def _find_locked(self, identifier: str) -> Optional[ToolDefinition]:
        tool = self._tools.get(identifier)
        if tool is not None:
            return tool
        for candidate in self._tools.values():
            if candidate.name == identifier:
                return candidate
        return None

    def __len__(self) -> int:
        return len(self._tools)

    def create_tool(
        self,
        name: str,
        description: str,
        handler_script: str,
        type: str = "processor",
        parameters: Optional[dict] = None,
        network: bool = False,
    ) -> ToolDefinition:
        require_fields({
            "toolName": name,
            "toolDescription": description,
            "handlerCode": handler_script,
        })
        require_tool_name(name)
        validate_optional_text(description, "toolDescription", MAX_DESCRIPTION_LENGTH)
        validate_optional_text(handler_script, "handlerCode", MAX_HANDLER_CODE_LENGTH)
        validate_choice(type, "toolType", TOOL_TYPES)
        validate_mapping(parameters, "parameters")
        validate_json_value(parameters, "parameters")
        tool = ToolDefinition(
            name=name,
            description=description,
            handler_script=handler_script,
            type=type or "processor",
            parameters=copy.deepcopy(parameters or {}),
            network=network,
        )
        with self._lock:
            if any(existing.name == name for existing in self._tools.values()):
                raise DuplicateNameError(name)
            self._commit({**self._tools, tool.id: tool})
        logger.info("tool_created", extra={"tool_id": tool.id, "tool_name": name, "network": network})
        return copy.deepcopy(tool)

    def get_tool(self, identifier: str) -> Optional[ToolDefinition]:
        """Look up by id first, then by name."""
        if not identifier:
            return None
        with self._lock:
            tool = self._find_locked(identifier)
            return copy.deepcopy(tool) if tool is not None else None

    def record_usage(self, tool_id: str) -> Optional[ToolDefinition]:
        with self._lock:
            current = self._tools.get(tool_id)
            if current is None:
                return None
            tool = copy.deepcopy(current)
            tool.usage_count += 1
            self._commit({**self._tools, tool_id: tool})
            return copy.deepcopy(tool)

    def delete_tool(self, tool_id: str) -> bool:
        with self._lock:
            if tool_id not in self._tools:
                return False
            self._commit({k: v for k, v in self._tools.items() if k != tool_id})
            return True

    def list_tools(self) -> list[ToolDefinition]:
        with self._lock:
            snapshot = [copy.deepcopy(tool) for tool in self._tools.values()]
        return sort_tools_by_recency(snapshot)

    def clear_all_tools(self) -> int:
        with self._lock:
            count = len(self._tools)
            self._commit({})
        logger.info("tools_cleared", extra={"cleared": count})
        return count
