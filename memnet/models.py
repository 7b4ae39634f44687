"""
memnet record types.

Records live in memory as dataclasses and are persisted (and exchanged with
the remote mirror) as camelCase JSON objects.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from memnet.errors import ValidationError

SOURCE_LOCAL = "local"
SOURCE_MIRROR = "firebase"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp; unparseable values sort as the epoch."""
    if not isinstance(value, str) or not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class MemoryEntry:
    key: str
    value: Any
    type: str = "text"
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = ""
    access_count: int = 0
    last_accessed: str = ""

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at
        if not self.last_accessed:
            self.last_accessed = self.created_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "value": copy.deepcopy(self.value),
            "type": self.type,
            "description": self.description,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "accessCount": self.access_count,
            "lastAccessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryEntry":
        if not isinstance(data, dict) or not isinstance(data.get("key"), str):
            raise ValidationError("memory entry record requires a string 'key'", field="key", error_type="required")
        created_at = data.get("createdAt") or utc_now_iso()
        return cls(
            key=data["key"],
            value=data.get("value"),
            type=data.get("type") or "text",
            description=data.get("description"),
            tags=list(data.get("tags") or []),
            id=str(data.get("id") or new_id()),
            created_at=created_at,
            updated_at=data.get("updatedAt") or created_at,
            access_count=int(data.get("accessCount") or 0),
            last_accessed=data.get("lastAccessed") or created_at,
        )


@dataclass
class ToolDefinition:
    name: str
    description: str
    handler_script: str
    type: str = "processor"
    parameters: dict = field(default_factory=dict)
    network: bool = False
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now_iso)
    usage_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "parameters": copy.deepcopy(self.parameters),
            "handlerCode": self.handler_script,
            "network": self.network,
            "createdAt": self.created_at,
            "usageCount": self.usage_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolDefinition":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValidationError("tool record requires an 'id'", field="id", error_type="required")
        script = data.get("handlerCode")
        if script is None:
            script = data.get("handlerScript", "")
        return cls(
            name=str(data.get("name") or ""),
            description=data.get("description") or "",
            handler_script=script or "",
            type=data.get("type") or "processor",
            parameters=dict(data.get("parameters") or {}),
            network=bool(data.get("network", False)),
            id=str(data["id"]),
            created_at=data.get("createdAt") or utc_now_iso(),
            usage_count=int(data.get("usageCount") or 0),
        )
