"""
Entry store: durable map of memory entries keyed by logical key.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Optional, Sequence

from memnet.config import (
    ENTRY_TYPES,
    MAX_DESCRIPTION_LENGTH,
    MAX_TAG_ITEMS,
    MAX_TAG_LENGTH,
    logger,
)
from memnet.db import SnapshotFile
from memnet.models import MemoryEntry, parse_timestamp, utc_now_iso
from memnet.validators import (
    require_fields,
    require_key,
    validate_choice,
    validate_json_value,
    validate_optional_text,
    validate_string_list,
)


def _validate_entry_fields(
    value: Any,
    description: Optional[str],
    tags: Optional[Sequence[str]],
) -> None:
    validate_json_value(value, "value")
    validate_optional_text(description, "description", MAX_DESCRIPTION_LENGTH)
    validate_string_list(tags, "tags", MAX_TAG_ITEMS, MAX_TAG_LENGTH)


def _dedupe_tags(tags: Optional[Sequence[str]]) -> list[str]:
    return list(dict.fromkeys(tags or []))


def sort_by_recency(entries: list[MemoryEntry]) -> list[MemoryEntry]:
    """Most recently updated first; ties go to the most recently inserted."""
    return sorted(reversed(entries), key=lambda entry: parse_timestamp(entry.updated_at), reverse=True)


class EntryStore:
    def __init__(self, snapshot: SnapshotFile):
        self._snapshot = snapshot
        self._lock = threading.Lock()
        self._entries: dict[str, MemoryEntry] = {}
        self._load()

    def _load(self) -> None:
        records = self._snapshot.load()
        for record in records:
            entry = MemoryEntry.from_dict(record)
            self._entries[entry.key] = entry
        logger.info("snapshot_loaded", extra={"path": self._snapshot.path, "entry_count": len(records)})

    def _commit(self, staged: dict[str, MemoryEntry]) -> None:
        """Write ``staged`` to the snapshot, then make it the live map."""
        self._snapshot.write([entry.to_dict() for entry in staged.values()])
        self._entries = staged

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def store(
        self,
        key: str,
        value: Any,
        type: str = "text",
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> MemoryEntry:
        """Create or overwrite the entry at ``key``.

        Overwriting is a full replacement: a new id, fresh timestamps and a
        zero access count.
        """
        require_fields({"key": key, "value": value})
        require_key(key)
        validate_choice(type, "type", ENTRY_TYPES)
        _validate_entry_fields(value, description, tags)
        entry = MemoryEntry(
            key=key,
            value=copy.deepcopy(value),
            type=type or "text",
            description=description,
            tags=_dedupe_tags(tags),
        )
        with self._lock:
            staged = dict(self._entries)
            staged.pop(key, None)
            staged[key] = entry
            self._commit(staged)
        return copy.deepcopy(entry)

    def retrieve(self, key: str) -> Optional[MemoryEntry]:
        """Return the entry and record the access, or None."""
        require_key(key)
        with self._lock:
            current = self._entries.get(key)
            if current is None:
                return None
            entry = copy.deepcopy(current)
            entry.access_count += 1
            entry.last_accessed = utc_now_iso()
            self._commit({**self._entries, key: entry})
            return copy.deepcopy(entry)

    def get(self, key: str) -> Optional[MemoryEntry]:
        """Read without touching access statistics."""
        with self._lock:
            entry = self._entries.get(key)
            return copy.deepcopy(entry) if entry is not None else None

    def update(
        self,
        key: str,
        value: Any,
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Optional[MemoryEntry]:
        """Replace value (and description/tags when given); None if absent."""
        require_fields({"key": key, "value": value})
        require_key(key)
        _validate_entry_fields(value, description, tags)
        with self._lock:
            current = self._entries.get(key)
            if current is None:
                return None
            entry = copy.deepcopy(current)
            entry.value = copy.deepcopy(value)
            entry.updated_at = utc_now_iso()
            if description is not None:
                entry.description = description
            if tags is not None:
                entry.tags = _dedupe_tags(tags)
            self._commit({**self._entries, key: entry})
            return copy.deepcopy(entry)

    def delete(self, key: str) -> bool:
        require_key(key)
        with self._lock:
            if key not in self._entries:
                return False
            self._commit({k: v for k, v in self._entries.items() if k != key})
            return True

    def list_entries(self) -> list[MemoryEntry]:
        with self._lock:
            snapshot = [copy.deepcopy(entry) for entry in self._entries.values()]
        return sort_by_recency(snapshot)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._commit({})
        logger.info("entries_cleared", extra={"cleared": count})
        return count
