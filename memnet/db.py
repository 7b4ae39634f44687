"""
Snapshot persistence and store lifecycle.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import memnet.config as config
from memnet.errors import SnapshotCorruptError

if TYPE_CHECKING:
    from memnet.services.entry_store import EntryStore
    from memnet.services.memory_search import SearchEngine
    from memnet.services.mirror_client import MirrorClient
    from memnet.services.tool_sandbox import ToolExecutor
    from memnet.services.tool_store import ToolStore


class SnapshotFile:
    """A JSON array of records, rewritten whole and atomically."""

    def __init__(self, path: str, primary_key: str):
        self.path = path
        self.primary_key = primary_key

    def load(self) -> list[dict]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                records = json.load(handle)
        except (OSError, ValueError) as exc:
            raise SnapshotCorruptError(f"Snapshot {self.path} could not be read: {exc}") from exc
        if not isinstance(records, list):
            raise SnapshotCorruptError(f"Snapshot {self.path} must contain a JSON array")
        for index, record in enumerate(records):
            if not isinstance(record, dict) or not record.get(self.primary_key):
                raise SnapshotCorruptError(
                    f"Snapshot {self.path} record {index} is missing '{self.primary_key}'"
                )
        return records

    def write(self, records: list[dict]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        config.logger.debug(
            "snapshot_written",
            extra={"path": self.path, "record_count": len(records)},
        )


@dataclass
class MemoryServices:
    """Explicitly constructed store components shared by one process."""

    entries: "EntryStore"
    tools: "ToolStore"
    search: "SearchEngine"
    executor: "ToolExecutor"
    mirror: Optional["MirrorClient"] = None

    def close(self) -> None:
        self.executor.close()
        if self.mirror is not None:
            self.mirror.close()


class DB:
    """Store state holder (avoids global scoping issues)."""

    services: Optional[MemoryServices] = None


def build_services(
    data_dir: str,
    mirror_url: Optional[str] = None,
    mirror_timeout: float = config.MIRROR_TIMEOUT_SECONDS,
    mirror_transport=None,
    fetch_transport=None,
) -> MemoryServices:
    """Load both snapshots and wire the components together."""
    from memnet.services.entry_store import EntryStore
    from memnet.services.memory_search import SearchEngine
    from memnet.services.mirror_client import MirrorClient
    from memnet.services.tool_sandbox import ToolExecutor
    from memnet.services.tool_store import ToolStore

    entries = EntryStore(SnapshotFile(os.path.join(data_dir, config.ENTRIES_FILE), "key"))
    tools = ToolStore(SnapshotFile(os.path.join(data_dir, config.TOOLS_FILE), "id"))
    search = SearchEngine(entries, tools)
    executor = ToolExecutor(entries, tools, search, transport=fetch_transport)
    mirror = None
    if mirror_url:
        mirror = MirrorClient(mirror_url, timeout=mirror_timeout, transport=mirror_transport)
    return MemoryServices(
        entries=entries,
        tools=tools,
        search=search,
        executor=executor,
        mirror=mirror,
    )


def init_db() -> MemoryServices:
    """Validate config, load snapshots and publish the services."""
    config.validate_and_prepare_config()
    config.logger.info("Loading snapshots...")
    DB.services = build_services(config.DATA_DIR, mirror_url=config.MIRROR_URL)
    config.logger.info(
        "Snapshots loaded",
        extra={
            "entry_count": len(DB.services.entries),
            "tool_count": len(DB.services.tools),
            "mirror_enabled": DB.services.mirror is not None,
        },
    )
    return DB.services


def get_services() -> MemoryServices:
    if DB.services is None:
        raise RuntimeError("Stores not initialized - call init_db() first")
    return DB.services


def close_db() -> None:
    if DB.services is not None:
        DB.services.close()
        DB.services = None
