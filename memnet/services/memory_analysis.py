"""
Analysis services over the local stores.
"""

from __future__ import annotations

import json
import re
from collections import Counter

from memnet.db import MemoryServices
from memnet.models import MemoryEntry
from memnet.validators import validate_choice

ANALYSIS_TYPES = ("summary", "count", "trends", "relationships")

RECENT_ENTRY_LIMIT = 10
RECENT_TOOL_LIMIT = 5
ACCESS_TREND_LIMIT = 10
KEY_PATTERN_LIMIT = 10
MIN_KEY_PART_LENGTH = 3

_KEY_SEPARATORS = re.compile(r"[._-]")


def _by_access(entries: list[MemoryEntry]) -> list[MemoryEntry]:
    return sorted(entries, key=lambda entry: entry.access_count, reverse=True)


def summarize(services: MemoryServices) -> dict:
    entries = services.entries.list_entries()
    tools = services.tools.list_tools()
    most_accessed = max(entries, key=lambda entry: entry.access_count, default=None)
    most_used = max(tools, key=lambda tool: tool.usage_count, default=None)
    return {
        "totalEntries": len(entries),
        "totalTools": len(tools),
        "totalSize": len(json.dumps([entry.to_dict() for entry in entries])),
        "typeDistribution": dict(Counter(entry.type for entry in entries)),
        "toolTypeDistribution": dict(Counter(tool.type for tool in tools)),
        "mostAccessedEntry": most_accessed.key if most_accessed else None,
        "mostUsedTool": most_used.name if most_used else None,
        "totalToolUsage": sum(tool.usage_count for tool in tools),
        "mirrorEnabled": services.mirror is not None,
    }


def count(services: MemoryServices) -> dict:
    entries = services.entries.list_entries()
    tools = services.tools.list_tools()
    return {
        "entries": len(entries),
        "tools": len(tools),
        "byType": dict(Counter(entry.type for entry in entries)),
        "byToolType": dict(Counter(tool.type for tool in tools)),
    }


def trends(services: MemoryServices) -> dict:
    """Most recently updated entries and tools, plus the most accessed keys."""
    entries = services.entries.list_entries()
    tools = services.tools.list_tools()
    return {
        "recentEntries": [entry.to_dict() for entry in entries[:RECENT_ENTRY_LIMIT]],
        "recentTools": [tool.to_dict() for tool in tools[:RECENT_TOOL_LIMIT]],
        "accessTrends": [
            {
                "key": entry.key,
                "accessCount": entry.access_count,
                "lastAccessed": entry.last_accessed,
            }
            for entry in _by_access(entries)[:ACCESS_TREND_LIMIT]
        ],
    }


def key_patterns(entries: list[MemoryEntry]) -> dict:
    """Most common key segments, split on '.', '_' and '-'."""
    parts = Counter(
        part
        for entry in entries
        for part in _KEY_SEPARATORS.split(entry.key)
        if len(part) >= MIN_KEY_PART_LENGTH
    )
    return dict(parts.most_common(KEY_PATTERN_LIMIT))


def relationships(services: MemoryServices) -> dict:
    entries = services.entries.list_entries()
    return {
        "tagRelationships": dict(Counter(tag for entry in entries for tag in entry.tags)),
        "keyPatterns": key_patterns(entries),
    }


_ANALYZERS = {
    "summary": summarize,
    "count": count,
    "trends": trends,
    "relationships": relationships,
}


def analyze(services: MemoryServices, analysis_type: str = "summary") -> dict:
    validate_choice(analysis_type, "analysisType", ANALYSIS_TYPES)
    return _ANALYZERS[analysis_type](services)
