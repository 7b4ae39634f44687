"""
Weighted relevance search over entries and tools.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from memnet.config import (
    DEFAULT_SEARCH_LIMIT,
    MAX_QUERY_LENGTH,
    MAX_SEARCH_LIMIT,
    MAX_SUGGESTIONS,
)
from memnet.models import MemoryEntry, ToolDefinition
from memnet.services.entry_store import EntryStore
from memnet.services.tool_store import ToolStore
from memnet.validators import validate_limit, validate_required_text

EXACT_SCORE = 100
PREFIX_SCORE = 80
SUBSTRING_SCORE = 60
WORD_PREFIX_SCORE = 40
WORD_SUBSTRING_SCORE = 20

ENTRY_KEY_WEIGHT = 2.0
ENTRY_DESCRIPTION_WEIGHT = 1.5
ENTRY_TAG_WEIGHT = 1.0
ENTRY_TEXT_VALUE_WEIGHT = 0.8
ENTRY_STRUCTURED_VALUE_WEIGHT = 0.5

TOOL_NAME_WEIGHT = 3.0
TOOL_DESCRIPTION_WEIGHT = 2.0
TOOL_TYPE_WEIGHT = 1.5
TOOL_SCRIPT_WEIGHT = 0.5

_SUGGESTION_SPLIT = re.compile(r"[._\-\s]+")


def normalize_query(query: str) -> str:
    return query.strip().lower()


def calculate_relevance(text: Optional[str], query: str) -> int:
    if not text or not query:
        return 0
    text_lower = text.lower()
    query_lower = query.lower()
    if text_lower == query_lower:
        return EXACT_SCORE
    if text_lower.startswith(query_lower):
        return PREFIX_SCORE
    if query_lower in text_lower:
        return SUBSTRING_SCORE
    # Only reachable for queries containing whitespace.
    for word in text_lower.split():
        if word.startswith(query_lower):
            return WORD_PREFIX_SCORE
        if query_lower in word:
            return WORD_SUBSTRING_SCORE
    return 0


def score_entry(entry: MemoryEntry, query: str) -> float:
    relevance = calculate_relevance(entry.key, query) * ENTRY_KEY_WEIGHT
    if entry.description:
        relevance += calculate_relevance(entry.description, query) * ENTRY_DESCRIPTION_WEIGHT
    for tag in entry.tags or []:
        relevance += calculate_relevance(tag, query) * ENTRY_TAG_WEIGHT
    if isinstance(entry.value, str):
        relevance += calculate_relevance(entry.value, query) * ENTRY_TEXT_VALUE_WEIGHT
    elif isinstance(entry.value, (dict, list)):
        serialized = json.dumps(entry.value, ensure_ascii=False)
        relevance += calculate_relevance(serialized, query) * ENTRY_STRUCTURED_VALUE_WEIGHT
    return relevance


def score_tool(tool: ToolDefinition, query: str) -> float:
    relevance = calculate_relevance(tool.name, query) * TOOL_NAME_WEIGHT
    relevance += calculate_relevance(tool.description, query) * TOOL_DESCRIPTION_WEIGHT
    relevance += calculate_relevance(tool.type, query) * TOOL_TYPE_WEIGHT
    relevance += calculate_relevance(tool.handler_script, query) * TOOL_SCRIPT_WEIGHT
    return relevance


def _rank(candidates: Iterable, scorer, query: str, limit: int) -> list:
    scored = []
    for candidate in candidates:
        relevance = scorer(candidate, query)
        if relevance > 0:
            scored.append((relevance, candidate))
    # Stable sort keeps the store's recency order for equal scores.
    scored.sort(key=lambda item: item[0], reverse=True)
    return [candidate for _, candidate in scored[:limit]]


def resolve_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_SEARCH_LIMIT
    validate_limit(limit, "limit")
    return min(limit, MAX_SEARCH_LIMIT)


@dataclass
class SearchResult:
    entries: list[MemoryEntry]
    tools: list[ToolDefinition]
    query: str
    search_time_ms: float
    suggestions: Optional[list[str]] = field(default=None)

    @property
    def total_found(self) -> int:
        return len(self.entries) + len(self.tools)

    def to_dict(self) -> dict:
        payload = {
            "entries": [entry.to_dict() for entry in self.entries],
            "tools": [tool.to_dict() for tool in self.tools],
            "totalFound": self.total_found,
            "query": self.query,
            "searchTime": self.search_time_ms,
        }
        if self.suggestions is not None:
            payload["suggestions"] = self.suggestions
        return payload


class SearchEngine:
    def __init__(self, entries: EntryStore, tools: ToolStore):
        self._entries = entries
        self._tools = tools

    def search(self, query: str, limit: Optional[int] = None) -> SearchResult:
        validate_required_text(query, "query", MAX_QUERY_LENGTH)
        started = time.perf_counter()
        normalized = normalize_query(query)
        resolved_limit = resolve_limit(limit)
        entries = self.search_entries(normalized, resolved_limit)
        tools = self.search_tools(normalized, resolved_limit)
        suggestions = None
        if not entries and not tools:
            suggestions = self.generate_suggestions(normalized)
        return SearchResult(
            entries=entries,
            tools=tools,
            query=query,
            search_time_ms=round((time.perf_counter() - started) * 1000, 3),
            suggestions=suggestions,
        )

    def search_entries(self, query: str, limit: Optional[int] = None) -> list[MemoryEntry]:
        validate_required_text(query, "query", MAX_QUERY_LENGTH)
        return _rank(self._entries.list_entries(), score_entry, normalize_query(query), resolve_limit(limit))

    def search_tools(self, query: str, limit: Optional[int] = None) -> list[ToolDefinition]:
        validate_required_text(query, "query", MAX_QUERY_LENGTH)
        return _rank(self._tools.list_tools(), score_tool, normalize_query(query), resolve_limit(limit))

    def generate_suggestions(self, query: str) -> list[str]:
        """Up to five keys/tags/tool-name words sharing the query's first three characters."""
        prefix = normalize_query(query)[:3]
        if not prefix:
            return []
        suggestions: dict[str, None] = {}

        def _add_words(text: str) -> None:
            for word in _SUGGESTION_SPLIT.split(text.lower()):
                if len(word) > 2 and prefix in word:
                    suggestions.setdefault(word)

        for entry in self._entries.list_entries():
            _add_words(entry.key)
            for tag in entry.tags or []:
                if prefix in tag.lower():
                    suggestions.setdefault(tag)
        for tool in self._tools.list_tools():
            _add_words(tool.name)
        return list(suggestions)[:MAX_SUGGESTIONS]
