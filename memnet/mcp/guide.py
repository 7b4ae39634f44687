"""
Usage guide and worked examples served by the documentation tools.
"""

from __future__ import annotations

from memnet.config import PUBLIC_TAG, SERVICE_DESCRIPTION, SERVICE_NAME, SERVICE_VERSION
from memnet.services.dispatcher import ACTIONS

NOTEKEEPER_SCRIPT = '''\
action = args.get("action")
if action == "add":
    note = {"id": generate_id(), "title": args.get("title", ""), "content": args.get("content", "")}
    storage.store("note." + note["id"], note, type="json", tags=["note"])
    return {"added": note}
if action == "get":
    entry = storage.retrieve("note." + args["id"])
    return entry["value"] if entry else None
if action == "list":
    return [entry["value"] for entry in storage.search("note.", 100)]
if action == "delete":
    return {"deleted": storage.delete("note." + args["id"])}
raise ValueError("unknown action: " + str(action))
'''

WORD_COUNT_SCRIPT = '''\
text = args.get("text", "")
words = [word for word in text.split() if word]
counts = {}
for word in words:
    counts[word.lower()] = counts.get(word.lower(), 0) + 1
top = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:5]
return {"words": len(words), "unique": len(counts), "top": [list(pair) for pair in top]}
'''

ENTRY_ACTIONS = {
    "store": "Create or overwrite an entry (key, value, type?, description?, tags?)",
    "retrieve": "Read an entry by key and count the access",
    "search": "Weighted search over entries and tools (query, limit?)",
    "list": "Paginated entries, most recently updated first (page?, limit?)",
    "delete": "Remove an entry by key",
    "update": "Replace an existing entry's value (description?, tags?)",
    "clear_all": "Remove every entry",
}

TOOL_ACTIONS = {
    "create_tool": "Register a Python handler script (toolName, toolDescription, handlerCode)",
    "create_api_tool": "Register a tool that calls one HTTP endpoint (apiUrl, apiMethod?, ...)",
    "execute_tool": "Run a tool by toolId or toolName with args",
    "list_tools": "Paginated tools, newest first",
    "delete_tool": "Remove a tool by toolId or toolName",
    "clear_tools": "Remove every tool",
}

SYSTEM_ACTIONS = {
    "reset": "Remove every entry and tool",
    "analyze": "analysisType summary (default), count, trends or relationships",
    "stats": "Alias of analyze with the summary report",
    "sync_all": "Push all local records to the mirror",
    "export": "Dump entries and tools (format: json, csv or txt)",
    "import": "Restore entries from an export object passed as value",
}


def introduction() -> dict:
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "tool": SERVICE_NAME,
        "actions": {
            "entries": ENTRY_ACTIONS,
            "tools": TOOL_ACTIONS,
            "system": SYSTEM_ACTIONS,
        },
        "valid_actions": list(ACTIONS),
        "scripts": {
            "language": "python",
            "signature": "body of tool_handler(args, storage, generate_id, fetch); use return for the result",
            "storage": ["store", "retrieve", "search", "delete", "update"],
            "restrictions": [
                "no import statements",
                "no names starting with '__' and no attributes starting with '_'",
                "fetch only works for API tools",
                "the result must be JSON-serializable",
            ],
        },
        "mirror": {
            "tag": PUBLIC_TAG,
            "behavior": (
                f"Requests tagged '{PUBLIC_TAG}' are replicated to and merged with the "
                "remote mirror when MEMNET_MIRROR_URL is set."
            ),
        },
    }


def examples() -> dict:
    return {
        "store": {
            "action": "store",
            "key": "user.preferences",
            "value": {"theme": "dark", "language": "en"},
            "type": "json",
            "tags": ["settings"],
        },
        "retrieve": {"action": "retrieve", "key": "user.preferences"},
        "search": {"action": "search", "query": "preferences", "limit": 5},
        "notekeeper": {
            "action": "create_tool",
            "toolName": "notekeeper",
            "toolDescription": "Keeps short personal notes",
            "toolType": "storage",
            "parameters": {
                "action": {"type": "string", "enum": ["add", "get", "list", "delete"]},
                "title": {"type": "string", "optional": True},
                "content": {"type": "string", "optional": True},
                "id": {"type": "string", "optional": True},
            },
            "handlerCode": NOTEKEEPER_SCRIPT,
        },
        "word_count": {
            "action": "create_tool",
            "toolName": "word-count",
            "toolDescription": "Counts words and reports the most frequent ones",
            "toolType": "analyzer",
            "parameters": {"text": {"type": "string"}},
            "handlerCode": WORD_COUNT_SCRIPT,
        },
        "api_tool": {
            "action": "create_api_tool",
            "toolName": "weather",
            "toolDescription": "Current weather for a city",
            "apiUrl": "https://api.example.com/v1/weather",
            "apiMethod": "GET",
            "apiAuth": {"type": "api-key", "apiKey": "your-key"},
            "apiTimeout": 5000,
        },
        "execute": {
            "action": "execute_tool",
            "toolName": "notekeeper",
            "args": {"action": "add", "title": "todo", "content": "write tests"},
        },
        "public_store": {
            "action": "store",
            "key": "team.handbook",
            "value": "Shared with the mirror",
            "tags": [PUBLIC_TAG],
        },
    }
