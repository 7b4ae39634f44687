"""
MCP server wiring and tool registration.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastmcp import FastMCP

import memnet.config as config
from memnet.db import get_services
from memnet.mcp import guide
from memnet.services.dispatcher import dispatch

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}

mcp = FastMCP(config.SERVICE_NAME)

_REGISTERED_TOOLS: list[Callable[..., dict]] = []


def mcp_tool(*args, **kwargs):
    """Register a tool with FastMCP and keep a local registry of names."""
    def decorator(fn: Callable[..., dict]):
        _REGISTERED_TOOLS.append(fn)
        mcp.tool(*args, **kwargs)(fn)
        return fn
    return decorator


def registered_tool_names() -> list[str]:
    return sorted(fn.__name__ for fn in _REGISTERED_TOOLS)


@mcp_tool()
def memnet(
    action: str,
    key: Optional[str] = None,
    value: Any = None,
    type: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[list[str]] = None,
    query: Optional[str] = None,
    limit: Optional[int] = None,
    page: Optional[int] = None,
    toolName: Optional[str] = None,
    toolId: Optional[str] = None,
    toolDescription: Optional[str] = None,
    toolType: Optional[str] = None,
    parameters: Optional[dict] = None,
    handlerCode: Optional[str] = None,
    args: Optional[dict] = None,
    apiUrl: Optional[str] = None,
    apiMethod: Optional[str] = None,
    apiHeaders: Optional[dict] = None,
    apiAuth: Optional[dict] = None,
    apiTimeout: Optional[int] = None,
    format: Optional[str] = None,
    analysisType: Optional[str] = None,
    network: Optional[bool] = None,
) -> dict:
    """
    Universal memory tool: entries, user-defined tools and mirror sync.

    Args:
        action: One of store, retrieve, search, list, delete, update,
            create_tool, create_api_tool, execute_tool, list_tools,
            delete_tool, clear_all, clear_tools, reset, analyze, stats,
            sync_all, export, import
        key: Entry key (letters, digits, '_', '.', '-')
        value: Entry value, or the export object for import
        tags: Entry tags; include "public" to reach the remote mirror
        handlerCode: Python body of tool_handler(args, storage, generate_id, fetch)
        network: Grant the created tool a working fetch capability
        analysisType: summary, count, trends or relationships (analyze)

    Returns:
        {success, action, message, data, timestamp, metadata}
    """
    params = dict(locals())
    payload = {name: field for name, field in params.items() if field is not None}
    return dispatch(payload, get_services())


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def memnet_introduction() -> dict:
    """Overview of the memnet actions, script rules and mirror behavior."""
    return guide.introduction()


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def memnet_examples() -> dict:
    """Ready-to-send request payloads, including example tool scripts."""
    return guide.examples()


mcp_stream_app = mcp.http_app(
    path="/",
    transport="streamable-http",
    stateless_http=True,
    json_response=True,
)
