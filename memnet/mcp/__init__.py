from memnet.mcp.server import (
    mcp,
    mcp_stream_app,
    registered_tool_names,
)

__all__ = [
    "mcp",
    "mcp_stream_app",
    "registered_tool_names",
]
