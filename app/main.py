"""
Standalone FastAPI app wiring for memnet.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

import memnet.config as config
from memnet.db import close_db, init_db
from memnet.mcp import mcp_stream_app
from app.routes.health import router as health_router
from app.routes.root import router as root_router


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
        await self.wrapped_app(scope, receive, send)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load snapshots on startup, release HTTP clients on shutdown."""
    init_db()
    try:
        async with mcp_stream_app.lifespan(mcp_stream_app):
            yield
    finally:
        close_db()
        config.logger.info("memnet stopped")


app = FastAPI(title=config.SERVICE_NAME, redirect_slashes=False, lifespan=lifespan)

# Health and root endpoints
app.include_router(health_router)
app.include_router(root_router)

app.mount("/mcp/", mcp_stream_app)


# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)
