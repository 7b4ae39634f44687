"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import memnet.config as config
from memnet.services.dispatcher import ACTIONS


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "description": config.SERVICE_DESCRIPTION,
        "mirror_enabled": bool(config.MIRROR_URL),
        "actions": list(ACTIONS),
        "endpoints": {
            "health": "/health",
            "mcp": "/mcp",
        },
    }
