"""
Health endpoint: snapshot files and mirror reachability.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, HTTPException
from fastapi.concurrency import run_in_threadpool

import memnet.config as config
from memnet.db import DB


router = APIRouter()


def _snapshot_status(path: str, record_count: int) -> dict:
    exists = os.path.exists(path)
    return {
        "path": path,
        "exists": exists,
        "records": record_count,
        "bytes": os.path.getsize(path) if exists else 0,
    }


def _check_store_health() -> dict:
    services = DB.services
    if services is None:
        return {"ok": False, "error": "stores_not_initialized"}
    return {
        "ok": True,
        "entries": _snapshot_status(os.path.join(config.DATA_DIR, config.ENTRIES_FILE), len(services.entries)),
        "tools": _snapshot_status(os.path.join(config.DATA_DIR, config.TOOLS_FILE), len(services.tools)),
    }


def _check_mirror_health(check_external: bool) -> dict:
    services = DB.services
    if services is None or services.mirror is None:
        return {"status": "disabled"}
    status = {"status": "configured", "base_url": services.mirror.base_url, "checked": False}
    if check_external:
        status["checked"] = True
        status["status"] = "ok" if services.mirror.ping() else "unreachable"
    return status


@router.get("/health")
async def health(check_mirror: bool = False):
    """Health check endpoint."""
    store_health = _check_store_health()
    if not store_health.get("ok"):
        raise HTTPException(status_code=503, detail={"stores": store_health})
    mirror_health = await run_in_threadpool(_check_mirror_health, check_mirror)

    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "instance_id": os.environ.get("MEMNET_INSTANCE_ID", "memnet-1"),
        "stores": store_health,
        "mirror": mirror_health,
    }
