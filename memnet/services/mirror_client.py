"""
HTTP client for the remote mirror.

The mirror exposes ``{base}/api/memory[/:id]`` and ``{base}/api/tools[/:id]``
and answers ``{success, data, count?}``. Every call is time-boxed: the httpx
timeout bounds each network phase, and a deadline race on a worker thread
bounds the call as a whole.
"""

from __future__ import annotations

import concurrent.futures
from typing import Any, Callable, Optional

import httpx

from memnet.config import MIRROR_TIMEOUT_SECONDS, logger
from memnet.errors import RemoteSyncError, RemoteTimeoutError

MEMORY_PATH = "/api/memory"
TOOLS_PATH = "/api/tools"


class MirrorClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = MIRROR_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=20),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=4,
            thread_name_prefix="memnet-mirror",
        )
        logger.info("Mirror client initialized", extra={"base_url": self.base_url})

    def close(self) -> None:
        self._pool.shutdown(wait=False)
        self._client.close()
        logger.info("Mirror client closed")

    def _with_deadline(self, call: Callable[[], Any]) -> Any:
        future = self._pool.submit(call)
        try:
            return future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise RemoteTimeoutError(f"mirror call exceeded {self.timeout}s deadline") from exc

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        def call() -> httpx.Response:
            return self._client.request(method, path, json=payload)

        try:
            response = self._with_deadline(call)
        except httpx.TimeoutException as exc:
            raise RemoteTimeoutError(f"mirror call timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise RemoteSyncError(f"mirror unreachable: {exc}") from exc

        if not response.is_success:
            raise RemoteSyncError(f"HTTP {response.status_code}: {response.reason_phrase}")
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteSyncError("mirror returned a non-JSON body") from exc
        if isinstance(body, dict) and body.get("success") is False:
            raise RemoteSyncError(body.get("message") or "mirror reported failure")
        return body.get("data") if isinstance(body, dict) else body

    # Collections

    def list_memories(self) -> list[dict]:
        data = self._request("GET", MEMORY_PATH)
        return [record for record in data or [] if isinstance(record, dict)]

    def list_tools(self) -> list[dict]:
        data = self._request("GET", TOOLS_PATH)
        return [record for record in data or [] if isinstance(record, dict)]

    def get_tool(self, tool_id: str) -> Optional[dict]:
        try:
            data = self._request("GET", f"{TOOLS_PATH}/{tool_id}")
        except RemoteSyncError as exc:
            if str(exc).startswith("HTTP 404"):
                return None
            raise
        return data if isinstance(data, dict) else None

    # Writes

    def find_memory(self, key: str, known: Optional[list[dict]] = None) -> Optional[dict]:
        records = self.list_memories() if known is None else known
        return next((record for record in records if record.get("key") == key), None)

    def find_tool(
        self,
        tool_id: Optional[str] = None,
        name: Optional[str] = None,
        known: Optional[list[dict]] = None,
    ) -> Optional[dict]:
        for record in self.list_tools() if known is None else known:
            if (tool_id and record.get("id") == tool_id) or (name and record.get("name") == name):
                return record
        return None

    def upsert_memory(self, entry: dict, known: Optional[list[dict]] = None) -> dict:
        """PUT over the mirror record with the same key, or POST a new one.

        ``known`` is a previously fetched remote listing, to avoid one list
        call per record during bulk pushes.
        """
        existing = self.find_memory(entry["key"], known)
        if existing is not None and existing.get("id"):
            return self._request("PUT", f"{MEMORY_PATH}/{existing['id']}", entry) or {}
        return self._request("POST", MEMORY_PATH, entry) or {}

    def upsert_tool(self, tool: dict, known: Optional[list[dict]] = None) -> dict:
        existing = self.find_tool(tool.get("id"), tool.get("name"), known)
        if existing is not None and existing.get("id"):
            return self._request("PUT", f"{TOOLS_PATH}/{existing['id']}", tool) or {}
        return self._request("POST", TOOLS_PATH, tool) or {}

    def delete_memory(self, record_id: str) -> None:
        self._request("DELETE", f"{MEMORY_PATH}/{record_id}")

    def delete_tool(self, record_id: str) -> None:
        self._request("DELETE", f"{TOOLS_PATH}/{record_id}")

    def ping(self) -> bool:
        try:
            self._request("GET", TOOLS_PATH)
        except RemoteSyncError:
            return False
        return True
