import itertools
import json

import httpx
import pytest

from memnet.db import build_services

MIRROR_URL = "http://mirror.test"


class FakeMirror:
    """In-process stand-in for the remote mirror HTTP service."""

    def __init__(self):
        self.memories = {}
        self.tools = {}
        self.down = False
        self.failing_deletes = set()
        self.requests = []
        self._ids = itertools.count(1)

    def _collection(self, name):
        return self.memories if name == "memory" else self.tools

    def seed_memory(self, **record):
        record.setdefault("id", f"remote-{next(self._ids)}")
        record.setdefault("updatedAt", "2020-01-01T00:00:00.000000Z")
        self.memories[record["id"]] = record
        return record

    def seed_tool(self, **record):
        record.setdefault("id", f"remote-{next(self._ids)}")
        record.setdefault("createdAt", "2020-01-01T00:00:00.000000Z")
        self.tools[record["id"]] = record
        return record

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.down:
            return httpx.Response(503, json={"success": False, "message": "mirror down"})
        parts = request.url.path.strip("/").split("/")
        collection = self._collection(parts[1])
        record_id = parts[2] if len(parts) > 2 else None

        if request.method == "GET" and record_id is None:
            data = list(collection.values())
            return httpx.Response(200, json={"success": True, "data": data, "count": len(data)})
        if request.method == "POST":
            body = json.loads(request.content)
            record = {**body, "id": f"remote-{next(self._ids)}"}
            collection[record["id"]] = record
            return httpx.Response(201, json={"success": True, "data": record})
        if record_id not in collection:
            return httpx.Response(404, json={"success": False, "message": "not found"})
        if request.method == "GET":
            return httpx.Response(200, json={"success": True, "data": collection[record_id]})
        if request.method == "PUT":
            body = json.loads(request.content)
            collection[record_id] = {**collection[record_id], **body, "id": record_id}
            return httpx.Response(200, json={"success": True, "data": collection[record_id]})
        if request.method == "DELETE":
            if record_id in self.failing_deletes:
                return httpx.Response(500, json={"success": False, "message": "delete failed"})
            del collection[record_id]
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405, json={"success": False, "message": "method not allowed"})


@pytest.fixture
def services(tmp_path):
    built = build_services(str(tmp_path))
    yield built
    built.close()


@pytest.fixture
def fake_mirror():
    return FakeMirror()


@pytest.fixture
def mirror_services(tmp_path, fake_mirror):
    built = build_services(
        str(tmp_path),
        mirror_url=MIRROR_URL,
        mirror_timeout=2.0,
        mirror_transport=httpx.MockTransport(fake_mirror.handler),
    )
    yield built
    built.close()
