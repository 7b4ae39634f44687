"""
Tool execution engine.

A tool's handler script is Python source run as the body of a function
``(args, storage, generate_id, fetch)``. Scripts cannot import modules,
touch underscore-prefixed names or attributes, use frame or code
introspection attributes, or reach builtins outside
``SAFE_BUILTINS``; everything they may use arrives through those four
arguments.
"""

from __future__ import annotations

import ast
import builtins
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

from memnet.config import API_DEFAULT_TIMEOUT_MS, logger
from memnet.errors import ExecutionError, NotFoundError, ValidationError
from memnet.models import SOURCE_LOCAL, ToolDefinition, new_id
from memnet.services.entry_store import EntryStore
from memnet.services.memory_search import SearchEngine
from memnet.services.tool_store import ToolStore

HANDLER_NAME = "tool_handler"
HANDLER_PARAMS = ("args", "storage", "generate_id", "fetch")

_ALLOWED_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter",
    "float", "format", "frozenset", "hash", "int", "isinstance", "issubclass",
    "iter", "len", "list", "map", "max", "min", "next", "pow", "range", "repr",
    "reversed", "round", "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "AssertionError", "Exception", "IndexError", "KeyError",
    "LookupError", "PermissionError", "RuntimeError", "StopIteration",
    "TypeError", "ValueError", "ZeroDivisionError",
)
SAFE_BUILTINS = {name: getattr(builtins, name) for name in _ALLOWED_BUILTIN_NAMES}
SAFE_BUILTINS.update({"None": None, "True": True, "False": False})

# Frame, code and traceback attributes (and str.format field lookups) lead
# back to host globals.
_INTROSPECTION_PREFIXES = ("gi_", "cr_", "ag_", "f_", "tb_", "co_", "func_")
_INTROSPECTION_ATTRS = frozenset({"mro", "format", "format_map", "with_traceback"})


def _is_forbidden_attr(attr: str) -> bool:
    return (
        attr.startswith("_")
        or attr.startswith(_INTROSPECTION_PREFIXES)
        or attr in _INTROSPECTION_ATTRS
    )


def _reject(node: ast.AST, reason: str) -> None:
    line = getattr(node, "lineno", "?")
    raise SyntaxError(f"{reason} (line {line})")


def _check_tree(tree: ast.Module) -> None:
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            _reject(node, "import statements are not allowed")
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            _reject(node, "global/nonlocal statements are not allowed")
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            _reject(node, f"name '{node.id}' is not allowed")
        elif isinstance(node, ast.Attribute) and _is_forbidden_attr(node.attr):
            _reject(node, f"attribute '{node.attr}' is not allowed")


def compile_handler(source: str, filename: str = "<tool>"):
    """Parse, check and compile a handler script into a code object."""
    tree = ast.parse(source, filename=filename, mode="exec")
    _check_tree(tree)
    fn_kwargs = {
        "name": HANDLER_NAME,
        "args": ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg=param) for param in HANDLER_PARAMS],
            kwonlyargs=[],
            kw_defaults=[],
            defaults=[],
        ),
        "body": tree.body or [ast.Pass()],
        "decorator_list": [],
        "returns": None,
    }
    if "type_params" in ast.FunctionDef._fields:
        fn_kwargs["type_params"] = []
    module = ast.Module(body=[ast.FunctionDef(**fn_kwargs)], type_ignores=[])
    ast.fix_missing_locations(module)
    return compile(module, filename, "exec")


def check_script(source: str, field: str = "handlerCode") -> None:
    """Raise ValidationError when a script would be rejected at execution."""
    try:
        compile_handler(source)
    except SyntaxError as exc:
        raise ValidationError(
            f"{field} is not an acceptable script: {exc.msg}",
            field=field,
            error_type="invalid_script",
        ) from exc


class StorageHandle:
    """Entry-store capability handed to scripts."""

    __slots__ = ("_entries", "_search")

    def __init__(self, entries: EntryStore, search: SearchEngine):
        self._entries = entries
        self._search = search

    def store(
        self,
        key: str,
        value: Any,
        type: str = "text",
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> dict:
        return self._entries.store(key, value, type, description, tags).to_dict()

    def retrieve(self, key: str) -> Optional[dict]:
        entry = self._entries.retrieve(key)
        return entry.to_dict() if entry is not None else None

    def search(self, query: str, limit: Optional[int] = None) -> list[dict]:
        return [entry.to_dict() for entry in self._search.search_entries(query, limit)]

    def delete(self, key: str) -> bool:
        return self._entries.delete(key)

    def update(
        self,
        key: str,
        value: Any,
        description: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Optional[dict]:
        entry = self._entries.update(key, value, description, tags)
        return entry.to_dict() if entry is not None else None


class SandboxFetch:
    """Network capability for tools that were granted it."""

    __slots__ = ("_client_factory",)

    def __init__(self, client_factory):
        self._client_factory = client_factory

    def __call__(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[dict] = None,
        params: Optional[dict] = None,
        body: Any = None,
        auth: Optional[tuple] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        seconds = timeout if timeout is not None else API_DEFAULT_TIMEOUT_MS / 1000
        request_kwargs = {
            "headers": headers or {},
            "params": params or None,
            "timeout": httpx.Timeout(seconds),
        }
        if body is not None:
            request_kwargs["json"] = body
        if auth is not None:
            request_kwargs["auth"] = tuple(auth)
        return self._client_factory().request(method.upper(), url, **request_kwargs)

    @staticmethod
    def clock() -> float:
        """Monotonic milliseconds, for measuring request durations."""
        return time.monotonic() * 1000


class DeniedFetch:
    __slots__ = ()

    def __call__(self, *args, **kwargs):
        raise PermissionError("network access is not granted to this tool")

    @staticmethod
    def clock() -> float:
        return time.monotonic() * 1000


@dataclass
class ExecutionOutcome:
    tool: ToolDefinition
    result: Any
    duration_ms: float
    source: str = SOURCE_LOCAL

    def to_dict(self) -> dict:
        return {
            "tool": {
                "id": self.tool.id,
                "name": self.tool.name,
                "description": self.tool.description,
            },
            "result": self.result,
            "source": self.source,
            "duration": self.duration_ms,
        }


class ToolExecutor:
    def __init__(
        self,
        entries: EntryStore,
        tools: ToolStore,
        search: SearchEngine,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._tools = tools
        self._storage = StorageHandle(entries, search)
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(transport=self._transport, follow_redirects=True)
            return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def execute_tool(self, identifier: str, args: Optional[dict] = None) -> ExecutionOutcome:
        """Resolve a local tool by id or name, count the use and run it."""
        tool = self._tools.get_tool(identifier)
        if tool is None:
            raise NotFoundError(f"Tool '{identifier}' does not exist", kind="tool", identifier=identifier)
        self._tools.record_usage(tool.id)
        return self.run(tool, args)

    def run(self, tool: ToolDefinition, args: Optional[dict] = None, source: str = SOURCE_LOCAL) -> ExecutionOutcome:
        """Run a tool definition in the sandbox; script failures become ExecutionError."""
        started = time.perf_counter()
        fetch = SandboxFetch(self._get_client) if tool.network else DeniedFetch()
        try:
            code = compile_handler(tool.handler_script, filename=f"<tool:{tool.name}>")
        except SyntaxError as exc:
            raise ExecutionError(tool.name, f"invalid script: {exc.msg}") from exc
        namespace: dict = {"__builtins__": SAFE_BUILTINS}
        try:
            exec(code, namespace)
            result = namespace[HANDLER_NAME](dict(args or {}), self._storage, new_id, fetch)
        except Exception as exc:
            logger.info(
                "tool_execution_failed",
                extra={"tool_id": tool.id, "tool_name": tool.name, "error": str(exc)},
            )
            raise ExecutionError(tool.name, str(exc) or type(exc).__name__) from exc
        try:
            json.dumps(result)
        except (TypeError, ValueError) as exc:
            raise ExecutionError(tool.name, f"returned malformed output: {exc}") from exc
        duration_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info(
            "tool_executed",
            extra={"tool_id": tool.id, "tool_name": tool.name, "source": source, "duration_ms": duration_ms},
        )
        return ExecutionOutcome(tool=tool, result=result, duration_ms=duration_ms, source=source)
