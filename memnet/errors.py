"""
Shared error types for memnet services.
"""

from typing import Optional


class ValidationError(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class DuplicateNameError(ValidationError):
    """Raised when a tool name is already taken."""

    def __init__(self, name: str):
        super().__init__(
            f"Tool with name '{name}' already exists",
            field="toolName",
            error_type="duplicate",
            error_code="duplicate_name",
        )
        self.name = name


class NotFoundError(LookupError):
    def __init__(self, message: str, kind: str = "entry", identifier: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.identifier = identifier


class ExecutionError(RuntimeError):
    """A tool script raised or produced unusable output."""

    def __init__(self, tool_name: str, cause: str):
        super().__init__(f"Error executing tool '{tool_name}': {cause}")
        self.tool_name = tool_name
        self.cause = cause


class RemoteSyncError(RuntimeError):
    """The remote mirror could not be reached or answered with an error."""


class RemoteTimeoutError(RemoteSyncError):
    """A remote mirror call exceeded its deadline."""


class SnapshotCorruptError(RuntimeError):
    """A snapshot file exists but cannot be parsed."""
