"""
Shared validation helpers for memnet services.

``validate_key``, ``validate_tool_name`` and ``validate_required`` report a
result without raising; the ``require_*`` and remaining helpers raise
``ValidationError`` so mutating operations fail before touching a store.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from memnet.config import (
    KEY_PATTERN,
    MAX_KEY_LENGTH,
    MAX_TOOL_NAME_LENGTH,
    MIN_KEY_LENGTH,
    MIN_TOOL_NAME_LENGTH,
    TOOL_NAME_PATTERN,
)
from memnet.errors import ValidationError

_KEY_RE = re.compile(KEY_PATTERN)
_TOOL_NAME_RE = re.compile(TOOL_NAME_PATTERN)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


_OK = ValidationResult(True)


def validate_key(key: Any) -> ValidationResult:
    if not isinstance(key, str) or not key:
        return ValidationResult(False, "key must be a non-empty string")
    if len(key) < MIN_KEY_LENGTH:
        return ValidationResult(False, f"key must be at least {MIN_KEY_LENGTH} characters")
    if len(key) > MAX_KEY_LENGTH:
        return ValidationResult(False, f"key must not exceed {MAX_KEY_LENGTH} characters")
    if not _KEY_RE.fullmatch(key):
        return ValidationResult(
            False,
            "key may only contain letters, digits, underscores, dots and hyphens",
        )
    return _OK


def validate_tool_name(name: Any) -> ValidationResult:
    if not isinstance(name, str) or not name:
        return ValidationResult(False, "tool name must be a non-empty string")
    if len(name) < MIN_TOOL_NAME_LENGTH:
        return ValidationResult(False, f"tool name must be at least {MIN_TOOL_NAME_LENGTH} characters")
    if len(name) > MAX_TOOL_NAME_LENGTH:
        return ValidationResult(False, f"tool name must not exceed {MAX_TOOL_NAME_LENGTH} characters")
    if not _TOOL_NAME_RE.fullmatch(name):
        return ValidationResult(
            False,
            "tool name may only contain letters, digits, underscores and hyphens",
        )
    return _OK


def validate_required(fields: Mapping[str, Any]) -> ValidationResult:
    """Fail on the first field that is None or an empty string.

    Zero, False and empty collections count as present.
    """
    for field_name, value in fields.items():
        if value is None or (isinstance(value, str) and value == ""):
            return ValidationResult(False, f"{field_name} is required")
    return _OK


def _raise_if_invalid(result: ValidationResult, field: str, error_type: str) -> None:
    if not result.valid:
        raise ValidationError(result.error or f"{field} is invalid", field=field, error_type=error_type)


def require_key(key: Any, field: str = "key") -> str:
    _raise_if_invalid(validate_key(key), field, "invalid_format")
    return key


def require_tool_name(name: Any, field: str = "toolName") -> str:
    _raise_if_invalid(validate_tool_name(name), field, "invalid_format")
    return name


def require_fields(fields: Mapping[str, Any]) -> None:
    result = validate_required(fields)
    if not result.valid:
        missing = next(
            name for name, value in fields.items()
            if value is None or (isinstance(value, str) and value == "")
        )
        raise ValidationError(result.error, field=missing, error_type="required")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationError(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationError(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_limit(value: Any, field: str, max_value: Optional[int] = None) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value <= 0 or (max_value is not None and value > max_value):
        upper = max_value if max_value is not None else "infinity"
        raise ValidationError(f"{field} must be between 1 and {upper}", field=field, error_type="out_of_range")


def validate_choice(value: Optional[str], field: str, choices: Sequence[str]) -> None:
    if value is None:
        return
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            field=field,
            error_type="invalid_value",
        )


def validate_string_list(
    values: Optional[Sequence[str]],
    field: str,
    max_items: int,
    max_item_length: int,
) -> None:
    if values is None:
        return
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list of strings", field=field, error_type="invalid_type")
    if len(values) > max_items:
        raise ValidationError(f"{field} exceeds max items {max_items}", field=field, error_type="max_items")
    for item in values:
        if not isinstance(item, str):
            raise ValidationError(f"{field} must contain only strings", field=field, error_type="invalid_type")
        if len(item) > max_item_length:
            raise ValidationError(
                f"{field} item exceeds max length {max_item_length}",
                field=field,
                error_type="max_length",
            )


def validate_mapping(value: Any, field: str) -> None:
    if value is None:
        return
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", field=field, error_type="invalid_type")


def validate_json_value(value: Any, field: str) -> None:
    try:
        json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be JSON-serializable", field=field, error_type="invalid_type") from exc

