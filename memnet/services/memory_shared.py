"""
Response envelope and the single error boundary around action dispatch.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Optional

from memnet.config import logger
from memnet.errors import (
    DuplicateNameError,
    ExecutionError,
    NotFoundError,
    RemoteSyncError,
    ValidationError,
)
from memnet.models import utc_now_iso


@dataclass
class ActionResult:
    """What an action handler hands back to the envelope builder."""

    message: str
    data: Any = None
    success: bool = True
    metadata: dict = field(default_factory=dict)


def build_envelope(
    action: Optional[str],
    started: float,
    success: bool,
    message: str,
    data: Any = None,
    **metadata: Any,
) -> dict:
    meta = {"executionTime": round((time.perf_counter() - started) * 1000, 3)}
    meta.update({name: value for name, value in metadata.items() if value is not None})
    return {
        "success": success,
        "action": action,
        "message": message,
        "data": data,
        "timestamp": utc_now_iso(),
        "metadata": meta,
    }


def error_type_for(exc: Exception) -> str:
    if isinstance(exc, DuplicateNameError):
        return "duplicate_name"
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ExecutionError):
        return "execution_error"
    if isinstance(exc, RemoteSyncError):
        return "remote_error"
    return "internal_error"


def _log_validation_issue(action: Optional[str], exc: ValidationError, warn: bool = False) -> None:
    payload = {
        "action": action,
        "field": exc.field,
        "error_type": exc.error_type,
        "detail": str(exc),
    }
    if warn:
        logger.warning("tool_validation_error", extra=payload)
    else:
        logger.info("tool_validation_error", extra=payload)


def _error_envelope(action: Optional[str], started: float, exc: Exception) -> dict:
    error_type = error_type_for(exc)
    field_name = exc.field if isinstance(exc, ValidationError) else None
    data = exc.data if isinstance(exc, ValidationError) else None
    return build_envelope(
        action,
        started,
        False,
        str(exc) or type(exc).__name__,
        data,
        errorType=error_type,
        field=field_name,
    )


def action_boundary(fn: Callable[..., ActionResult]) -> Callable[..., dict]:
    """Wrap ``fn(payload, services)`` so every outcome is an envelope."""

    @wraps(fn)
    def wrapper(payload: Any, *args, **kwargs) -> dict:
        started = time.perf_counter()
        action = payload.get("action") if isinstance(payload, dict) else None
        try:
            result = fn(payload, *args, **kwargs)
        except ValidationError as exc:
            _log_validation_issue(action, exc)
            return _error_envelope(action, started, exc)
        except (NotFoundError, ExecutionError) as exc:
            logger.info(
                "action_failed",
                extra={"action": action, "error_type": error_type_for(exc), "detail": str(exc)},
            )
            return _error_envelope(action, started, exc)
        except RemoteSyncError as exc:
            logger.warning("action_failed", extra={"action": action, "error_type": "remote_error", "detail": str(exc)})
            return _error_envelope(action, started, exc)
        except ValueError as exc:
            issue = ValidationError(str(exc), field="unknown", error_type="value_error")
            _log_validation_issue(action, issue, warn=True)
            return _error_envelope(action, started, issue)
        except Exception as exc:
            logger.error("action_unhandled_error", extra={"action": action}, exc_info=True)
            return _error_envelope(action, started, exc)
        return build_envelope(
            action,
            started,
            result.success,
            result.message,
            result.data,
            **result.metadata,
        )

    return wrapper
