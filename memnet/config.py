"""
Shared configuration for memnet.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("memnet")


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_optional_str(env_name: str) -> Optional[str]:
    value = os.environ.get(env_name)
    if value is None or not value.strip():
        return None
    return value.strip()


SERVICE_NAME = "memnet"
SERVICE_VERSION = "0.1.0"
SERVICE_DESCRIPTION = "Persistent memory entries and user-defined tools for AI agents"

# Storage settings
DATA_DIR = os.environ.get("MEMNET_DATA_DIR", "memnet-data")
ENTRIES_FILE = os.environ.get("MEMNET_ENTRIES_FILE", "memory.json")
TOOLS_FILE = os.environ.get("MEMNET_TOOLS_FILE", "tools.json")

# Remote mirror
MIRROR_URL = _get_optional_str("MEMNET_MIRROR_URL")
MIRROR_TIMEOUT_SECONDS = _get_float("MEMNET_MIRROR_TIMEOUT_SECONDS", 5.0)
PUBLIC_TAG = "public"

# Request/input limits
DEFAULT_SEARCH_LIMIT = _get_int("MEMNET_DEFAULT_SEARCH_LIMIT", 10)
MAX_SEARCH_LIMIT = _get_int("MEMNET_MAX_SEARCH_LIMIT", 100)
MAX_SUGGESTIONS = 5
DEFAULT_PAGE_LIMIT = _get_int("MEMNET_DEFAULT_PAGE_LIMIT", 10)
MAX_QUERY_LENGTH = _get_int("MEMNET_MAX_QUERY_LENGTH", 1000)
MAX_DESCRIPTION_LENGTH = _get_int("MEMNET_MAX_DESCRIPTION_LENGTH", 2000)
MAX_TAG_ITEMS = _get_int("MEMNET_MAX_TAG_ITEMS", 50)
MAX_TAG_LENGTH = _get_int("MEMNET_MAX_TAG_LENGTH", 100)
MAX_HANDLER_CODE_LENGTH = _get_int("MEMNET_MAX_HANDLER_CODE_LENGTH", 100_000)

# API tool defaults
API_DEFAULT_TIMEOUT_MS = _get_int("MEMNET_API_DEFAULT_TIMEOUT_MS", 5000)
API_MAX_TIMEOUT_MS = _get_int("MEMNET_API_MAX_TIMEOUT_MS", 30000)
API_DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "memnet-api-tool",
}

# Fixed validation rules
KEY_PATTERN = r"^[a-zA-Z0-9_.-]+$"
TOOL_NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
MIN_KEY_LENGTH = 1
MAX_KEY_LENGTH = 100
MIN_TOOL_NAME_LENGTH = 1
MAX_TOOL_NAME_LENGTH = 50

ENTRY_TYPES = ("text", "json", "list", "counter", "custom")
TOOL_TYPES = ("storage", "retrieval", "processor", "analyzer")
HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
AUTH_TYPES = ("bearer", "basic", "api-key")


def validate_and_prepare_config() -> None:
    """Validate configuration at startup."""
    errors = []
    if not DATA_DIR:
        errors.append("MEMNET_DATA_DIR must not be empty")
    if not ENTRIES_FILE or not TOOLS_FILE:
        errors.append("MEMNET_ENTRIES_FILE and MEMNET_TOOLS_FILE must not be empty")
    if ENTRIES_FILE == TOOLS_FILE:
        errors.append("MEMNET_ENTRIES_FILE and MEMNET_TOOLS_FILE must differ")
    if MIRROR_TIMEOUT_SECONDS <= 0:
        errors.append("MEMNET_MIRROR_TIMEOUT_SECONDS must be positive")
    if MIRROR_URL and not MIRROR_URL.lower().startswith(("http://", "https://")):
        errors.append("MEMNET_MIRROR_URL must be an http(s) URL")
    if DEFAULT_SEARCH_LIMIT <= 0 or MAX_SEARCH_LIMIT < DEFAULT_SEARCH_LIMIT:
        errors.append("search limits must satisfy 0 < default <= max")
    if DEFAULT_PAGE_LIMIT <= 0:
        errors.append("MEMNET_DEFAULT_PAGE_LIMIT must be positive")
    if API_DEFAULT_TIMEOUT_MS <= 0 or API_MAX_TIMEOUT_MS < API_DEFAULT_TIMEOUT_MS:
        errors.append("API tool timeouts must satisfy 0 < default <= max")

    if not MIRROR_URL:
        logger.info("MEMNET_MIRROR_URL not set; public tags stay local-only.")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
