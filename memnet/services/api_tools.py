"""
API tool construction.

An API tool is an ordinary tool whose handler script is generated here: it
performs one HTTP call through the ``fetch`` capability and always returns a
result envelope instead of raising on non-2xx responses or timeouts.
"""

from __future__ import annotations

from typing import Optional

import httpx

from memnet.config import (
    API_DEFAULT_HEADERS,
    API_DEFAULT_TIMEOUT_MS,
    API_MAX_TIMEOUT_MS,
    AUTH_TYPES,
    HTTP_METHODS,
)
from memnet.errors import ValidationError
from memnet.validators import validate_choice, validate_limit, validate_mapping

BODY_METHODS = ("POST", "PUT", "PATCH")

API_TOOL_PARAMETERS = {
    "body": {
        "type": "object",
        "description": "Request body (POST, PUT, PATCH)",
        "optional": True,
    },
    "params": {
        "type": "object",
        "description": "Query parameters",
        "optional": True,
    },
    "customHeaders": {
        "type": "object",
        "description": "Headers overriding the defaults",
        "optional": True,
    },
    "customAuth": {
        "type": "object",
        "description": "Authentication overriding the stored config",
        "optional": True,
    },
}

_SCRIPT_TEMPLATE = '''\
# API tool handler generated by memnet
API_URL = {url!r}
METHOD = {method!r}
DEFAULT_HEADERS = {headers!r}
AUTH = {auth!r}
TIMEOUT_SECONDS = {timeout_seconds!r}

body = args.get("body")
params = args.get("params") or {{}}
custom_headers = args.get("customHeaders") or {{}}
custom_auth = args.get("customAuth")

request_headers = dict(DEFAULT_HEADERS)
request_headers.update(custom_headers)

auth_config = dict(AUTH or {{}})
if custom_auth:
    auth_config.update(custom_auth)

basic_auth = None
auth_type = auth_config.get("type")
if auth_type == "bearer" and auth_config.get("token"):
    request_headers["Authorization"] = "Bearer " + auth_config["token"]
elif auth_type == "basic" and auth_config.get("username") and auth_config.get("password"):
    basic_auth = (auth_config["username"], auth_config["password"])
elif auth_type == "api-key" and auth_config.get("apiKey"):
    request_headers[auth_config.get("apiKeyHeader") or "X-API-Key"] = auth_config["apiKey"]

payload = body if body is not None and METHOD in {body_methods!r} else None

started = fetch.clock()
try:
    response = fetch(
        API_URL,
        method=METHOD,
        headers=request_headers,
        params=params,
        body=payload,
        auth=basic_auth,
        timeout=TIMEOUT_SECONDS,
    )
except Exception as exc:
    return {{
        "success": False,
        "error": str(exc) or "request failed",
        "url": API_URL,
        "method": METHOD,
        "duration": round(fetch.clock() - started, 3),
    }}

try:
    data = response.json()
except ValueError:
    data = response.text

return {{
    "success": response.is_success,
    "status": response.status_code,
    "statusText": response.reason_phrase,
    "headers": dict(response.headers),
    "data": data,
    "duration": round(fetch.clock() - started, 3),
    "url": str(response.url),
    "method": METHOD,
}}
'''


def validate_api_url(api_url: str) -> None:
    try:
        url = httpx.URL(api_url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ValidationError("apiUrl is not a valid URL", field="apiUrl", error_type="invalid_url") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ValidationError("apiUrl must be an absolute http(s) URL", field="apiUrl", error_type="invalid_url")


def validate_api_auth(auth: Optional[dict], field: str = "apiAuth") -> None:
    if auth is None:
        return
    validate_mapping(auth, field)
    validate_choice(auth.get("type"), f"{field}.type", AUTH_TYPES)
    if auth.get("type") is None:
        raise ValidationError(f"{field}.type is required", field=field, error_type="required")
    for name, value in auth.items():
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field}.{name} must be a string", field=field, error_type="invalid_type")


def resolve_timeout_ms(timeout_ms: Optional[int]) -> int:
    if timeout_ms is None:
        return API_DEFAULT_TIMEOUT_MS
    validate_limit(timeout_ms, "apiTimeout", API_MAX_TIMEOUT_MS)
    return timeout_ms


def build_api_tool_script(
    api_url: str,
    method: str = "GET",
    headers: Optional[dict] = None,
    auth: Optional[dict] = None,
    timeout_ms: Optional[int] = None,
) -> str:
    """Validate the API description and render its handler script."""
    validate_api_url(api_url)
    method = (method or "GET").upper()
    validate_choice(method, "apiMethod", HTTP_METHODS)
    validate_mapping(headers, "apiHeaders")
    for name, value in (headers or {}).items():
        if not isinstance(value, str):
            raise ValidationError(f"apiHeaders.{name} must be a string", field="apiHeaders", error_type="invalid_type")
    validate_api_auth(auth)
    merged_headers = {**API_DEFAULT_HEADERS, **(headers or {})}
    return _SCRIPT_TEMPLATE.format(
        url=api_url,
        method=method,
        headers=merged_headers,
        auth=dict(auth) if auth else None,
        timeout_seconds=resolve_timeout_ms(timeout_ms) / 1000,
        body_methods=BODY_METHODS,
    )
