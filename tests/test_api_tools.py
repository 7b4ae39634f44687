import base64
import json

import httpx
import pytest

from memnet.db import build_services
from memnet.errors import ValidationError
from memnet.services.api_tools import API_TOOL_PARAMETERS, build_api_tool_script
from memnet.services.tool_sandbox import check_script


@pytest.fixture
def captured():
    return []


@pytest.fixture
def api_services(tmp_path, captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if request.url.path == "/slow":
            raise httpx.ReadTimeout("timed out", request=request)
        if request.url.path == "/missing":
            return httpx.Response(404, json={"error": "no such thing"})
        return httpx.Response(200, json={"ok": True, "path": request.url.path})

    built = build_services(str(tmp_path), fetch_transport=httpx.MockTransport(handler))
    yield built
    built.close()


def _api_tool(services, name, url, **kwargs):
    script = build_api_tool_script(url, **kwargs)
    return services.tools.create_tool(name, "API tool", script, "processor", API_TOOL_PARAMETERS, network=True)


def test_generated_script_passes_sandbox_checks():
    check_script(build_api_tool_script("https://api.example.com/v1", "post", {"X-Trace": "1"}))


def test_get_request_with_params_and_bearer_auth(api_services, captured):
    _api_tool(
        api_services,
        "weather",
        "https://api.example.com/weather",
        auth={"type": "bearer", "token": "secret"},
    )

    result = api_services.executor.execute_tool("weather", {"params": {"city": "Oslo"}}).result

    assert result["success"] is True
    assert result["status"] == 200
    assert result["data"] == {"ok": True, "path": "/weather"}
    assert result["method"] == "GET"
    request = captured[0]
    assert request.url.params["city"] == "Oslo"
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.headers["User-Agent"] == "memnet-api-tool"
    assert request.content == b""


def test_body_only_sent_for_body_methods(api_services, captured):
    _api_tool(api_services, "poster", "https://api.example.com/items", method="POST")
    _api_tool(api_services, "getter", "https://api.example.com/items")

    api_services.executor.execute_tool("poster", {"body": {"name": "widget"}})
    api_services.executor.execute_tool("getter", {"body": {"name": "widget"}})

    assert json.loads(captured[0].content) == {"name": "widget"}
    assert captured[1].content == b""


def test_custom_headers_and_auth_override_defaults(api_services, captured):
    _api_tool(
        api_services,
        "keyed",
        "https://api.example.com/keyed",
        headers={"X-Env": "prod"},
        auth={"type": "api-key", "apiKey": "k1"},
    )

    api_services.executor.execute_tool(
        "keyed",
        {
            "customHeaders": {"X-Env": "staging"},
            "customAuth": {"type": "basic", "username": "u", "password": "p"},
        },
    )

    request = captured[0]
    assert request.headers["X-Env"] == "staging"
    expected = "Basic " + base64.b64encode(b"u:p").decode()
    assert request.headers["Authorization"] == expected


def test_non_2xx_is_reported_not_raised(api_services):
    _api_tool(api_services, "missing", "https://api.example.com/missing")
    result = api_services.executor.execute_tool("missing").result
    assert result["success"] is False
    assert result["status"] == 404
    assert result["data"] == {"error": "no such thing"}


def test_transport_failure_is_reported_not_raised(api_services):
    _api_tool(api_services, "slow", "https://api.example.com/slow", timeout_ms=1000)
    result = api_services.executor.execute_tool("slow").result
    assert result["success"] is False
    assert "timed out" in result["error"]
    assert result["url"] == "https://api.example.com/slow"
    assert result["duration"] >= 0


@pytest.mark.parametrize("kwargs", [
    {"api_url": "not a url"},
    {"api_url": "ftp://example.com/file"},
    {"api_url": "https://example.com", "method": "FETCH"},
    {"api_url": "https://example.com", "auth": {"type": "oauth"}},
    {"api_url": "https://example.com", "timeout_ms": 60000},
])
def test_invalid_api_descriptions_are_rejected(kwargs):
    with pytest.raises(ValidationError):
        build_api_tool_script(**kwargs)
