import pytest

from memnet.errors import ExecutionError, NotFoundError, ValidationError
from memnet.services.tool_sandbox import check_script


def _create(services, name, script, **kwargs):
    return services.tools.create_tool(name, f"{name} tool", script, **kwargs)


def test_script_receives_args_and_returns_result(services):
    _create(services, "adder", "return {'sum': args['a'] + args['b']}")

    outcome = services.executor.execute_tool("adder", {"a": 2, "b": 3})

    assert outcome.result == {"sum": 5}
    assert outcome.source == "local"
    assert outcome.to_dict()["tool"]["name"] == "adder"


def test_storage_capability_reaches_entry_store(services):
    script = (
        "note_id = generate_id()\n"
        "storage.store('note.' + note_id, args['text'], tags=['note'])\n"
        "found = storage.search('note.')\n"
        "return {'id': note_id, 'count': len(found), 'value': storage.retrieve('note.' + note_id)['value']}\n"
    )
    _create(services, "notes", script)

    result = services.executor.execute_tool("notes", {"text": "hello"}).result

    assert result["count"] == 1
    assert result["value"] == "hello"
    assert services.entries.get("note." + result["id"]).access_count == 1


def test_execution_counts_usage(services):
    tool = _create(services, "noop", "return None")
    services.executor.execute_tool(tool.id)
    services.executor.execute_tool("noop")
    assert services.tools.get_tool(tool.id).usage_count == 2


def test_missing_tool_is_not_found(services):
    with pytest.raises(NotFoundError):
        services.executor.execute_tool("nope")


def test_script_exception_becomes_execution_error(services):
    _create(services, "boom", "raise ValueError('kaput')")
    with pytest.raises(ExecutionError) as excinfo:
        services.executor.execute_tool("boom")
    assert excinfo.value.tool_name == "boom"
    assert "kaput" in str(excinfo.value)


def test_non_json_result_is_malformed_output(services):
    _create(services, "setter", "return {1, 2}")
    with pytest.raises(ExecutionError) as excinfo:
        services.executor.execute_tool("setter")
    assert "malformed output" in str(excinfo.value)


def test_fetch_is_denied_without_network_grant(services):
    _create(services, "caller", "return fetch('http://example.test')")
    with pytest.raises(ExecutionError) as excinfo:
        services.executor.execute_tool("caller")
    assert "network access" in str(excinfo.value)


@pytest.mark.parametrize("script", [
    "import os\nreturn os.getcwd()",
    "from os import path\nreturn 1",
    "return args.__class__",
    "return __builtins__",
    "return storage._entries",
    "global leaked\nreturn 1",
    "return (",
    "def gen():\n    yield g.gi_frame.f_back.f_back.f_globals\ng = gen()\nreturn str(next(g))",
    "async def co():\n    return 1\nreturn co().cr_frame",
    "try:\n    1 / 0\nexcept Exception as exc:\n    return exc.with_traceback(None)",
    "return '{0.gi_frame}'.format(args)",
    "return args.get.mro",
])
def test_check_script_rejects_unsafe_or_invalid_source(script):
    with pytest.raises(ValidationError) as excinfo:
        check_script(script)
    assert excinfo.value.field == "handlerCode"


def test_unknown_builtins_are_unavailable(services):
    _create(services, "opener", "return open('/etc/passwd').read()")
    with pytest.raises(ExecutionError):
        services.executor.execute_tool("opener")


def test_stored_script_that_fails_checks_is_execution_error(services):
    _create(services, "legacy", "import os\nreturn 1")
    with pytest.raises(ExecutionError) as excinfo:
        services.executor.execute_tool("legacy")
    assert "invalid script" in str(excinfo.value)


def test_generator_frames_cannot_reach_host_globals(services):
    escape = (
        "def gen():\n"
        "    yield g.gi_frame.f_back.f_back.f_globals\n"
        "g = gen()\n"
        "return str(next(g)['builtins'].open)\n"
    )
    _create(services, "escape", escape)

    with pytest.raises(ExecutionError) as excinfo:
        services.executor.execute_tool("escape")
    assert "is not allowed" in str(excinfo.value)


def test_generators_and_fstrings_still_work(services):
    script = (
        "def squares(n):\n"
        "    for i in range(n):\n"
        "        yield i * i\n"
        "return [f'{value}' for value in squares(args['n'])]\n"
    )
    _create(services, "squares", script)

    assert services.executor.execute_tool("squares", {"n": 3}).result == ["0", "1", "4"]
