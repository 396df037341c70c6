"""Tests for the evaluation backends, the sandbox and the worker protocol."""

import asyncio
import io
import json
import threading
import time

import pytest

import flowexpr_mcp.sandbox
from flowexpr_mcp.engine.evaluation import (
    BackendError,
    EmbeddedPythonBackend,
    ExternalPythonBackend,
    create_backend,
)
from flowexpr_mcp.engine.expressions import ScriptFunction, build_functions_script
from flowexpr_mcp.sandbox import (
    ForbiddenExpressionError,
    SerializationError,
    round_trip,
    run,
    unwrap_expression,
)
from flowexpr_mcp.sandbox import worker

GET_SP = build_functions_script({ScriptFunction.GET_SYSTEM_PROPERTY, ScriptFunction.GET})
GET_SP_WITH_STUB = build_functions_script(
    {ScriptFunction.GET_SYSTEM_PROPERTY, ScriptFunction.GET}, include_access_stub=True
)

# Pure-Python busy loop: keeps switching the GIL so the event loop stays responsive
BUSY_EXPRESSION = "any(i < 0 for i in range(10**8))"

SECRET_PROPERTIES = {"app.db.host": "db", "app.db.password": "hunter22"}


# =============================================================================
# Sandbox
# =============================================================================


def test_unwrap_expression():
    assert unwrap_expression("  ${ a + 1 }  ") == "a + 1"
    assert unwrap_expression("a + 1") == "a + 1"


@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os')",
        "().__class__",
        "eval('1')",
        "get_sp.__globals__",
        "[c for c in ().__class__.__mro__]",
    ],
)
def test_sandbox_rejects_forbidden_constructs(expression):
    with pytest.raises(ForbiddenExpressionError, match="Forbidden"):
        run("", expression, {"get_sp": 1})


@pytest.mark.parametrize("expression", ["open('/etc/passwd')", "getattr(x, 'y')", "vars()"])
def test_sandbox_has_no_unsafe_builtins(expression):
    with pytest.raises(NameError):
        run("", expression, {"x": 1})


def test_sandbox_blocks_format_string_attribute_walk():
    expression = "('{0._' + '_globals_' + '_[sys_prop]}').format(get_sp)"

    with pytest.raises(NotImplementedError):
        run(GET_SP_WITH_STUB, expression, {"sys_prop": SECRET_PROPERTIES})


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("name + '__x'", "n__x"),
        ("'please import x'", "please import x"),
        ("f'{name}-{len(name)}'", "n-1"),
        ("{k: v for k, v in pairs}", {"a": 1}),
    ],
)
def test_sandbox_allows_plain_values_that_look_suspicious(expression, expected):
    assert run("", expression, {"name": "n", "pairs": [("a", 1)]}) == expected


def test_sandbox_syntax_error():
    with pytest.raises(SyntaxError):
        run("", "1 +", {})


def test_sandbox_does_not_mutate_context():
    context = {"items": [1, 2]}

    run("", "items + [3]", context)

    assert context == {"items": [1, 2]}


def test_round_trip_normalizes_json_shapes():
    assert round_trip({"t": (1, 2), 1: "a"}, "Result") == {"t": [1, 2], "1": "a"}

    with pytest.raises(SerializationError, match="Result of type 'set'"):
        round_trip({1, 2}, "Result")


# =============================================================================
# Worker protocol
# =============================================================================


def test_worker_reports_accessed_names():
    response = worker.evaluate_request(
        {
            "functions": GET_SP,
            "expression": "a + get_sp('db.port', 0)",
            "context": {"a": 1, "b": 2, "sys_prop": {"db.port": 5432}},
        }
    )

    assert response["result"] == 5433
    assert "a" in response["accessed"]
    assert "db.port" in response["accessed"]
    assert "b" not in response["accessed"]
    assert "sys_prop" not in response["accessed"]


def test_worker_get_helper_reports_key():
    response = worker.evaluate_request(
        {"functions": GET_SP, "expression": "get('name', 'anon')", "context": {"name": "bob"}}
    )

    assert response == {"result": "bob", "accessed": ["name"]}


def test_worker_direct_context_lookup_is_tracked():
    response = worker.evaluate_request(
        {"functions": "", "expression": "context_lookup('secret')", "context": {"secret": "hunter22"}}
    )

    assert response == {"result": "hunter22", "accessed": ["secret"]}


def test_worker_subscripting_properties_reports_key():
    response = worker.evaluate_request(
        {
            "functions": GET_SP,
            "expression": "get_sp('app.db.host') + sys_prop['app.db.password']",
            "context": {"sys_prop": SECRET_PROPERTIES},
        }
    )

    assert response["result"] == "dbhunter22"
    assert "app.db.password" in response["accessed"]


@pytest.mark.parametrize(
    "expression",
    ["str(sys_prop)", "list(sys_prop.values())", "dict(sys_prop)", "sys_prop", "[k for k in sys_prop]"],
)
def test_worker_whole_properties_read_reports_map(expression):
    response = worker.evaluate_request(
        {"functions": "", "expression": expression, "context": {"sys_prop": SECRET_PROPERTIES}}
    )

    assert "sys_prop" in response["accessed"]


def test_worker_tracks_reads_inside_comprehensions():
    response = worker.evaluate_request(
        {"functions": "", "expression": "[n * factor for n in numbers]", "context": {"numbers": [1, 2], "factor": 3}}
    )

    assert response["result"] == [3, 6]
    assert response["accessed"] == ["factor", "numbers"]


def test_worker_error_payload():
    response = worker.evaluate_request({"functions": "", "expression": "missing + 1", "context": {}})

    assert response["error"]["type"] == "NameError"
    assert "missing" in response["error"]["message"]


def test_worker_unserializable_result():
    response = worker.evaluate_request({"functions": "", "expression": "{1, 2}", "context": {}})

    assert response["error"]["type"] == "SerializationError"


def test_worker_main_round_trip(monkeypatch):
    request = {"functions": "", "expression": "x * 2", "context": {"x": 21}}
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(request)))
    stdout = io.StringIO()
    monkeypatch.setattr("sys.stdout", stdout)

    worker.main()

    assert json.loads(stdout.getvalue()) == {"result": 42, "accessed": ["x"]}


def test_worker_main_invalid_request(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("not json"))
    stdout = io.StringIO()
    monkeypatch.setattr("sys.stdout", stdout)

    worker.main()

    assert json.loads(stdout.getvalue())["error"]["type"] == "ProtocolError"


# =============================================================================
# Backends
# =============================================================================


@pytest.mark.asyncio
async def test_external_backend_returns_accessed_names():
    backend = ExternalPythonBackend()

    result = await backend.eval(GET_SP, "${a * 2}", {"a": 4, "b": 1})

    assert result.value == 8
    assert result.accessed_names == {"a"}


@pytest.mark.asyncio
async def test_embedded_backend_does_not_track_names():
    backend = EmbeddedPythonBackend()

    result = await backend.eval(GET_SP_WITH_STUB, "get_sp('k')", {"sys_prop": {"k": "v"}})

    assert result.value == "v"
    assert result.accessed_names is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("functions", "expression", "context", "expected"),
    [
        ("", "1 + 2", {}, 3),
        ("", "name.upper()", {"name": "x"}, "X"),
        ("", "sorted(items)[0]", {"items": [3, 1, 2]}, 1),
        ("", "{'k': v}", {"v": [1]}, {"k": [1]}),
        ("", "(1, 2)", {}, [1, 2]),
        ("", "{1: 'a'}", {}, {"1": "a"}),
        ("", "isinstance(pair, list)", {"pair": (1, 2)}, True),
        (GET_SP, "get_sp('a.b', 'd')", {"sys_prop": {}}, "d"),
        (GET_SP, "get('x') is None", {}, True),
    ],
)
async def test_backends_agree(functions, expression, context, expected):
    external = await ExternalPythonBackend().eval(functions, expression, context)
    embedded = await EmbeddedPythonBackend().eval(
        functions + build_functions_script((), include_access_stub=True), expression, context
    )

    assert external.value == embedded.value == expected


@pytest.mark.asyncio
async def test_backends_agree_on_errors():
    with pytest.raises(BackendError) as external:
        await ExternalPythonBackend().eval("", "1 / 0", {})
    with pytest.raises(BackendError) as embedded:
        await EmbeddedPythonBackend().eval("", "1 / 0", {})

    assert str(external.value) == str(embedded.value) == "ZeroDivisionError: division by zero"
    assert external.value.error_type == embedded.value.error_type == "ZeroDivisionError"


@pytest.mark.asyncio
async def test_backends_agree_on_unserializable_results():
    with pytest.raises(BackendError) as external:
        await ExternalPythonBackend().eval("", "{1, 2}", {})
    with pytest.raises(BackendError) as embedded:
        await EmbeddedPythonBackend().eval("", "{1, 2}", {})

    assert str(external.value) == str(embedded.value)
    assert external.value.error_type == embedded.value.error_type == "SerializationError"


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", [ExternalPythonBackend(), EmbeddedPythonBackend()])
async def test_backends_reject_unserializable_context(backend):
    with pytest.raises(BackendError) as exc_info:
        await backend.eval("", "x", {"x": object()})

    assert exc_info.value.error_type == "SerializationError"


@pytest.mark.asyncio
async def test_embedded_eval_runs_off_the_event_loop(monkeypatch):
    loop_thread = threading.current_thread()
    threads = []

    def slow_run(functions_source, expression, context):
        threads.append(threading.current_thread())
        time.sleep(0.3)
        return 1

    monkeypatch.setattr(flowexpr_mcp.sandbox, "run", slow_run)
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            await asyncio.sleep(0.01)
            ticks += 1

    task = asyncio.create_task(ticker())
    try:
        result = await EmbeddedPythonBackend().eval("", "x", {})
    finally:
        task.cancel()

    assert result.value == 1
    assert threads[0] is not loop_thread
    assert ticks >= 5


@pytest.mark.asyncio
async def test_external_backend_timeout_kills_worker():
    backend = ExternalPythonBackend()

    start = time.monotonic()
    with pytest.raises(TimeoutError):
        await backend.test("", "sum(range(10**12))", {}, timeout=0.5)

    assert time.monotonic() - start < 5


@pytest.mark.asyncio
async def test_embedded_backend_timeout_abandons_thread():
    backend = EmbeddedPythonBackend()

    start = time.monotonic()
    with pytest.raises(TimeoutError):
        await backend.test("", BUSY_EXPRESSION, {}, timeout=0.2)

    assert time.monotonic() - start < 1.5


@pytest.mark.asyncio
async def test_embedded_backend_test_returns_result_within_bound():
    result = await EmbeddedPythonBackend().test("", "x + 1", {"x": 1}, timeout=2)

    assert result.value == 2


@pytest.mark.asyncio
async def test_embedded_backend_test_propagates_errors():
    with pytest.raises(BackendError, match="NameError"):
        await EmbeddedPythonBackend().test("", "nope", {}, timeout=2)


@pytest.mark.asyncio
async def test_concurrent_evaluations_are_isolated():
    backend = EmbeddedPythonBackend()

    results = await asyncio.gather(
        *(backend.test("", "x * 10", {"x": i}, timeout=2) for i in range(20))
    )

    assert [r.value for r in results] == [i * 10 for i in range(20)]


def test_create_backend():
    assert isinstance(create_backend("external"), ExternalPythonBackend)
    assert isinstance(create_backend("embedded"), EmbeddedPythonBackend)
    with pytest.raises(ValueError, match="Unknown expression backend"):
        create_backend("jython")
