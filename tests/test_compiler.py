"""Tests for flow dependency compilation and the precompile cache."""

import os
from unittest.mock import MagicMock, call

import pytest

from flowexpr_mcp.engine import (
    DependencyCompiler,
    FlowLoadError,
    MalformedExpressionError,
    MissingSystemPropertiesError,
    PrecompileCache,
    ScriptFunction,
)

FLOW_YAML = """\
flow:
  name: deploy
  inputs:
    - host: "${get_sp('app.db.host')}"
    - banner: "${cs_to_upper(get('name', 'x'))}"
  workflow:
    - step:
        do:
          connect:
            url: "${get_sp('app.db.host') + ':' + get_sp('app.db.port')}"
        navigate:
          - SUCCESS: "${check_empty(result)}"
  object_repository:
    objects:
      - object:
          properties:
            - property:
                value:
                  value: "${get_sp('ui.login.user')}"
  settings:
    web:
      address: "${get_sp('web.url')}"
    ignored: "${get_sp('not.read')}"
"""


@pytest.fixture
def flow_file(tmp_path):
    path = tmp_path / "deploy.yml"
    path.write_text(FLOW_YAML, encoding="utf-8")
    return path


def test_compile_collects_all_sections(compiler, flow_file):
    dependencies = compiler.compile(flow_file)

    assert dependencies.source == str(flow_file)
    assert dependencies.system_properties == {
        "app.db.host",
        "app.db.port",
        "ui.login.user",
        "web.url",
    }
    assert dependencies.functions == {
        ScriptFunction.GET_SYSTEM_PROPERTY,
        ScriptFunction.GET,
        ScriptFunction.CS_TO_UPPER,
        ScriptFunction.CHECK_EMPTY,
    }


def test_to_dict_is_sorted(compiler, flow_file):
    report = compiler.compile(flow_file).to_dict()

    assert report["system_properties"] == sorted(report["system_properties"])
    assert report["functions"] == ["get", "get_sp", "check_empty", "cs_to_upper"]


def test_validate_passes_when_defined(compiler, flow_file, property_store):
    dependencies = compiler.compile_document({"x": "${get_sp('app.db.host')}"}, "inline")

    compiler.validate(dependencies, property_store)


def test_validate_lists_missing_properties(compiler, flow_file, property_store):
    dependencies = compiler.compile(flow_file)

    with pytest.raises(MissingSystemPropertiesError) as exc_info:
        compiler.validate(dependencies, property_store)

    assert exc_info.value.names == ["ui.login.user", "web.url"]
    assert exc_info.value.source == str(flow_file)


def test_malformed_expression_propagates(compiler):
    with pytest.raises(MalformedExpressionError):
        compiler.compile_document({"steps": ["${get_sp('a'}"]})


def test_missing_file(compiler, tmp_path):
    with pytest.raises(FlowLoadError, match="Cannot load flow"):
        compiler.compile(tmp_path / "missing.yml")


def test_invalid_yaml(compiler, tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("flow: [unclosed\n")

    with pytest.raises(FlowLoadError, match="invalid YAML"):
        compiler.compile(path)


def test_non_string_leaves_are_ignored(compiler):
    dependencies = compiler.compile_document({"a": 1, "b": None, "c": [True, 2.5]})

    assert dependencies.system_properties == frozenset()
    assert dependencies.functions == frozenset()


# =============================================================================
# Precompile cache
# =============================================================================


def test_precompile_cache_enabled_call_order(flow_file):
    cache = MagicMock(spec=PrecompileCache)
    cache.get.return_value = None
    compiler = DependencyCompiler(cache=cache)

    compiler.enable_precompile_cache()
    result = compiler.compile(flow_file)
    stat = os.stat(flow_file)
    stamp = (stat.st_mtime_ns, stat.st_size)

    assert cache.mock_calls == [
        call.clean_up(),
        call.get(str(flow_file), stamp),
        call.put(str(flow_file), stamp, result),
    ]

    compiler.disable_precompile_cache()
    compiler.compile(flow_file)

    assert cache.mock_calls[-1] == call.clean_up()
    assert len(cache.mock_calls) == 4


def test_precompile_cache_disabled_is_untouched(flow_file):
    cache = MagicMock(spec=PrecompileCache)
    compiler = DependencyCompiler(cache=cache)

    compiler.compile(flow_file)

    assert cache.mock_calls == []


def test_precompile_cache_hit_skips_compilation(flow_file):
    compiler = DependencyCompiler()
    compiler.enable_precompile_cache()

    first = compiler.compile(flow_file)
    second = compiler.compile(flow_file)

    assert second is first
    assert len(compiler.cache) == 1

    compiler.disable_precompile_cache()
    assert len(compiler.cache) == 0


def test_precompile_cache_recompiles_edited_flow(flow_file):
    compiler = DependencyCompiler()
    compiler.enable_precompile_cache()

    first = compiler.compile(flow_file)
    flow_file.write_text("changed: \"${get_sp('other')}\"\n")
    second = compiler.compile(flow_file)

    assert "app.db.host" in first.system_properties
    assert second.system_properties == {"other"}
    assert len(compiler.cache) == 1


def test_precompile_cache_stale_stamp_misses(flow_file, compiler):
    cache = PrecompileCache()
    dependencies = compiler.compile(flow_file)

    cache.put("flow.yml", (1, 10), dependencies)

    assert cache.get("flow.yml", (1, 10)) is dependencies
    assert cache.get("flow.yml", (2, 10)) is None
    assert cache.get("other.yml", (1, 10)) is None


def test_compile_with_cache_enabled_missing_file(compiler, tmp_path):
    compiler.enable_precompile_cache()

    with pytest.raises(FlowLoadError, match="Cannot load flow"):
        compiler.compile(tmp_path / "missing.yml")
