"""Shared test configuration for flowexpr-mcp tests.

Provides:
- Analyzer / collector / compiler instances
- Sample object repository trees and settings groups
- System property files and stores
- Evaluators for both backends
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from flowexpr_mcp.engine import (
    ConfigurationDependencyCollector,
    DependencyCompiler,
    EmbeddedPythonBackend,
    ExpressionDependencyAnalyzer,
    ExternalPythonBackend,
    ScriptEvaluator,
    SystemProperty,
    SystemPropertyStore,
)

PROPERTIES_YAML = """\
namespace: app.db
properties:
  - host: db.example.com
  - port: 5432
  - password:
      value: hunter22
      sensitive: true
"""


def object_node(properties: list[str] | None = None, children: list[Any] | None = None) -> dict:
    """Build one object repository entry from expression strings."""
    node: dict[str, Any] = {}
    if children is not None:
        node["child_objects"] = children
    if properties is not None:
        node["properties"] = [{"property": {"value": {"value": expr}}} for expr in properties]
    return {"object": node}


@pytest.fixture
def analyzer() -> ExpressionDependencyAnalyzer:
    return ExpressionDependencyAnalyzer()


@pytest.fixture
def collector() -> ConfigurationDependencyCollector:
    return ConfigurationDependencyCollector()


@pytest.fixture
def compiler() -> Iterator[DependencyCompiler]:
    compiler = DependencyCompiler()
    yield compiler
    compiler.disable_precompile_cache()


@pytest.fixture
def deep_object_repository() -> dict[str, Any]:
    """Depth-3 tree whose only reference sits on the deepest leaf."""
    leaf = object_node(properties=["${get_sp('x.y')}"])
    middle = object_node(children=[leaf])
    return {"objects": [object_node(children=[middle], properties=[])]}


@pytest.fixture
def properties_file(tmp_path: Path) -> Path:
    path = tmp_path / "db.yml"
    path.write_text(PROPERTIES_YAML, encoding="utf-8")
    return path


@pytest.fixture
def property_store(properties_file: Path) -> SystemPropertyStore:
    return SystemPropertyStore.from_files([properties_file])


@pytest.fixture
def secret_property() -> SystemProperty:
    return SystemProperty(fully_qualified_name="app.db.password", value="hunter22", sensitive=True)


@pytest.fixture
def plain_property() -> SystemProperty:
    return SystemProperty(fully_qualified_name="app.db.host", value="db.example.com")


@pytest.fixture
def embedded_evaluator() -> ScriptEvaluator:
    return ScriptEvaluator(EmbeddedPythonBackend())


@pytest.fixture
def external_evaluator() -> ScriptEvaluator:
    return ScriptEvaluator(ExternalPythonBackend())


@pytest.fixture(params=["embedded", "external"])
def evaluator(request: pytest.FixtureRequest) -> ScriptEvaluator:
    """Evaluator for each backend (cross-backend consistency)."""
    if request.param == "embedded":
        return ScriptEvaluator(EmbeddedPythonBackend())
    return ScriptEvaluator(ExternalPythonBackend())
