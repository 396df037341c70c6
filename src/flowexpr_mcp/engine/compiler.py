"""
Flow dependency compiler.

Loads a flow description (YAML) and discovers every system property and
helper function it depends on, without interpreting the flow's keywords:

- ``object_repository`` mappings go through the object repository traversal
- ``settings`` mappings go through the settings traversal
- every other string leaf is analyzed as an expression

Routing applies at any depth of the document. ``validate()`` is the gate a
flow must pass before it runs: every referenced property must be defined.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .dependencies import ConfigurationDependencyCollector
from .exceptions import FlowExprError, MissingSystemPropertiesError
from .expressions.accumulator import Accumulator
from .expressions.analyzer import ExpressionDependencyAnalyzer
from .expressions.functions import ScriptFunction, canonical_order
from .precompile_cache import PrecompileCache, SourceStamp
from .system_properties import SystemPropertyStore

logger = logging.getLogger(__name__)

OBJECT_REPOSITORY_KEY = "object_repository"
SETTINGS_KEY = "settings"


class FlowLoadError(FlowExprError):
    """A flow description cannot be read or parsed."""

    def __init__(self, path: str, details: str):
        self.path = path
        self.details = details
        super().__init__(f"Cannot load flow '{path}': {details}")


@dataclass(frozen=True)
class FlowDependencies:
    """
    Dependencies discovered in one flow description.

    Attributes:
        source: Path (or label) of the analyzed flow
        system_properties: Fully qualified names referenced anywhere in the flow
        functions: Helper functions called by the flow's expressions
    """

    source: str
    system_properties: frozenset[str] = field(default_factory=frozenset)
    functions: frozenset[ScriptFunction] = field(default_factory=frozenset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "system_properties": sorted(self.system_properties),
            "functions": [function.value for function in canonical_order(self.functions)],
        }


class DependencyCompiler:
    """
    Compile flow descriptions into FlowDependencies.

    Example:
        compiler = DependencyCompiler()
        compiler.enable_precompile_cache()
        dependencies = compiler.compile("flows/deploy.yml")
        compiler.validate(dependencies, store)
    """

    def __init__(
        self,
        analyzer: ExpressionDependencyAnalyzer | None = None,
        cache: PrecompileCache | None = None,
    ):
        self.analyzer = analyzer or ExpressionDependencyAnalyzer()
        self.collector = ConfigurationDependencyCollector(self.analyzer)
        self.cache = cache if cache is not None else PrecompileCache()
        self._cache_enabled = False

    @property
    def precompile_cache_enabled(self) -> bool:
        return self._cache_enabled

    def enable_precompile_cache(self) -> None:
        self.cache.clean_up()
        self._cache_enabled = True

    def disable_precompile_cache(self) -> None:
        self._cache_enabled = False
        self.cache.clean_up()

    def compile(self, path: str | Path) -> FlowDependencies:
        """
        Discover the dependencies of the flow stored at ``path``.

        Raises:
            FlowLoadError: File missing or not valid YAML
            MalformedExpressionError: An expression in the flow cannot be scanned
        """
        key = str(path)
        if not self._cache_enabled:
            return self._compile_file(key)

        stamp = self._stamp(key)
        cached = self.cache.get(key, stamp)
        if cached is not None:
            logger.debug(f"Precompile cache hit: {key}")
            return cached

        result = self._compile_file(key)
        self.cache.put(key, stamp, result)
        return result

    def compile_document(self, document: Any, source: str = "<document>") -> FlowDependencies:
        """Discover the dependencies of an already-decoded flow document."""
        accumulator = self._walk(document)
        logger.info(
            f"Compiled '{source}': {len(accumulator.system_property_dependencies)} system properties, "
            f"{len(accumulator.function_dependencies)} helper functions"
        )
        return FlowDependencies(
            source=source,
            system_properties=accumulator.system_property_dependencies,
            functions=accumulator.function_dependencies,
        )

    def validate(self, dependencies: FlowDependencies, store: SystemPropertyStore) -> None:
        """
        Ensure every referenced system property is defined.

        Raises:
            MissingSystemPropertiesError: Names with no definition in ``store``
        """
        missing = store.missing(dependencies.system_properties)
        if missing:
            raise MissingSystemPropertiesError(missing, dependencies.source)

    @staticmethod
    def _stamp(path: str) -> SourceStamp:
        try:
            stat = os.stat(path)
        except OSError as e:
            raise FlowLoadError(path, str(e)) from e
        return stat.st_mtime_ns, stat.st_size

    def _compile_file(self, path: str) -> FlowDependencies:
        try:
            with open(path, encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except OSError as e:
            raise FlowLoadError(path, str(e)) from e
        except yaml.YAMLError as e:
            raise FlowLoadError(path, f"invalid YAML: {e}") from e
        return self.compile_document(document, path)

    def _walk(self, node: Any) -> Accumulator:
        if isinstance(node, str):
            return self.analyzer.analyze(node)

        if isinstance(node, Mapping):
            result = Accumulator.empty()
            for key, value in node.items():
                if key == OBJECT_REPOSITORY_KEY and isinstance(value, Mapping):
                    result |= self._names(self.collector.collect_object_repository(value))
                elif key == SETTINGS_KEY and isinstance(value, Mapping):
                    result |= self._names(self.collector.collect_settings(value))
                else:
                    result |= self._walk(value)
            return result

        if isinstance(node, list):
            return Accumulator.union(self._walk(item) for item in node)

        return Accumulator.empty()

    @staticmethod
    def _names(names: set[str]) -> Accumulator:
        # Names only come from get_sp calls
        functions = frozenset({ScriptFunction.GET_SYSTEM_PROPERTY}) if names else frozenset()
        return Accumulator(frozenset(names), functions)


__all__ = ["DependencyCompiler", "FlowDependencies", "FlowLoadError"]
