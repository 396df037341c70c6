"""
System property discovery over configuration structures.

Two traversals share the same contract (``-> set[str]``):

Object repository tree (post-order DFS)::

    objects:
      - object:
          child_objects: [ ...same shape... ]
          properties:
            - property:
                value:
                  value: "${get_sp('app.login.user')}"

Settings groups (fixed schema)::

    sap:     {user, client, language, password, server}
    windows: {apps: {<app name>: {args, path, directory}}}
    web:     {address, browser}

Both are null-tolerant (absent tree, groups, containers or fields mean "no
dependency") and never catch: a MalformedExpressionError from the analyzer
propagates before any result is returned.
"""

from collections.abc import Mapping
from typing import Any

from .expressions.analyzer import ExpressionDependencyAnalyzer

OBJECTS = "objects"
OBJECT = "object"
CHILD_OBJECTS = "child_objects"
OBJECT_PROPERTIES = "properties"
OBJECT_PROPERTY = "property"
OBJECT_VALUE = "value"

SAP_FIELDS = ("user", "client", "language", "password", "server")
WINDOWS_APP_FIELDS = ("args", "path", "directory")
WEB_FIELDS = ("address", "browser")


class ConfigurationDependencyCollector:
    """
    Aggregate every system property referenced in configuration structures.

    Example:
        collector = ConfigurationDependencyCollector()
        names = collector.collect_object_repository(flow["object_repository"])
        names |= collector.collect_settings(flow["settings"])
    """

    def __init__(self, analyzer: ExpressionDependencyAnalyzer | None = None):
        self.analyzer = analyzer or ExpressionDependencyAnalyzer()

    # ------------------------------------------------------------------
    # Object repository tree
    # ------------------------------------------------------------------

    def collect_object_repository(self, object_map: Mapping[str, Any] | None) -> set[str]:
        """
        Collect system properties referenced by any object in the tree.

        Args:
            object_map: Mapping with an ``objects`` list (None is allowed)

        Returns:
            Union of all referenced system property names
        """
        if not object_map:
            return set()
        property_lists = self._property_lists(object_map.get(OBJECTS))
        names: set[str] = set()
        for properties in property_lists:
            names |= self._properties_system_properties(properties)
        return names

    def _property_lists(self, objects: list[Any] | None) -> list[list[Any]]:
        """Post-order list of each node's property list (children before parent)."""
        collected: list[list[Any]] = []
        for entry in objects or []:
            node = _mapping(_mapping(entry).get(OBJECT))
            children = node.get(CHILD_OBJECTS) or []
            if children:
                collected.extend(self._property_lists(children))
            collected.append(node.get(OBJECT_PROPERTIES) or [])
        return collected

    def _properties_system_properties(self, properties: list[Any]) -> set[str]:
        names: set[str] = set()
        for element in properties:
            descriptor = _mapping(_mapping(element).get(OBJECT_PROPERTY))
            expression = _mapping(descriptor.get(OBJECT_VALUE)).get(OBJECT_VALUE)
            names |= self._system_properties(expression)
        return names

    # ------------------------------------------------------------------
    # Settings groups
    # ------------------------------------------------------------------

    def collect_settings(self, settings: Mapping[str, Any] | None) -> set[str]:
        """
        Collect system properties referenced by the sap/windows/web settings.

        Args:
            settings: Mapping with optional ``sap``, ``windows`` and ``web`` groups

        Returns:
            Union of all referenced system property names
        """
        if not settings:
            return set()
        names: set[str] = set()
        names |= self._sap_settings(settings.get("sap"))
        names |= self._windows_settings(settings.get("windows"))
        names |= self._web_settings(settings.get("web"))
        return names

    def _sap_settings(self, sap: Any) -> set[str]:
        return self._fields(sap, SAP_FIELDS)

    def _windows_settings(self, windows: Any) -> set[str]:
        apps = _mapping(_mapping(windows).get("apps"))
        names: set[str] = set()
        for app in apps.values():
            names |= self._fields(app, WINDOWS_APP_FIELDS)
        return names

    def _web_settings(self, web: Any) -> set[str]:
        return self._fields(web, WEB_FIELDS)

    def _fields(self, group: Any, fields: tuple[str, ...]) -> set[str]:
        group = _mapping(group)
        names: set[str] = set()
        for name in fields:
            names |= self._system_properties(group.get(name))
        return names

    def _system_properties(self, expression: Any) -> set[str]:
        if not isinstance(expression, str) or not expression:
            return set()
        return set(self.analyzer.analyze(expression).system_property_dependencies)


def _mapping(value: Any) -> Mapping[str, Any]:
    """Treat anything that is not a mapping as an empty one."""
    return value if isinstance(value, Mapping) else {}


_default_collector = ConfigurationDependencyCollector()


def get_object_repository_system_properties(object_map: Mapping[str, Any] | None) -> set[str]:
    return _default_collector.collect_object_repository(object_map)


def get_settings_system_properties(settings: Mapping[str, Any] | None) -> set[str]:
    return _default_collector.collect_settings(settings)


__all__ = [
    "ConfigurationDependencyCollector",
    "get_object_repository_system_properties",
    "get_settings_system_properties",
]
