"""System property files and the in-memory property store.

File format (YAML)::

    namespace: db.main
    properties:
      - host: db.example.com
      - port: 5432
      - password:
          value: hunter2
          sensitive: true

Each list item is a one-key mapping. The key is appended to the namespace to
form the fully qualified name (``db.main.password``). A value is either a
scalar or a ``{value, sensitive}`` mapping. Scalars are stored as strings.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from .exceptions import SystemPropertyFileError
from .values import SystemProperty

logger = logging.getLogger(__name__)

NAMESPACE_KEY = "namespace"
PROPERTIES_KEY = "properties"
VALUE_KEY = "value"
SENSITIVE_KEY = "sensitive"


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def parse_properties(document: Any, source: str = "<string>") -> set[SystemProperty]:
    """
    Build SystemProperty objects from a decoded property document.

    Raises:
        SystemPropertyFileError: Document does not have the expected shape
    """
    if not isinstance(document, Mapping):
        raise SystemPropertyFileError(source, "top level must be a mapping")

    namespace = document.get(NAMESPACE_KEY) or ""
    if not isinstance(namespace, str):
        raise SystemPropertyFileError(source, f"'{NAMESPACE_KEY}' must be a string")

    entries = document.get(PROPERTIES_KEY) or []
    if not isinstance(entries, list):
        raise SystemPropertyFileError(source, f"'{PROPERTIES_KEY}' must be a list")

    properties: set[SystemProperty] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping) or len(entry) != 1:
            raise SystemPropertyFileError(
                source, f"property #{index + 1} must be a mapping with exactly one key"
            )
        (key, raw), = entry.items()
        name = f"{namespace}.{key}" if namespace else str(key)

        if isinstance(raw, Mapping):
            unknown = set(raw) - {VALUE_KEY, SENSITIVE_KEY}
            if unknown:
                raise SystemPropertyFileError(
                    source, f"property '{name}' has unknown keys: {', '.join(sorted(unknown))}"
                )
            value = _as_text(raw.get(VALUE_KEY))
            sensitive = bool(raw.get(SENSITIVE_KEY, False))
        else:
            value = _as_text(raw)
            sensitive = False

        properties.add(SystemProperty(fully_qualified_name=name, value=value, sensitive=sensitive))
    return properties


def load_properties_file(path: str | Path) -> set[SystemProperty]:
    """Read and parse one system property file."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise SystemPropertyFileError(str(path), f"cannot be read: {e}") from e
    except yaml.YAMLError as e:
        raise SystemPropertyFileError(str(path), f"invalid YAML: {e}") from e
    return parse_properties(document, str(path))


class SystemPropertyStore:
    """
    Resolved system properties indexed by fully qualified name.

    Later definitions of the same name replace earlier ones (a warning is
    logged). The store is read-only once loading has finished.
    """

    def __init__(self, properties: Iterable[SystemProperty] = ()):
        self._properties: dict[str, SystemProperty] = {}
        self.add_all(properties)

    @classmethod
    def from_files(cls, paths: Iterable[str | Path]) -> SystemPropertyStore:
        store = cls()
        for path in paths:
            loaded = load_properties_file(path)
            logger.info(f"Loaded {len(loaded)} system properties from {path}")
            store.add_all(loaded)
        return store

    def add_all(self, properties: Iterable[SystemProperty]) -> None:
        for prop in properties:
            if prop.fully_qualified_name in self._properties:
                logger.warning(f"System property '{prop.fully_qualified_name}' redefined")
            self._properties[prop.fully_qualified_name] = prop

    def get(self, name: str) -> SystemProperty | None:
        return self._properties.get(name)

    def resolve(self, names: Iterable[str]) -> set[SystemProperty]:
        """Return the properties for the known names (unknown names are skipped)."""
        return {self._properties[name] for name in names if name in self._properties}

    def missing(self, names: Iterable[str]) -> set[str]:
        """Return the names that have no definition."""
        return {name for name in names if name not in self._properties}

    def __contains__(self, name: object) -> bool:
        return name in self._properties

    def __len__(self) -> int:
        return len(self._properties)


__all__ = [
    "SystemPropertyStore",
    "load_properties_file",
    "parse_properties",
]
