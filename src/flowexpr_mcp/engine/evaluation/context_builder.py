"""Evaluation context construction.

Every evaluation call gets its own BackendContext; nothing built here is
shared between calls, so concurrent evaluations cannot interfere.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..expressions.functions import SYSTEM_PROPERTIES_MAP, ScriptFunction, build_functions_script
from ..values import SystemProperty, Value

logger = logging.getLogger(__name__)

ContextEntry = Value | dict[str, Value]


@dataclass(frozen=True)
class BackendContext:
    """
    Tagged context plus helper-function bundle for one evaluation.

    Attributes:
        values: Name -> Value, plus the optional ``sys_prop`` sub-map of Values
        functions_source: Helper-function source to define before evaluating
    """

    values: dict[str, ContextEntry]
    functions_source: str

    @property
    def system_properties_defined(self) -> bool:
        return SYSTEM_PROPERTIES_MAP in self.values

    def raw(self) -> dict[str, Any]:
        """Unwrap Values (one nested level) into the plain mapping a backend evaluates."""
        plain: dict[str, Any] = {}
        for name, entry in self.values.items():
            if isinstance(entry, Mapping):
                plain[name] = {key: _unwrap(value) for key, value in entry.items()}
            else:
                plain[name] = _unwrap(entry)
        return plain


class EvaluationContextBuilder:
    """
    Translate variables and resolved system properties into a BackendContext.

    Args:
        include_access_stub: Append the no-op ``accessed`` hook to the function
            bundle (for backends that do not provide it natively)

    Note:
        A user variable named ``sys_prop`` collides with the reserved
        system-properties entry. The behaviour is undefined; the reserved
        entry replaces the variable and a warning is logged.
    """

    def __init__(self, include_access_stub: bool = False):
        self.include_access_stub = include_access_stub

    def build(
        self,
        variables: Mapping[str, Value] | None,
        properties: Iterable[SystemProperty] | None = None,
        functions: Iterable[ScriptFunction] | None = None,
    ) -> BackendContext:
        values: dict[str, ContextEntry] = {
            name: Value.create(value) for name, value in (variables or {}).items()
        }
        selected = frozenset(functions or ())

        if ScriptFunction.GET_SYSTEM_PROPERTY in selected:
            if SYSTEM_PROPERTIES_MAP in values:
                logger.warning(
                    f"Variable '{SYSTEM_PROPERTIES_MAP}' collides with the reserved "
                    "system properties entry and is replaced"
                )
            values[SYSTEM_PROPERTIES_MAP] = {
                prop.fully_qualified_name: prop.to_value() for prop in properties or ()
            }

        return BackendContext(
            values=values,
            functions_source=build_functions_script(selected, self.include_access_stub),
        )


def _unwrap(value: Any) -> Any:
    return value.raw if isinstance(value, Value) else value


__all__ = ["BackendContext", "ContextEntry", "EvaluationContextBuilder"]
