"""
Restricted execution shared by both evaluation backends.

The in-process backend and the out-of-process worker both go through
``run()``, so equivalent inputs produce equivalent results regardless of
which backend is configured.

Restrictions (enforced by RestrictedPython):
    - Names and attributes starting with ``_`` are rejected at compile time
    - ``eval``/``exec`` calls are rejected at compile time
    - Attribute access goes through ``safer_getattr`` (no ``str.format``)
    - Only SAFE_BUILTINS are reachable (no import, open, getattr, ...)

This module is imported by the worker process, so it must stay free of the
engine's imports (pydantic, PyYAML, the compiler).
"""

from __future__ import annotations

import ast
import json
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from RestrictedPython import compile_restricted_eval, compile_restricted_exec, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

# Name of the reserved context entry holding resolved system properties
SYSTEM_PROPERTIES_MAP = "sys_prop"

# Hook name every helper uses to report indirect context reads
ACCESS_HOOK = "accessed"

# Native lookup used by the ``get`` helper; reports the key it reads
CONTEXT_LOOKUP = "context_lookup"

SAFE_BUILTINS: Mapping[str, Any] = MappingProxyType(
    {
        **safe_builtins,
        "all": all,
        "any": any,
        "dict": dict,
        "enumerate": enumerate,
        "filter": filter,
        "list": list,
        "map": map,
        "max": max,
        "min": min,
        "reversed": reversed,
        "set": set,
        "sum": sum,
    }
)

GUARDS: Mapping[str, Any] = MappingProxyType(
    {
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
    }
)


class ForbiddenExpressionError(Exception):
    """Source uses a construct the sandbox does not allow.

    Attributes:
        violations: Messages reported by the restricting compiler
    """

    def __init__(self, violations: tuple[str, ...] | list[str]):
        self.violations = tuple(violations)
        super().__init__(f"Forbidden in expressions: {'; '.join(self.violations)}")


class SerializationError(Exception):
    """A context or result cannot be represented as JSON."""

    pass


def unwrap_expression(expression: str) -> str:
    """Strip an outer ``${ ... }`` wrapper and surrounding whitespace."""
    stripped = expression.strip()
    if stripped.startswith("${") and stripped.endswith("}"):
        return stripped[2:-1].strip()
    return stripped


def describe_error(error: BaseException) -> str:
    """Backend-independent error message (``Type: message``)."""
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


def round_trip(value: Any, label: str) -> Any:
    """
    Pass ``value`` through JSON, as the worker protocol does.

    Tuples become lists and non-string keys become strings on every backend.

    Raises:
        SerializationError: ``value`` has no JSON representation
    """
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"{label} of type '{type(value).__name__}' cannot be serialized: {e}"
        ) from e


def compile_source(source: str, filename: str, mode: str) -> Any:
    """
    Compile ``source`` under the restricting policy.

    Raises:
        SyntaxError: Source does not parse
        ForbiddenExpressionError: Source parses but violates the policy
    """
    ast.parse(source, filename, mode)
    compiler = compile_restricted_eval if mode == "eval" else compile_restricted_exec
    result = compiler(source, filename)
    if result.errors:
        raise ForbiddenExpressionError(result.errors)
    return result.code


def run(
    functions_source: str,
    expression: str,
    context: Mapping[str, Any],
    namespace_factory: Callable[[dict[str, Any]], dict[str, Any]] = dict,
    access_hook: Callable[[str], None] | None = None,
) -> Any:
    """
    Evaluate ``expression`` against ``context`` after defining helper functions.

    Args:
        functions_source: Helper-function bundle (may define ``accessed``)
        expression: Expression text, optionally wrapped in ``${ }``
        context: Plain name -> raw value mapping (copied, never mutated)
        namespace_factory: Builds the globals mapping from the context copy
        access_hook: Native ``accessed(key)`` implementation, if the caller tracks reads

    Returns:
        The raw evaluation result

    Raises:
        SyntaxError: Expression or helpers do not parse
        ForbiddenExpressionError: Expression or helpers violate the policy
        Exception: Anything raised while evaluating
    """
    code = compile_source(unwrap_expression(expression), "<expression>", "eval")
    helpers = (
        compile_source(functions_source, "<functions>", "exec")
        if functions_source.strip()
        else None
    )

    namespace = namespace_factory(dict(context))
    entries = dict(namespace)

    def context_lookup(key: str) -> Any:
        if access_hook is not None:
            access_hook(key)
        return entries.get(key)

    namespace["__builtins__"] = dict(SAFE_BUILTINS)
    namespace.update(GUARDS)
    namespace[CONTEXT_LOOKUP] = context_lookup
    if access_hook is not None:
        namespace[ACCESS_HOOK] = access_hook

    if helpers is not None:
        exec(helpers, namespace)  # noqa: S102
    return eval(code, namespace)  # noqa: S307
