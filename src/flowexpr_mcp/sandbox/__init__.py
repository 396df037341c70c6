"""Restricted expression execution.

Kept apart from ``flowexpr_mcp.engine`` so the evaluation worker process
imports only this package and RestrictedPython.

Public API:
    - run: Evaluate an expression after defining helper functions
    - round_trip: JSON normalization shared by both backends
    - ForbiddenExpressionError / SerializationError: Sandbox failures
"""

from .restricted import (
    ACCESS_HOOK,
    CONTEXT_LOOKUP,
    SAFE_BUILTINS,
    SYSTEM_PROPERTIES_MAP,
    ForbiddenExpressionError,
    SerializationError,
    compile_source,
    describe_error,
    round_trip,
    run,
    unwrap_expression,
)

__all__ = [
    "ACCESS_HOOK",
    "CONTEXT_LOOKUP",
    "SAFE_BUILTINS",
    "SYSTEM_PROPERTIES_MAP",
    "ForbiddenExpressionError",
    "SerializationError",
    "compile_source",
    "describe_error",
    "round_trip",
    "run",
    "unwrap_expression",
]
