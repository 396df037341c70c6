"""
Expression dependency analysis.

Public API:
    - ExpressionDependencyAnalyzer: Lexical scanner for get_sp/helper calls
    - Accumulator: Immutable (system properties, functions) result
    - ScriptFunction: Closed enum of injectable helper functions
"""

from .accumulator import Accumulator
from .analyzer import ExpressionDependencyAnalyzer, analyze_expression, analyze_expressions
from .functions import (
    ACCESS_HOOK,
    ACCESS_HOOK_STUB,
    SYSTEM_PROPERTIES_MAP,
    ScriptFunction,
    build_functions_script,
    canonical_order,
    get_script,
)

__all__ = [
    "ACCESS_HOOK",
    "ACCESS_HOOK_STUB",
    "SYSTEM_PROPERTIES_MAP",
    "Accumulator",
    "ExpressionDependencyAnalyzer",
    "ScriptFunction",
    "analyze_expression",
    "analyze_expressions",
    "build_functions_script",
    "canonical_order",
    "get_script",
]
