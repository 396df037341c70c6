"""Sandboxed expression evaluation.

Public API:
    - ScriptEvaluator: Evaluate expressions into tagged Values
    - ExternalPythonBackend / EmbeddedPythonBackend: Interchangeable backends
    - EvaluationContextBuilder: Per-call backend context construction
    - classify / classify_without_access_tracking: Output taint decision
"""

from .backends import (
    BackendError,
    EmbeddedPythonBackend,
    EvaluationBackend,
    EvaluationResult,
    ExternalPythonBackend,
    create_backend,
)
from .context_builder import BackendContext, EvaluationContextBuilder
from .evaluator import ScriptEvaluator, create_evaluator
from .sensitivity import classify, classify_without_access_tracking

__all__ = [
    "BackendContext",
    "BackendError",
    "EmbeddedPythonBackend",
    "EvaluationBackend",
    "EvaluationContextBuilder",
    "EvaluationResult",
    "ExternalPythonBackend",
    "ScriptEvaluator",
    "classify",
    "classify_without_access_tracking",
    "create_backend",
    "create_evaluator",
]
