"""Expression dependency analysis and sandboxed evaluation engine.

Key Components:

- ExpressionDependencyAnalyzer: Lexical get_sp/helper-call discovery (compile time)
- ConfigurationDependencyCollector: Object repository and settings traversals
- DependencyCompiler: Flow-wide dependency discovery with PrecompileCache
- SystemPropertyStore: Named configuration values loaded from YAML
- ScriptEvaluator: Expression evaluation through a configured backend (run time)
- Value: Tagged payload carrying the sensitive taint
- EvaluationConfig / ConfigLoader: Startup configuration

Architecture:
- Analysis is pure and backend-independent; it runs before any context exists
- Evaluation builds a fresh context per call; the backend is chosen once
- Sensitivity only propagates forward (inputs taint outputs, never the reverse)
"""

from ..sandbox import ForbiddenExpressionError
from .compiler import DependencyCompiler, FlowDependencies, FlowLoadError
from .config import ConfigLoader, EvaluationConfig
from .dependencies import (
    ConfigurationDependencyCollector,
    get_object_repository_system_properties,
    get_settings_system_properties,
)
from .evaluation import (
    EmbeddedPythonBackend,
    EvaluationBackend,
    ExternalPythonBackend,
    ScriptEvaluator,
    create_evaluator,
)
from .exceptions import (
    EvaluationTimeoutError,
    ExpressionEvaluationError,
    FlowExprError,
    MalformedExpressionError,
    MissingSystemPropertiesError,
    SystemPropertyFileError,
)
from .expressions import Accumulator, ExpressionDependencyAnalyzer, ScriptFunction
from .precompile_cache import PrecompileCache
from .redaction import REDACTION_MARKER, SensitiveTextRedactor, redact_outputs, redact_value
from .system_properties import SystemPropertyStore, load_properties_file
from .values import SystemProperty, Value

__all__ = [
    # Analysis
    "Accumulator",
    "ConfigurationDependencyCollector",
    "DependencyCompiler",
    "ExpressionDependencyAnalyzer",
    "FlowDependencies",
    "FlowLoadError",
    "PrecompileCache",
    "ScriptFunction",
    "get_object_repository_system_properties",
    "get_settings_system_properties",
    # Evaluation
    "EmbeddedPythonBackend",
    "EvaluationBackend",
    "ExternalPythonBackend",
    "ScriptEvaluator",
    "create_evaluator",
    # Values and configuration
    "ConfigLoader",
    "EvaluationConfig",
    "SystemProperty",
    "SystemPropertyStore",
    "Value",
    "load_properties_file",
    # Redaction
    "REDACTION_MARKER",
    "SensitiveTextRedactor",
    "redact_outputs",
    "redact_value",
    # Exceptions
    "EvaluationTimeoutError",
    "ExpressionEvaluationError",
    "FlowExprError",
    "ForbiddenExpressionError",
    "MalformedExpressionError",
    "MissingSystemPropertiesError",
    "SystemPropertyFileError",
]
