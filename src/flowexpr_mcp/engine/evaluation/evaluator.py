"""Sandboxed expression evaluator.

Ties the context builder, the configured backend and the sensitivity tracker
together. One ScriptEvaluator is created at startup (backend chosen once from
configuration) and shared by all callers; every call builds its own context.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from ..config import EvaluationConfig
from ..exceptions import EvaluationTimeoutError, ExpressionEvaluationError
from ..expressions.functions import ScriptFunction
from ..values import SystemProperty, Value
from .backends import EvaluationBackend, EvaluationResult, create_backend
from .context_builder import BackendContext, EvaluationContextBuilder
from .sensitivity import classify, classify_without_access_tracking

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXPRESSION_LENGTH = 1000

GET_SP_SYNTAX_HINT = (
    ". Make sure to use correct syntax for the function: "
    "get_sp('fully.qualified.name', optional_default_value)."
)


def truncate_expression(expression: str, max_length: int = DEFAULT_MAX_EXPRESSION_LENGTH) -> str:
    """Shorten an expression for error messages."""
    if len(expression) <= max_length:
        return expression
    return expression[:max_length] + "..."


def handle_exception_special_cases(message: str) -> str:
    """Append a usage hint to well-known backend messages (message kept intact)."""
    if "get_sp" in message and ("not defined" in message or "positional argument" in message):
        return message + GET_SP_SYNTAX_HINT
    return message


class ScriptEvaluator:
    """
    Evaluate expressions against a tagged variable context.

    Args:
        backend: Evaluation backend (external worker or embedded sandbox)
        max_expression_length: Expression length kept in error messages

    Example:
        evaluator = ScriptEvaluator(ExternalPythonBackend())
        value = await evaluator.evaluate(
            "get_sp('db.password') + suffix",
            {"suffix": Value("!")},
            system_properties={SystemProperty(fully_qualified_name="db.password", value="x", sensitive=True)},
            function_dependencies={ScriptFunction.GET_SYSTEM_PROPERTY},
        )
        assert value.sensitive
    """

    def __init__(
        self,
        backend: EvaluationBackend,
        max_expression_length: int = DEFAULT_MAX_EXPRESSION_LENGTH,
    ):
        self.backend = backend
        self.max_expression_length = max_expression_length
        self.context_builder = EvaluationContextBuilder(
            include_access_stub=not backend.tracks_accessed_names
        )

    async def evaluate(
        self,
        expression: str,
        context: Mapping[str, Value] | None = None,
        system_properties: Iterable[SystemProperty] = (),
        function_dependencies: Iterable[ScriptFunction] = (),
    ) -> Value:
        """
        Evaluate an expression with no time bound.

        Raises:
            ExpressionEvaluationError: Any backend failure
        """
        backend_context = self.context_builder.build(
            context, system_properties, function_dependencies
        )
        try:
            result = await self.backend.eval(
                backend_context.functions_source, expression, backend_context.raw()
            )
        except Exception as e:
            raise self._evaluation_error(expression, e) from e
        return self._tag(result, backend_context)

    async def evaluate_with_timeout(
        self,
        expression: str,
        context: Mapping[str, Value] | None = None,
        system_properties: Iterable[SystemProperty] = (),
        function_dependencies: Iterable[ScriptFunction] = (),
        timeout: float = 5.0,
    ) -> Value:
        """
        Evaluate an expression, giving up after ``timeout`` seconds.

        Raises:
            EvaluationTimeoutError: No result within the deadline
            ExpressionEvaluationError: Any other backend failure
        """
        backend_context = self.context_builder.build(
            context, system_properties, function_dependencies
        )
        try:
            result = await self.backend.test(
                backend_context.functions_source, expression, backend_context.raw(), timeout
            )
        except TimeoutError as e:
            truncated = truncate_expression(expression, self.max_expression_length)
            logger.warning(f"Expression evaluation timed out after {timeout}s: '{truncated}'")
            raise EvaluationTimeoutError(truncated, timeout) from e
        except Exception as e:
            raise self._evaluation_error(expression, e) from e
        return self._tag(result, backend_context)

    def _tag(self, result: EvaluationResult, backend_context: BackendContext) -> Value:
        if result.accessed_names is None:
            sensitive = classify_without_access_tracking(backend_context.values)
        else:
            sensitive = classify(backend_context.values, result.accessed_names)
        return Value(result.value, sensitive)

    def _evaluation_error(self, expression: str, error: Exception) -> ExpressionEvaluationError:
        truncated = truncate_expression(expression, self.max_expression_length)
        message = handle_exception_special_cases(str(error))
        error_type = getattr(error, "error_type", type(error).__name__)
        logger.debug(f"Expression evaluation failed on {self.backend.name} backend: {error_type}")
        return ExpressionEvaluationError(truncated, message)


def create_evaluator(config: EvaluationConfig) -> ScriptEvaluator:
    """Build the evaluator for the configured backend."""
    backend = create_backend(config.backend, config.python_executable)
    logger.info(f"Expression backend: {backend.name}")
    return ScriptEvaluator(backend, max_expression_length=config.max_expression_length)


__all__ = [
    "GET_SP_SYNTAX_HINT",
    "ScriptEvaluator",
    "create_evaluator",
    "handle_exception_special_cases",
    "truncate_expression",
]
