"""Exception hierarchy for expression analysis and evaluation.

Exception Hierarchy:
    FlowExprError (base)
    ├── MalformedExpressionError (analysis time, unscannable text)
    ├── ExpressionEvaluationError (evaluation time, wraps any backend failure)
    ├── EvaluationTimeoutError (bounded-time evaluation did not finish)
    ├── MissingSystemPropertiesError (referenced properties not resolvable)
    └── SystemPropertyFileError (property file cannot be loaded)

EvaluationTimeoutError is NOT a subclass of
ExpressionEvaluationError: callers treat a timeout as "inconclusive" and an
evaluation error as "invalid".

Sandbox violations (flowexpr_mcp.sandbox.ForbiddenExpressionError) are raised
inside backends and always surface wrapped in ExpressionEvaluationError.
"""

from __future__ import annotations

from collections.abc import Iterable


class FlowExprError(Exception):
    """Base exception for all flowexpr errors."""

    pass


class MalformedExpressionError(FlowExprError):
    """
    Expression text cannot be scanned for dependencies.

    Raised by the analyzer when the text is structurally broken (unbalanced
    or mismatched delimiters). Always surfaced to the compiler.

    Attributes:
        expression: The offending expression text
        position: Character offset where the scanner gave up
        reason: Human-readable description of the problem
    """

    def __init__(self, expression: str, position: int, reason: str):
        self.expression = expression
        self.position = position
        self.reason = reason
        super().__init__(f"Malformed expression at position {position}: {reason}: {expression!r}")

    def __repr__(self) -> str:
        return f"MalformedExpressionError(position={self.position}, reason={self.reason!r})"


class ExpressionEvaluationError(FlowExprError):
    """
    Evaluation of an expression failed in the backend.

    The message has the shape::

        Error in evaluating expression: '<truncated expression>',
            <backend message>

    Attributes:
        expression: Expression text, truncated for display
        backend_message: Message reported by the backend (possibly with a hint)
    """

    def __init__(self, expression: str, backend_message: str):
        self.expression = expression
        self.backend_message = backend_message
        super().__init__(f"Error in evaluating expression: '{expression}',\n\t{backend_message}")

    def __repr__(self) -> str:
        return f"ExpressionEvaluationError(expression={self.expression!r})"


class EvaluationTimeoutError(FlowExprError):
    """
    Bounded-time evaluation did not return within its deadline.

    Attributes:
        expression: Expression text, truncated for display
        timeout: The bound that was exceeded, in seconds
    """

    def __init__(self, expression: str, timeout: float):
        self.expression = expression
        self.timeout = timeout
        super().__init__(f"Evaluation of expression '{expression}' timed out after {timeout} seconds")

    def __repr__(self) -> str:
        return f"EvaluationTimeoutError(expression={self.expression!r}, timeout={self.timeout})"


class MissingSystemPropertiesError(FlowExprError):
    """
    One or more referenced system properties cannot be resolved.

    Raised by the compiler's validation phase before a flow is allowed to run.

    Attributes:
        names: Sorted list of unresolvable fully qualified names
        source: Optional flow source the names were collected from
    """

    def __init__(self, names: Iterable[str], source: str | None = None):
        self.names = sorted(names)
        self.source = source
        location = f" in '{source}'" if source else ""
        super().__init__(
            f"Unresolved system properties{location}: {', '.join(self.names)}. "
            "Define them in a system properties file before running the flow."
        )

    def __repr__(self) -> str:
        return f"MissingSystemPropertiesError(names={self.names!r})"


class SystemPropertyFileError(FlowExprError):
    """A system properties file is unreadable or has an invalid shape."""

    def __init__(self, path: str, details: str):
        self.path = path
        self.details = details
        super().__init__(f"Invalid system properties file '{path}': {details}")
