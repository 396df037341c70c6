"""MCP tool implementations for expression analysis and evaluation.

Following official Anthropic MCP Python SDK patterns:
- Tool functions decorated with @mcp.tool()
- Flat parameter signatures with Annotated types for validation
- Async functions for all tools
- Clear docstrings (become tool descriptions)
"""

import logging
from typing import Annotated, Any, Literal

from mcp.types import ToolAnnotations
from pydantic import Field

from .context import AppContextType
from .engine import (
    EvaluationTimeoutError,
    ExpressionEvaluationError,
    FlowExprError,
    MalformedExpressionError,
    MissingSystemPropertiesError,
    SensitiveTextRedactor,
    Value,
    redact_value,
)
from .engine.expressions import canonical_order
from .formatting import format_analysis_markdown, format_dependencies_markdown
from .server import mcp

logger = logging.getLogger(__name__)

# =============================================================================
# MCP Tools
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="Analyze Expression",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def analyze_expression(
    expression: Annotated[
        str,
        Field(description="Expression text, e.g. ${get_sp('app.db.host') + ':5432'}", min_length=1),
    ],
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """List system properties and helper functions an expression depends on. Required: expression."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        accumulator = app_ctx.analyzer.analyze(expression)
    except MalformedExpressionError as e:
        return {"status": "failure", "error": str(e), "position": e.position}

    analysis = {
        "status": "success",
        "system_properties": sorted(accumulator.system_property_dependencies),
        "functions": [f.value for f in canonical_order(accumulator.function_dependencies)],
        "missing_system_properties": sorted(
            app_ctx.store.missing(accumulator.system_property_dependencies)
        ),
    }

    if format == "markdown":
        return format_analysis_markdown(expression, analysis)
    return analysis


@mcp.tool(
    annotations=ToolAnnotations(
        title="Collect Flow Dependencies",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def collect_flow_dependencies(
    path: Annotated[
        str,
        Field(description="Path to a flow description YAML file", min_length=1),
    ],
    validate: Annotated[
        bool,
        Field(description="Fail when a referenced system property is not defined"),
    ] = True,
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Collect every system property and helper function a flow file depends on. Required: path."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        dependencies = app_ctx.compiler.compile(path)
    except FlowExprError as e:
        return {"status": "failure", "source": path, "error": str(e)}

    report: dict[str, Any] = {"status": "success", **dependencies.to_dict()}
    report["missing_system_properties"] = sorted(
        app_ctx.store.missing(dependencies.system_properties)
    )

    if validate:
        try:
            app_ctx.compiler.validate(dependencies, app_ctx.store)
        except MissingSystemPropertiesError as e:
            report["status"] = "failure"
            report["error"] = str(e)

    if format == "markdown":
        return format_dependencies_markdown(report)
    return report


@mcp.tool(
    annotations=ToolAnnotations(
        title="Test Expression",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def test_expression(
    expression: Annotated[
        str,
        Field(description="Expression to evaluate", min_length=1),
    ],
    variables: Annotated[
        dict[str, Any] | None,
        Field(description="Context variables available to the expression"),
    ] = None,
    sensitive_variables: Annotated[
        list[str],
        Field(description="Names of variables whose values are confidential"),
    ] = [],
    timeout: Annotated[
        float | None,
        Field(description="Evaluation bound in seconds (default from configuration)", gt=0, le=600),
    ] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Evaluate an expression in the sandbox with a time bound. Required: expression."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        accumulator = app_ctx.analyzer.analyze(expression)
    except MalformedExpressionError as e:
        return {"status": "failure", "error": str(e)}

    sensitive_names = set(sensitive_variables or [])
    context = {
        name: Value(raw, name in sensitive_names) for name, raw in (variables or {}).items()
    }
    properties = app_ctx.store.resolve(accumulator.system_property_dependencies)
    missing = sorted(app_ctx.store.missing(accumulator.system_property_dependencies))
    redactor = SensitiveTextRedactor.from_sources(context.values(), properties)
    bound = timeout or app_ctx.config.test_timeout

    try:
        value = await app_ctx.evaluator.evaluate_with_timeout(
            expression,
            context,
            system_properties=properties,
            function_dependencies=accumulator.function_dependencies,
            timeout=bound,
        )
    except EvaluationTimeoutError as e:
        return {
            "status": "inconclusive",
            "warning": redactor.redact(str(e)),
            "timeout": bound,
        }
    except ExpressionEvaluationError as e:
        return {"status": "failure", "error": redactor.redact(str(e))}

    response: dict[str, Any] = {
        "status": "success",
        "result": redact_value(value),
        "sensitive": value.sensitive,
    }
    if missing:
        response["missing_system_properties"] = missing
    logger.debug(f"Expression test result: {value!r}")
    return response
