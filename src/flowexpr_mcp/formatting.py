"""Markdown formatting for MCP tool responses."""

from typing import Any


def format_dependencies_markdown(report: dict[str, Any]) -> str:
    """Format a flow dependency report as markdown.

    Args:
        report: Output of the collect_flow_dependencies tool (JSON form)

    Returns:
        Markdown with property, function and missing-property sections
    """
    lines = [f"# Flow: {report['source']}", ""]

    properties = report.get("system_properties", [])
    lines.append(f"## System Properties ({len(properties)})")
    if properties:
        missing = set(report.get("missing_system_properties", []))
        for name in properties:
            marker = " (**missing**)" if name in missing else ""
            lines.append(f"- `{name}`{marker}")
    else:
        lines.append("None referenced")
    lines.append("")

    functions = report.get("functions", [])
    lines.append(f"## Helper Functions ({len(functions)})")
    lines.extend(f"- `{name}()`" for name in functions)
    if not functions:
        lines.append("None called")

    if report.get("error"):
        lines.extend(["", "## Validation", report["error"]])

    return "\n".join(lines)


def format_analysis_markdown(expression: str, analysis: dict[str, Any]) -> str:
    """Format a single-expression analysis as markdown."""
    lines = [f"**Expression**: `{expression}`", ""]
    properties = analysis.get("system_properties", [])
    functions = analysis.get("functions", [])
    lines.append(
        "**System properties**: " + (", ".join(f"`{name}`" for name in properties) or "none")
    )
    lines.append("**Helper functions**: " + (", ".join(f"`{name}`" for name in functions) or "none"))
    return "\n".join(lines)


__all__ = ["format_analysis_markdown", "format_dependencies_markdown"]
