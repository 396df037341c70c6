"""flowexpr-mcp: expression dependency analysis and sandboxed evaluation over MCP."""

__version__ = "0.1.0"
