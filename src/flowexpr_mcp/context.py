"""Shared context types for MCP server.

This module contains context types used across server and tools modules,
separated to avoid circular imports.
"""

from dataclasses import dataclass

from mcp.server.fastmcp import Context
from mcp.server.session import ServerSession

from .engine import (
    DependencyCompiler,
    EvaluationConfig,
    ExpressionDependencyAnalyzer,
    ScriptEvaluator,
    SystemPropertyStore,
)


@dataclass
class AppContext:
    """Application context containing shared resources for MCP tools.

    Created once during server startup and made available to all tools via
    the Context parameter. Every resource here is read-only after startup.
    """

    config: EvaluationConfig
    store: SystemPropertyStore
    analyzer: ExpressionDependencyAnalyzer
    compiler: DependencyCompiler
    evaluator: ScriptEvaluator


# Type alias for MCP tool context parameter
AppContextType = Context[ServerSession, AppContext]


__all__ = ["AppContext", "AppContextType"]
