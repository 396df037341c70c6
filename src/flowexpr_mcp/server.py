"""FastMCP server initialization for flowexpr-mcp.

This module initializes the MCP server and manages shared resources via lifespan context.
All tool implementations are in the tools module.
"""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from .context import AppContext, AppContextType
from .engine import (
    ConfigLoader,
    DependencyCompiler,
    ExpressionDependencyAnalyzer,
    SystemPropertyStore,
    create_evaluator,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Shared Resources and Lifespan Management
# =============================================================================


@asynccontextmanager
async def app_lifespan(_server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle with resource initialization and cleanup.

    This lifespan context manager:
    1. Loads evaluation configuration (file + FLOWEXPR_* overrides)
    2. Loads system property files listed in the configuration
    3. Creates the evaluator for the configured backend
    4. Creates the dependency compiler with its precompile cache enabled
    5. Disables (and clears) the precompile cache on shutdown

    Environment Variables:
        FLOWEXPR_CONFIG: Path to the configuration file
        FLOWEXPR_EXPRESSION_BACKEND: "external" (default) or "embedded"

    Yields:
        AppContext with initialized resources
    """
    logger.info("Initializing MCP server resources...")

    config = ConfigLoader().load_config()
    store = SystemPropertyStore.from_files(config.system_property_paths)
    logger.info(f"System properties available: {len(store)}")

    analyzer = ExpressionDependencyAnalyzer()
    compiler = DependencyCompiler(analyzer)
    compiler.enable_precompile_cache()

    app_context = AppContext(
        config=config,
        store=store,
        analyzer=analyzer,
        compiler=compiler,
        evaluator=create_evaluator(config),
    )

    try:
        yield app_context
    finally:
        logger.info("Shutting down MCP server...")
        compiler.disable_precompile_cache()


# Initialize MCP server with lifespan management
# Following Python MCP naming convention: {service}_mcp
mcp = FastMCP("flowexpr_mcp", lifespan=app_lifespan)


# =============================================================================
# Server Entry Point
# =============================================================================


def main() -> None:
    """Entry point for running the MCP server.

    This function is called when the server is run directly via:
    - python -m flowexpr_mcp
    - flowexpr-mcp (entry point configured in pyproject.toml)

    Defaults to stdio transport for MCP protocol communication.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    log_level_str = os.getenv("FLOWEXPR_LOG_LEVEL", "INFO").upper()

    if log_level_str not in valid_log_levels:
        print(
            f"Warning: Invalid FLOWEXPR_LOG_LEVEL '{log_level_str}'. "
            f"Valid levels: {', '.join(sorted(valid_log_levels))}. "
            "Using INFO.",
            file=sys.stderr,
        )
        log_level_str = "INFO"

    # Configure logging to stderr (MCP requirement)
    logging.basicConfig(
        level=getattr(logging, log_level_str),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    logger.info("Starting MCP server (press Ctrl+C to stop)...")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)

    logger.info("Server shutdown complete")


__all__ = [
    "mcp",
    "main",
    "AppContext",
    "AppContextType",
]
