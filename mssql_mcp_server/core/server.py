"""FastMCP server construction and startup for MSSQL MCP Server."""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import anyio
from mcp.server.fastmcp import FastMCP

from mssql_mcp_server.config import ConfigProvider, ServerSettings, get_config, load_config
from mssql_mcp_server.graceful_shutdown import (
    register_shutdown_handler,
    remove_shutdown_handler,
    run_shutdown_handlers,
    setup_signal_handlers,
)
from mssql_mcp_server.tools import register_all_tools
from mssql_mcp_server.tools.sql_databases import ConnectionManager, QueryRenderer
from mssql_mcp_server.utils import get_logger, setup_logging

logger = get_logger("mssql_mcp_server.core.server")


class Gateway:
    """
    Owns the MCP server and the single database connection it serves.

    The connection manager is created up front but connects lazily, on the
    first tool call; a missing connection string therefore never stops the
    server from starting. The manager is closed exactly once when the server's
    lifespan ends.
    """

    def __init__(
        self,
        settings: Optional[ServerSettings] = None,
        config_provider: Optional[ConfigProvider] = None,
        connection_manager: Optional[ConnectionManager] = None,
    ):
        self.settings = settings or get_config()
        self.connection_manager = connection_manager or ConnectionManager(
            config_provider, connect_timeout=self.settings.connect_timeout
        )
        self.renderer = QueryRenderer(self.connection_manager, query_timeout=self.settings.query_timeout)

        self.mcp = FastMCP(self.settings.name, lifespan=self._server_lifespan)
        register_all_tools(self.mcp, self.renderer)
        logger.info(f"MCP server '{self.settings.name}' v{self.settings.version} initialized")

    async def shutdown(self) -> None:
        """Release the database connection. Safe to call more than once."""
        await self.connection_manager.close()

    @asynccontextmanager
    async def _server_lifespan(self, server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
        logger.info(f"Starting MCP server '{self.settings.name}'")
        register_shutdown_handler(self.shutdown)
        setup_signal_handlers()
        try:
            yield {"connection_manager": self.connection_manager}
        finally:
            # Must complete even when the lifespan exits through cancellation
            with anyio.CancelScope(shield=True):
                await run_shutdown_handlers()
            remove_shutdown_handler(self.shutdown)
            logger.info(f"Shutting down MCP server '{self.settings.name}'")


def start_server(
    log_level: Optional[str] = None,
    query_timeout: Optional[float] = None,
    connect_timeout: Optional[float] = None,
) -> None:
    """Load configuration, set up logging and serve MCP over stdio until stdin closes."""
    settings = load_config(query_timeout=query_timeout, connect_timeout=connect_timeout, log_level=log_level)
    setup_logging(settings.log_level)

    gateway = Gateway(settings)
    logger.info("Running in stdio mode...")
    try:
        gateway.mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Interrupted; server stopped.")
