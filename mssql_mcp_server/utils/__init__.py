"""Utility functions for MSSQL MCP Server."""
from mssql_mcp_server.utils.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
