"""MCP tool registration for MSSQL MCP Server."""
import time
from functools import wraps
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from mssql_mcp_server.exceptions import ParameterMissingError, ToolError, format_error_message
from mssql_mcp_server.tools.sql_databases import (
    MISSING_QUERY_MESSAGE,
    NO_ROWS_MESSAGE,
    ConnectionManager,
    QueryRenderer,
    render_table,
    stringify_cell,
)
from mssql_mcp_server.utils import get_logger

__all__ = [
    "EXECUTE_SQL_TOOL_NAME",
    "NO_ROWS_MESSAGE",
    "MISSING_QUERY_MESSAGE",
    "ConnectionManager",
    "QueryRenderer",
    "execute_sql",
    "log_tool_calls",
    "register_all_tools",
    "render_table",
    "stringify_cell",
]

tools_logger = get_logger("mssql_mcp_server.tools")

EXECUTE_SQL_TOOL_NAME = "execute_sql"
EXECUTE_SQL_DESCRIPTION = "Execute SQL query on Microsoft SQL Server database"


def log_tool_calls(func):
    """Log each tool call with its duration and a short result summary."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.time()
        tool_name = func.__name__
        params_str = ", ".join(f"{k}={v!r}" for k, v in kwargs.items())
        tools_logger.info(f"TOOL CALL: {tool_name}({params_str})")
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            tools_logger.error(
                f"TOOL ERROR: {tool_name} failed after {time.time() - start_time:.2f}s: {e}", exc_info=True
            )
            raise
        result_str = str(result)
        summary = (result_str[:100] + "...") if len(result_str) > 100 else result_str
        tools_logger.info(f"TOOL SUCCESS: {tool_name} completed in {time.time() - start_time:.2f}s - Result: {summary}")
        return result
    return wrapper


async def execute_sql(renderer: QueryRenderer, query: Optional[str]) -> str:
    """Run ``query`` and turn every tool failure into text for the client.

    A missing query is reported as a short fixed message, without the
    ``Error:`` prefix and before any database work is attempted.
    """
    try:
        return await renderer.run(query)
    except ParameterMissingError as e:
        tools_logger.warning(str(e))
        return e.message
    except ToolError as e:
        tools_logger.warning(f"execute_sql failed ({e.error_type.value}): {e}")
        return format_error_message(e)


def _mark_required(mcp: FastMCP, tool_name: str, param_name: str) -> None:
    """Add ``param_name`` to the ``required`` list of a registered tool's input schema.

    FastMCP has no public hook for editing a generated schema; this relies on
    ``FastMCP._tool_manager.get_tool`` and the mutable ``Tool.parameters`` dict
    of the mcp 1.x SDK.
    """
    tool = mcp._tool_manager.get_tool(tool_name)
    if tool is None:
        raise ValueError(f"Tool '{tool_name}' is not registered")
    required = tool.parameters.setdefault("required", [])
    if param_name not in required:
        required.append(param_name)


def register_all_tools(mcp: FastMCP, renderer: QueryRenderer) -> None:
    """Register the ``execute_sql`` tool on ``mcp``."""

    @log_tool_calls
    async def execute_sql_tool(
        query: Annotated[Optional[str], Field(description="SQL query to execute")] = None,
    ) -> str:
        return await execute_sql(renderer, query)

    mcp.add_tool(execute_sql_tool, name=EXECUTE_SQL_TOOL_NAME, description=EXECUTE_SQL_DESCRIPTION)

    # Optional to the validator so a missing query reaches execute_sql and gets
    # the short message; clients still see it as required.
    _mark_required(mcp, EXECUTE_SQL_TOOL_NAME, "query")
    tools_logger.info(f"Registered tool: {EXECUTE_SQL_TOOL_NAME}")
