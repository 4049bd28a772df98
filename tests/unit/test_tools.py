"""Tests for the execute_sql tool boundary and its registration."""
import pytest
from mcp.server.fastmcp import FastMCP

from mssql_mcp_server.config import StaticConfigProvider
from mssql_mcp_server.exceptions import ExecutionFailedError, format_error_message
from mssql_mcp_server.tools import (
    EXECUTE_SQL_TOOL_NAME,
    MISSING_QUERY_MESSAGE,
    NO_ROWS_MESSAGE,
    _mark_required,
    execute_sql,
    log_tool_calls,
    register_all_tools,
)
from mssql_mcp_server.tools.sql_databases import ConnectionManager, QueryRenderer
from mssql_mcp_server.utils import get_logger

from tests.fakes import FakeEngineFactory, RecordingManager

logger = get_logger("test.tools")


def content_text(result) -> str:
    """Pull the text out of ``FastMCP.call_tool`` across mcp versions."""
    if isinstance(result, tuple):
        result = result[0]
    return result[0].text


class TestExecuteSql:
    """Tests for the text-only ``execute_sql`` boundary."""

    async def test_success_passes_table_through(self, renderer: QueryRenderer):
        assert await execute_sql(renderer, "SELECT 1 AS test") == "test  \n----\n1     \n"

    async def test_missing_query(self):
        logger.info("Testing missing query parameter")
        manager = RecordingManager()
        result = await execute_sql(QueryRenderer(manager), None)

        assert result == MISSING_QUERY_MESSAGE
        assert "missing" in result.lower()
        assert manager.acquire_calls == 0

    async def test_empty_config_returns_text(self):
        factory = FakeEngineFactory()
        renderer = QueryRenderer(ConnectionManager(StaticConfigProvider(""), engine_factory=factory))

        result = await execute_sql(renderer, "SELECT 1")

        assert result.startswith("Error: database connection unavailable:")
        assert "not set" in result
        assert factory.created == []

    async def test_invalid_sql_returns_text(self, renderer: QueryRenderer):
        result = await execute_sql(renderer, "SELECT FROM WHERE INVALID SYNTAX")
        assert result.startswith("Error: query execution failed:")
        assert "error" in result.lower()

    async def test_row_error_returns_iteration_text(self, renderer: QueryRenderer):
        result = await execute_sql(
            renderer,
            "SELECT CASE WHEN x = 3 THEN abs(x - 9223372036854775807 - 4) ELSE x END AS v "
            "FROM (SELECT 1 AS x UNION ALL SELECT 2 UNION ALL SELECT 3)",
        )
        assert result.startswith("Error: error during row iteration:")

    async def test_zero_rows(self, renderer: QueryRenderer):
        assert await execute_sql(renderer, "SELECT 1 AS x WHERE 1 = 0") == NO_ROWS_MESSAGE

    def test_format_error_message(self):
        assert format_error_message(ExecutionFailedError("query execution failed: boom")) == (
            "Error: query execution failed: boom"
        )


class TestRegistration:
    """Tests for registering ``execute_sql`` on a FastMCP server."""

    @pytest.fixture
    def mcp(self, renderer: QueryRenderer) -> FastMCP:
        server = FastMCP("test-server")
        register_all_tools(server, renderer)
        return server

    async def test_tool_is_listed_with_required_query(self, mcp: FastMCP):
        tools = await mcp.list_tools()

        assert [tool.name for tool in tools] == [EXECUTE_SQL_TOOL_NAME]
        schema = tools[0].inputSchema
        assert schema["required"] == ["query"]
        assert schema["properties"]["query"]["description"] == "SQL query to execute"
        assert "SQL Server" in tools[0].description

    async def test_call_tool(self, mcp: FastMCP):
        result = await mcp.call_tool(EXECUTE_SQL_TOOL_NAME, {"query": "SELECT 1 AS test"})
        text = content_text(result)
        assert "test" in text
        assert "1" in text

    async def test_call_tool_without_query(self, mcp: FastMCP):
        result = await mcp.call_tool(EXECUTE_SQL_TOOL_NAME, {})
        assert content_text(result) == MISSING_QUERY_MESSAGE

    async def test_registering_twice_keeps_single_required_entry(self, renderer: QueryRenderer):
        server = FastMCP("test-server")
        register_all_tools(server, renderer)
        register_all_tools(server, renderer)

        tools = await server.list_tools()
        assert tools[0].inputSchema["required"] == ["query"]


    def test_mark_required_unknown_tool(self):
        with pytest.raises(ValueError):
            _mark_required(FastMCP("test-server"), "no_such_tool", "query")

class TestLogToolCalls:
    """Tests for the ``log_tool_calls`` decorator."""

    async def test_passes_result_through(self):
        @log_tool_calls
        async def echo(value: str) -> str:
            return value

        assert await echo(value="hi") == "hi"
        assert echo.__name__ == "echo"

    async def test_reraises(self):
        @log_tool_calls
        async def broken() -> str:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await broken()
