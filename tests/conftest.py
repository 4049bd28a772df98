"""Shared fixtures for the MSSQL MCP Server tests."""
from pathlib import Path

import pytest

from mssql_mcp_server.config import StaticConfigProvider, reset_config
from mssql_mcp_server.tools.sql_databases import ConnectionManager, QueryRenderer


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Keep settings and server env vars from leaking between tests."""
    for var in (
        "MSSQL_CONNECTION_STRING",
        "MSSQL_MCP_QUERY_TIMEOUT",
        "MSSQL_MCP_CONNECT_TIMEOUT",
        "MSSQL_MCP_LOG_LEVEL",
        "MSSQL_MCP_SERVER_NAME",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of an empty SQLite database file in a temporary directory."""
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def config_provider(sqlite_url: str) -> StaticConfigProvider:
    return StaticConfigProvider(sqlite_url)


@pytest.fixture
async def manager(config_provider: StaticConfigProvider):
    """Connection manager pointed at the temporary SQLite database."""
    mgr = ConnectionManager(config_provider, connect_timeout=5.0)
    yield mgr
    await mgr.close()


@pytest.fixture
async def renderer(manager: ConnectionManager) -> QueryRenderer:
    return QueryRenderer(manager, query_timeout=5.0)


@pytest.fixture
async def people_table(renderer: QueryRenderer) -> str:
    """Create and fill a small ``people`` table; returns its name."""
    await renderer.run("CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT, nickname TEXT)")
    await renderer.run(
        "INSERT INTO people (id, name, nickname) VALUES "
        "(1, 'Ada Lovelace', 'Ada'), (2, 'Grace Hopper', NULL), (3, 'Alan Turing', 'Prof')"
    )
    return "people"
