"""
Configuration for the MSSQL MCP Server.

Settings are read with python-decouple, which looks at ``os.environ`` first and
falls back to a ``.env`` file in the working directory. The connection string
is deliberately *not* part of the cached settings: it is re-read through a
``ConfigProvider`` on every query so that an operator can fix or rotate it
without restarting the server.
"""
from dataclasses import dataclass
from typing import Optional, Protocol

from decouple import config as decouple_config

from mssql_mcp_server import __version__

CONNECTION_STRING_ENV = "MSSQL_CONNECTION_STRING"

DEFAULT_SERVER_NAME = "SQL Server MCP"
DEFAULT_QUERY_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_LOG_LEVEL = "INFO"


class ConfigProvider(Protocol):
    """Source of the database configuration string.

    Implementations must return the *current* value on every call; the
    connection manager relies on this to detect changes.
    """

    def current_config(self) -> str:
        ...


class EnvironmentConfigProvider:
    """Reads the connection string from the environment (or ``.env``) on each call."""

    def __init__(self, variable: str = CONNECTION_STRING_ENV):
        self.variable = variable

    def current_config(self) -> str:
        return decouple_config(self.variable, default="")


class StaticConfigProvider:
    """Fixed, mutable configuration string. Handy for embedding and tests."""

    def __init__(self, value: str = ""):
        self.value = value

    def current_config(self) -> str:
        return self.value


@dataclass(frozen=True)
class ServerSettings:
    """Process-wide server settings."""

    name: str = DEFAULT_SERVER_NAME
    version: str = __version__
    query_timeout: float = DEFAULT_QUERY_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL


_config: Optional[ServerSettings] = None


def load_config(
    query_timeout: Optional[float] = None,
    connect_timeout: Optional[float] = None,
    log_level: Optional[str] = None,
) -> ServerSettings:
    """Load settings from the environment, applying any explicit overrides.

    Explicit arguments (typically from the command line) take precedence
    over environment values.
    """
    global _config

    settings = ServerSettings(
        name=decouple_config("MSSQL_MCP_SERVER_NAME", default=DEFAULT_SERVER_NAME),
        query_timeout=query_timeout
        if query_timeout is not None
        else decouple_config("MSSQL_MCP_QUERY_TIMEOUT", default=DEFAULT_QUERY_TIMEOUT, cast=float),
        connect_timeout=connect_timeout
        if connect_timeout is not None
        else decouple_config("MSSQL_MCP_CONNECT_TIMEOUT", default=DEFAULT_CONNECT_TIMEOUT, cast=float),
        log_level=(log_level or decouple_config("MSSQL_MCP_LOG_LEVEL", default=DEFAULT_LOG_LEVEL)).upper(),
    )
    if settings.query_timeout <= 0 or settings.connect_timeout <= 0:
        raise ValueError("Timeouts must be positive numbers of seconds")

    _config = settings
    return settings


def get_config() -> ServerSettings:
    """Return the loaded settings, loading them on first use."""
    if _config is None:
        return load_config()
    return _config


def reset_config() -> None:
    """Forget the cached settings so the next ``get_config()`` reloads them."""
    global _config
    _config = None
