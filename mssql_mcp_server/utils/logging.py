"""
Logging setup for MSSQL MCP Server.

The stdio transport owns stdout, so every log record goes to stderr through a
rich console handler. All package loggers live under the ``mssql_mcp_server``
namespace and are configured once by ``setup_logging``.
"""
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "mssql_mcp_server"

_configured = False


def create_rich_console_handler(stderr: bool = True, level: int = logging.NOTSET) -> RichHandler:
    """Create a rich handler bound to stderr (or stdout if explicitly asked)."""
    console = Console(stderr=stderr)
    handler = RichHandler(
        console=console,
        level=level,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))
    return handler


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach the rich stderr handler to the package logger.

    Safe to call repeatedly; later calls only adjust the level.
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel((level or "INFO").upper())
    if not _configured:
        root.addHandler(create_rich_console_handler(stderr=True))
        root.propagate = False
        _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``mssql_mcp_server``."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
