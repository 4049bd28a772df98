"""
Graceful shutdown utilities for MSSQL MCP Server.

Shutdown handlers (for example the connection manager's ``close``) are kept in
a registry and run once when the server stops, whether it stops because stdin
closed, because of Ctrl+C, or because SIGTERM arrived.
"""

import asyncio
import signal
import sys
from functools import partial
from typing import Callable, List, Optional

from mssql_mcp_server.utils import get_logger

logger = get_logger("mssql_mcp_server.shutdown")

# Track registered shutdown handlers
_shutdown_handlers: List[Callable] = []


def register_shutdown_handler(handler: Callable) -> None:
    """Register a function to be called during graceful shutdown.

    Args:
        handler: Async or sync callable to execute during shutdown
    """
    if handler not in _shutdown_handlers:
        _shutdown_handlers.append(handler)
        logger.debug(f"Registered shutdown handler: {getattr(handler, '__qualname__', handler)}")


def remove_shutdown_handler(handler: Callable) -> None:
    """Remove a previously registered shutdown handler."""
    if handler in _shutdown_handlers:
        _shutdown_handlers.remove(handler)
        logger.debug(f"Removed shutdown handler: {getattr(handler, '__qualname__', handler)}")


async def run_shutdown_handlers() -> None:
    """Execute all registered shutdown handlers, logging (not raising) their errors."""
    for handler in list(_shutdown_handlers):
        try:
            result = handler()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Error in shutdown handler {getattr(handler, '__qualname__', handler)}: {e}")


def _request_shutdown(sig_name: str, task: asyncio.Task) -> None:
    logger.info(f"Received {sig_name} signal. Initiating graceful shutdown...")
    task.cancel()


def setup_signal_handlers(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Turn SIGTERM into cancellation of the task running the server.

    Cancellation unwinds the server's lifespan, which runs the shutdown
    handlers. SIGINT already arrives as ``KeyboardInterrupt``.

    Args:
        loop: Optional asyncio event loop; defaults to the running loop.
    """
    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Cannot set up signal handlers - no running asyncio loop")
            return

    task = asyncio.current_task(loop)
    if task is None:
        logger.warning("Cannot set up signal handlers - not called from a task")
        return

    try:
        loop.add_signal_handler(signal.SIGTERM, partial(_request_shutdown, "SIGTERM", task))
        logger.debug("Registered SIGTERM handler for graceful shutdown")
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support add_signal_handler
        if sys.platform == "win32":
            logger.debug("SIGTERM handler not available on this platform")
        else:
            logger.warning("Could not set up SIGTERM handler via asyncio")
