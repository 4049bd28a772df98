"""
SQL Server access for the ``execute_sql`` tool.

Two pieces live here:

- ``ConnectionManager`` owns one lazily created SQLAlchemy ``AsyncEngine``. The
  configuration string is re-read from its ``ConfigProvider`` on every
  ``acquire()``; the engine is only rebuilt when that string changes.
- ``QueryRenderer`` runs a statement with a bounded timeout, buffers the whole
  result set and renders it as a fixed-width text table.

Pooling is left to SQLAlchemy: once acquired, an engine is shared by all
in-flight queries.
"""
import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.engine import URL, Connection
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from mssql_mcp_server.config import (
    CONNECTION_STRING_ENV,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_QUERY_TIMEOUT,
    ConfigProvider,
    EnvironmentConfigProvider,
)
from mssql_mcp_server.exceptions import (
    ConfigMissingError,
    ConnectionFailedError,
    ConnectionUnavailableError,
    ExecutionFailedError,
    IterationFailedError,
    ParameterMissingError,
    ToolError,
)
from mssql_mcp_server.utils import get_logger

logger = get_logger("mssql_mcp_server.tools.sql_databases")

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"
NO_ROWS_MESSAGE = "Query executed successfully. No rows returned."
MISSING_QUERY_MESSAGE = "Missing required 'query' parameter"

# ADO.NET-style keys mapped to their ODBC names
_ADO_TO_ODBC_KEYS = {
    "user id": "UID",
    "user": "UID",
    "uid": "UID",
    "password": "PWD",
    "pwd": "PWD",
}

_PASSWORD_RX = re.compile(r"(://[^:/@]*:)[^@]*@")


def redact(conn_str: str) -> str:
    """Hide the password in a connection string before it is logged."""
    redacted = _PASSWORD_RX.sub(r"\1****@", conn_str)
    return re.sub(r"(?i)((?:password|pwd)\s*=)[^;]*", r"\1****", redacted)


def _driver_message(error: BaseException) -> str:
    """Prefer the DBAPI error text over SQLAlchemy's verbose wrapper."""
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


def _ado_to_odbc(conn_str: str) -> str:
    """Convert ``Server=...;User Id=...;Password=...`` into an ODBC connection string."""
    parts = []
    has_driver = False
    for item in conn_str.split(";"):
        if not item.strip():
            continue
        if "=" not in item:
            raise ArgumentError(f"malformed connection string segment: {item.strip()!r}")
        key, value = item.split("=", 1)
        key = key.strip()
        if key.lower() == "driver":
            has_driver = True
        parts.append(f"{_ADO_TO_ODBC_KEYS.get(key.lower(), key)}={value.strip()}")
    if not has_driver:
        parts.insert(0, f"Driver={{{DEFAULT_ODBC_DRIVER}}}")
    return ";".join(parts)


def driver_url(conn_str: str) -> URL:
    """Translate a configuration string into an async SQLAlchemy URL.

    SQL Server strings (``sqlserver://``, ``mssql://`` or ADO key/value pairs)
    map to ``mssql+aioodbc``. ``sqlite`` URLs and ``:memory:`` map to
    ``sqlite+aiosqlite`` for local development.
    """
    conn_str = conn_str.strip()

    if conn_str == ":memory:":
        return make_url("sqlite+aiosqlite:///:memory:")

    if "://" not in conn_str:
        if "=" in conn_str:
            odbc = _ado_to_odbc(conn_str)
            return make_url(f"mssql+aioodbc:///?odbc_connect={quote_plus(odbc)}")
        raise ArgumentError(f"unrecognised connection string format: {redact(conn_str)}")

    url = make_url(conn_str)
    drv = url.drivername.lower()

    if drv.startswith("sqlite"):
        return url.set(drivername="sqlite+aiosqlite")

    if drv == "sqlserver" or drv.startswith("mssql"):
        query = dict(url.query)
        database = query.pop("database", None) or url.database
        query.setdefault("driver", DEFAULT_ODBC_DRIVER)
        return url.set(drivername="mssql+aioodbc", database=database, query=query)

    raise ArgumentError(f"unsupported database dialect: '{drv}'. Supported: sqlserver, mssql, sqlite")


def create_engine_for(conn_str: str) -> AsyncEngine:
    """Default engine factory used by ``ConnectionManager``."""
    return create_async_engine(driver_url(conn_str), pool_pre_ping=True)


@dataclass(frozen=True)
class _ConnectionState:
    """Immutable snapshot of the manager's state; replaced, never mutated."""

    engine: Optional[AsyncEngine] = None
    source: str = ""

    def serves(self, source: str) -> bool:
        return self.engine is not None and self.source == source


class ConnectionManager:
    """Holds a single validated engine keyed by the configuration string.

    Readers take the current state snapshot without locking; the snapshot is
    swapped atomically, so a reader sees either the old or the new
    ``(engine, source)`` pair and never a mix. Reconnection is serialized by
    an ``asyncio.Lock`` and re-checks the state after acquiring it, so a burst
    of callers after a configuration change triggers a single reconnect.
    """

    def __init__(
        self,
        config_provider: Optional[ConfigProvider] = None,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        engine_factory: Optional[Callable[[str], AsyncEngine]] = None,
    ):
        self.config_provider = config_provider or EnvironmentConfigProvider()
        self.connect_timeout = connect_timeout
        self._engine_factory = engine_factory or create_engine_for
        self._state = _ConnectionState()
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._state.engine is not None

    @property
    def current_source(self) -> str:
        """Configuration string of the last connection attempt."""
        return self._state.source

    async def acquire(self) -> AsyncEngine:
        """Return a validated engine for the current configuration string.

        Raises:
            ConfigMissingError: The configuration string is empty.
            ConnectionFailedError: The engine could not be created or failed its health check.
        """
        source = self.config_provider.current_config()

        state = self._state
        if state.serves(source):
            return state.engine

        async with self._lock:
            state = self._state
            if state.serves(source):
                return state.engine

            if state.engine is not None:
                logger.info("Connection string changed; closing previous connection.")
                self._state = _ConnectionState(source=state.source)
                await self._dispose(state.engine)

            if not source:
                self._state = _ConnectionState()
                raise ConfigMissingError(f"{CONNECTION_STRING_ENV} environment variable is not set")

            try:
                engine = self._engine_factory(source)
            except Exception as e:
                self._state = _ConnectionState(source=source)
                logger.warning(f"Failed to open database connection to {redact(source)}: {e}")
                raise ConnectionFailedError(f"failed to open database connection: {e}") from e

            try:
                await asyncio.wait_for(self._ping(engine), timeout=self.connect_timeout)
            except asyncio.TimeoutError as e:
                await self._dispose(engine)
                self._state = _ConnectionState(source=source)
                logger.warning(f"Health check timed out after {self.connect_timeout:g}s for {redact(source)}")
                raise ConnectionFailedError(
                    f"failed to connect to database: health check timed out after {self.connect_timeout:g} seconds"
                ) from e
            except Exception as e:
                await self._dispose(engine)
                self._state = _ConnectionState(source=source)
                logger.warning(f"Health check failed for {redact(source)}: {_driver_message(e)}")
                raise ConnectionFailedError(f"failed to connect to database: {_driver_message(e)}") from e

            self._state = _ConnectionState(engine=engine, source=source)
            logger.info(f"Connected to database: {redact(source)}")
            return engine

    async def close(self) -> None:
        """Dispose of the current engine, if any. Calling it again is a no-op."""
        async with self._lock:
            state = self._state
            if state.engine is None:
                return
            self._state = _ConnectionState(source=state.source)
            await self._dispose(state.engine)
            logger.info("Database connection closed.")

    @staticmethod
    async def _ping(engine: AsyncEngine) -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    @staticmethod
    async def _dispose(engine: AsyncEngine) -> None:
        try:
            await engine.dispose()
        except Exception as e:
            logger.error(f"Error disposing database engine: {e}", exc_info=True)


def stringify_cell(value: Any) -> str:
    """Render one cell: NULL as empty, bytes as raw text, everything else via ``str``."""
    if value is None:
        return ""
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def column_widths(columns: Sequence[str], rows: Sequence[Sequence[str]]) -> List[int]:
    """Width of each column: the longest of its name and every cell below it."""
    widths = [len(col) for col in columns]
    for row in rows:
        if len(row) != len(columns):
            raise ValueError(f"row has {len(row)} values but there are {len(columns)} columns")
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(val))
    return widths


def render_table(columns: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render columns and stringified rows as a left-aligned fixed-width table.

    Every header and data cell is padded to its column width plus two spaces;
    the separator line joins dash runs with two spaces. Each line, including
    the last, ends with a newline.
    """
    widths = column_widths(columns, rows)
    lines = ["".join(col.ljust(w + 2) for col, w in zip(columns, widths))]
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        lines.append("".join(val.ljust(w + 2) for val, w in zip(row, widths)))
    return "\n".join(lines) + "\n"


class QueryRenderer:
    """Executes a statement and renders its result set as text."""

    def __init__(self, manager: ConnectionManager, *, query_timeout: float = DEFAULT_QUERY_TIMEOUT):
        self.manager = manager
        self.query_timeout = query_timeout

    async def run(self, query: Optional[str]) -> str:
        """Run ``query`` and return the rendered table or the no-rows message.

        Raises:
            ParameterMissingError: ``query`` is None; no connection is attempted.
            ConnectionUnavailableError: No usable connection (tag of the cause is kept).
            ExecutionFailedError: Dispatch, timeout or column metadata failed.
            IterationFailedError: The cursor failed while rows were being read.
        """
        if query is None:
            raise ParameterMissingError(MISSING_QUERY_MESSAGE, param_name="query")

        try:
            engine = await self.manager.acquire()
        except ToolError as e:
            raise ConnectionUnavailableError(e) from e

        try:
            columns, rows = await asyncio.wait_for(self._fetch(engine, query), timeout=self.query_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Query timeout ({self.query_timeout:g}s) exceeded.")
            raise ExecutionFailedError(
                f"query execution failed: query timed out after {self.query_timeout:g} seconds"
            ) from None

        if not rows:
            return NO_ROWS_MESSAGE
        logger.debug(f"Rendering {len(rows)} rows across {len(columns)} columns.")
        return render_table(columns, rows)

    async def _fetch(self, engine: AsyncEngine, query: str) -> Tuple[List[str], List[List[str]]]:
        try:
            async with engine.begin() as conn:
                return await conn.run_sync(_read_result_set, query)
        except ToolError:
            raise
        except Exception as e:
            # Checkout, commit or driver errors outside the statement itself
            logger.error(f"Unexpected error while executing query: {_driver_message(e)}")
            raise ExecutionFailedError(f"query execution failed: {_driver_message(e)}") from e


def _read_result_set(conn: Connection, query: str) -> Tuple[List[str], List[List[str]]]:
    """Execute ``query`` on the sync side of ``run_sync`` and drain its rows.

    ``stream_results`` gives a server-side cursor, so rows are pulled after
    execution returns and a cursor failure part-way through the result set is
    reported as an iteration error rather than an execution error.
    """
    try:
        # Raw driver SQL: no bind-parameter parsing of the user's text
        result = conn.exec_driver_sql(query, execution_options={"stream_results": True})
    except SQLAlchemyError as e:
        raise ExecutionFailedError(f"query execution failed: {_driver_message(e)}") from e

    try:
        if not result.returns_rows:
            return [], []

        try:
            columns = [str(col) for col in result.keys()]
        except SQLAlchemyError as e:
            raise ExecutionFailedError(f"failed to get column information: {_driver_message(e)}") from e

        rows: List[List[str]] = []
        try:
            for raw in result:
                try:
                    rows.append([stringify_cell(v) for v in raw])
                except Exception as e:
                    raise IterationFailedError(f"failed to scan row: {e}") from e
        except SQLAlchemyError as e:
            raise IterationFailedError(f"error during row iteration: {_driver_message(e)}") from e
        return columns, rows
    finally:
        result.close()
