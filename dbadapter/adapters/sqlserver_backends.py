"""
SQL Server connection backends

The SQL Server adapter talks to the database through exactly one of these
backends, chosen when the adapter is constructed:

- PooledBackend: a SQLAlchemy engine over pymssql. The engine's QueuePool
  keeps connections open between calls. ? placeholders are rewritten to
  numbered named binds (:param0, :param1, ...).
- DirectBackend: pyodbc against an ODBC connection string. Every call opens
  its own connection, so there is nothing to release on close. ? placeholders
  are passed straight through because ODBC accepts them natively.
- FallbackBackend: tries the pooled backend first and the direct backend
  only if the pool cannot be opened.

Backends raise the driver's own exceptions; the adapter wraps them into
ConnectionError / QueryError / BatchError.

Requirements:
    pip install sqlalchemy pymssql
    # and for the direct backend:
    pip install pyodbc
"""

import asyncio
import itertools
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL

# pyodbc needs the unixODBC runtime, so it may be missing even when installed
try:
    import pyodbc
    PYODBC_AVAILABLE = True
except ImportError:
    PYODBC_AVAILABLE = False
    pyodbc = None

from dbadapter.adapters.base import QueryError, RunResult

if TYPE_CHECKING:
    from dbadapter.adapters.sqlserver_adapter import SqlServerConnectionInfo

logger = logging.getLogger(__name__)

ENGINE = "sqlserver"

IDENTITY_QUERY = "SELECT SCOPE_IDENTITY() AS LastID"
TEST_QUERY = "SELECT 1 AS TestConnection"

_PLACEHOLDER_RE = re.compile(r"\?")
_PASSWORD_RE = re.compile(r"PWD=[^;]*", re.IGNORECASE)


# =============================================================================
# QUERY HELPERS
# =============================================================================

def is_insert(query: str) -> bool:
    """True when the statement is an INSERT (case-insensitive prefix)."""
    return query.strip().upper().startswith("INSERT")


def with_identity(query: str) -> str:
    """Append the identity lookup to an INSERT statement."""
    return f"{query}; {IDENTITY_QUERY}"


def rewrite_placeholders(query: str, params: Optional[Sequence[Any]] = None) -> Tuple[str, Dict[str, Any]]:
    """
    Convert ? placeholders to numbered named parameters.

    The i-th ? becomes :param{i} and is bound to params[i]. Colons already
    in the query are escaped so text() does not read them as binds.

    Example:
        >>> rewrite_placeholders("SELECT * FROM t WHERE a = ? AND b = ?", [1, "x"])
        ('SELECT * FROM t WHERE a = :param0 AND b = :param1', {'param0': 1, 'param1': 'x'})

    Raises:
        QueryError: If the number of placeholders and values differ
    """
    values = list(params or [])
    counter = itertools.count()

    def _named(_match: "re.Match[str]") -> str:
        return f":param{next(counter)}"

    prepared = _PLACEHOLDER_RE.sub(_named, query.replace(":", "\\:"))
    placeholders = next(counter)
    if placeholders != len(values):
        raise QueryError(
            f"SQL Server query error: expected {placeholders} parameter(s), got {len(values)}",
            engine=ENGINE
        )
    binds = {f"param{index}": value for index, value in enumerate(values)}
    return prepared, binds


def identity_from_rows(rows: List[Dict[str, Any]]) -> int:
    """Read LastID from the final row of a result collection."""
    if not rows:
        return 0
    value = rows[-1].get("LastID")
    if not value:
        return 0
    return int(value)


def mask_connection_string(connection_string: str) -> str:
    return _PASSWORD_RE.sub("PWD=*****", connection_string)


def connection_hints(message: str) -> List[str]:
    """Targeted troubleshooting lines for a connection failure message."""
    lowered = (message or "").lower()

    if "timeout" in lowered:
        return [
            "Connection timeout - check that:",
            "  - SQL Server is running and accessible on the network",
            "  - SQL Browser service is running (required for named instances)",
            "  - Firewall allows connections to SQL Server (port 1433) and SQL Browser (UDP 1434)",
        ]
    if "named" in lowered or "instance" in lowered:
        return [
            "Named instance issue - check that:",
            "  - SQL Browser service is running",
            "  - Instance name is correct",
            "  - UDP port 1434 is open in firewall",
        ]
    if "login" in lowered or "password" in lowered:
        return ["Authentication issue - check username and password"]
    if "driver" in lowered or "odbc" in lowered:
        return [
            "Driver issue - check ODBC Driver for SQL Server is installed",
            "  - Download from: https://go.microsoft.com/fwlink/?linkid=2249004",
        ]
    if "getaddrinfo" in lowered:
        return ["Cannot resolve the server name. Check network connectivity and DNS."]
    return []


def log_connection_diagnostics(message: str) -> None:
    for line in connection_hints(message):
        logger.error(line)


# =============================================================================
# BACKENDS
# =============================================================================

class SqlServerBackend(ABC):
    """
    One way of reaching SQL Server.

    Every method is a coroutine; blocking driver calls run on a worker
    thread so the event loop stays free.
    """

    LABEL: str = "base"

    @property
    def label(self) -> str:
        return self.LABEL

    @abstractmethod
    async def open(self) -> None:
        pass

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RunResult:
        pass

    @abstractmethod
    async def batch(self, sql: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    def describe(self) -> str:
        """Connection details safe for logging."""
        return ""


class PooledBackend(SqlServerBackend):
    """
    SQLAlchemy QueuePool over pymssql.

    Config options come from SqlServerConnectionInfo:
        server: "host" or "host\\instance" (port is not sent for named instances)
        user/password: SQL authentication; omit both for integrated auth
        options: extra keyword arguments for pymssql.connect
    """

    LABEL = "pooled (pymssql)"
    DIALECT = "mssql+pymssql"

    def __init__(
        self,
        info: "SqlServerConnectionInfo",
        pool_size: int = 5,
        connect_timeout: int = 30,
        engine_factory=create_engine,
    ):
        self.info = info
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self._engine_factory = engine_factory
        self._engine = None

        self.url = self._build_url()
        self.connect_args: Dict[str, Any] = {
            "login_timeout": connect_timeout,
            "appname": "dbadapter",
            **dict(info.options),
        }

    def _build_url(self) -> URL:
        info = self.info
        # pymssql resolves host\instance through SQL Browser, so no port then
        port = None if info.instance_name else (info.port or 1433)

        if info.uses_integrated_auth:
            username = None
            password = None
        else:
            username = info.user
            password = info.password

        return URL.create(
            self.DIALECT,
            username=username,
            password=password,
            host=info.server,
            port=port,
            database=info.database,
        )

    def describe(self) -> str:
        config = {
            "server": self.info.host,
            "instanceName": self.info.instance_name,
            "database": self.info.database,
            "port": self.url.port,
            "user": self.url.username,
            "password": "*****" if self.url.password else None,
            "trustedConnection": self.info.uses_integrated_auth,
            "poolSize": self.pool_size,
        }
        return json.dumps(config, indent=2)

    def _require_engine(self):
        if self._engine is None:
            raise QueryError("Database not initialized", engine=ENGINE)
        return self._engine

    async def open(self) -> None:
        self._engine = await asyncio.to_thread(self._create_and_verify)

    def _create_and_verify(self):
        engine = self._engine_factory(
            self.url,
            pool_size=self.pool_size,
            pool_pre_ping=True,
            connect_args=self.connect_args,
        )
        try:
            with engine.connect() as conn:
                conn.execute(text(TEST_QUERY))
        except Exception:
            engine.dispose()
            raise
        return engine

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        engine = self._require_engine()
        prepared, binds = rewrite_placeholders(sql, params)
        return await asyncio.to_thread(self._fetch_all, engine, prepared, binds)

    def _fetch_all(self, engine, sql: str, binds: Dict[str, Any]) -> List[Dict[str, Any]]:
        with engine.begin() as conn:
            result = conn.execute(text(sql), binds)
            if not result.returns_rows:
                return []
            return [dict(row._mapping) for row in result]

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RunResult:
        engine = self._require_engine()
        prepared, binds = rewrite_placeholders(sql, params)

        if not is_insert(sql):
            await asyncio.to_thread(self._fetch_all, engine, prepared, binds)
            return RunResult(changes=0, last_id=0)

        rows = await asyncio.to_thread(self._fetch_all, engine, with_identity(prepared), binds)
        last_id = identity_from_rows(rows)
        return RunResult(changes=1 if last_id > 0 else 0, last_id=last_id)

    async def batch(self, sql: str) -> None:
        engine = self._require_engine()
        await asyncio.to_thread(self._run_batch, engine, sql)

    def _run_batch(self, engine, sql: str) -> None:
        with engine.begin() as conn:
            conn.exec_driver_sql(sql)

    async def close(self) -> None:
        if self._engine is not None:
            engine = self._engine
            self._engine = None
            await asyncio.to_thread(engine.dispose)


class DirectBackend(SqlServerBackend):
    """
    pyodbc, one connection per call.

    The ODBC connection string is built once; nothing is held open between
    calls, so close() has nothing to release and the backend stays usable
    after it.
    """

    LABEL = "direct (pyodbc)"

    def __init__(self, info: "SqlServerConnectionInfo"):
        self.info = info
        self.connection_string = self._build_connection_string()

    def _build_connection_string(self) -> str:
        info = self.info
        driver = f"ODBC Driver {info.driver_version} for SQL Server"

        if info.uses_integrated_auth:
            conn_str = (
                f"Driver={{{driver}}};Server={info.server};Database={info.database};"
                f"Trusted_Connection=Yes;"
            )
        else:
            conn_str = (
                f"Driver={{{driver}}};Server={info.server};Database={info.database};"
                f"UID={info.user};PWD={info.password};"
            )

        if info.trust_server_certificate:
            conn_str += "TrustServerCertificate=Yes;"

        if info.port:
            conn_str += f"Port={info.port};"

        for key, value in info.options.items():
            conn_str += f"{key}={value};"

        return conn_str

    def describe(self) -> str:
        return mask_connection_string(self.connection_string)

    def _connect(self):
        if not PYODBC_AVAILABLE:
            raise ImportError("pyodbc not installed. Run: pip install pyodbc")
        return pyodbc.connect(self.connection_string, autocommit=True)

    def _call(self, sql: str, params: Sequence[Any], collect: str) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            if params:
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)

            if collect == "first":
                return _first_result_rows(cursor)
            if collect == "all":
                return _all_result_rows(cursor)
            _drain(cursor)
            return []
        finally:
            conn.close()

    async def open(self) -> None:
        await asyncio.to_thread(self._call, TEST_QUERY, [], "first")

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(self._call, sql, params or [], "first")
        return rows or []

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RunResult:
        if not is_insert(sql):
            await asyncio.to_thread(self._call, sql, params or [], "none")
            return RunResult(changes=0, last_id=0)

        rows = await asyncio.to_thread(self._call, with_identity(sql), params or [], "all")
        last_id = identity_from_rows(rows)
        return RunResult(changes=1 if last_id > 0 else 0, last_id=last_id)

    async def batch(self, sql: str) -> None:
        await asyncio.to_thread(self._call, sql, [], "none")

    async def close(self) -> None:
        return None


class FallbackBackend(SqlServerBackend):
    """Pooled connection first; direct connection only if the pool fails."""

    LABEL = "fallback (pooled, then direct)"

    def __init__(self, primary: SqlServerBackend, secondary: SqlServerBackend):
        self.primary = primary
        self.secondary = secondary
        self._active: Optional[SqlServerBackend] = None

    @property
    def label(self) -> str:
        if self._active is not None:
            return self._active.label
        return self.LABEL

    def describe(self) -> str:
        return f"primary: {self.primary.describe()}\nsecondary: {self.secondary.describe()}"

    def _require_active(self) -> SqlServerBackend:
        if self._active is None:
            raise QueryError("Database not initialized", engine=ENGINE)
        return self._active

    async def open(self) -> None:
        try:
            await self.primary.open()
            self._active = self.primary
            return
        except Exception as e:
            logger.warning(f"{self.primary.label} connection failed: {e}")
            logger.info(f"Trying fallback {self.secondary.label} connection...")

        await self.secondary.open()
        self._active = self.secondary

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        return await self._require_active().query(sql, params)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RunResult:
        return await self._require_active().execute(sql, params)

    async def batch(self, sql: str) -> None:
        await self._require_active().batch(sql)

    async def close(self) -> None:
        active = self._active
        self._active = None
        if active is not None:
            await active.close()


# =============================================================================
# CURSOR HELPERS
# =============================================================================

def _rows(cursor) -> List[Dict[str, Any]]:
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _first_result_rows(cursor) -> List[Dict[str, Any]]:
    """Rows of the first result set that has columns."""
    while cursor.description is None:
        if not cursor.nextset():
            return []
    return _rows(cursor)


def _all_result_rows(cursor) -> List[Dict[str, Any]]:
    """Rows of every result set, in order."""
    rows: List[Dict[str, Any]] = []
    while True:
        if cursor.description is not None:
            rows.extend(_rows(cursor))
        if not cursor.nextset():
            return rows


def _drain(cursor) -> None:
    # later statements in a batch only raise once their result is reached
    while cursor.nextset():
        pass
