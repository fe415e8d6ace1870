"""
Microsoft SQL Server Adapter for dbadapter

Gives SQL Server the common init / all / run / exec / close surface, on top
of one of two interchangeable backends:

- pooled: SQLAlchemy connection pool over pymssql, kept open across calls
- direct: pyodbc with an ODBC connection string, one connection per call

plus a fallback mode that tries the pool first and the direct connection
only when the pool cannot be opened.

Features:
- Named instances (SERVER\\INSTANCE)
- Windows / integrated authentication when no credentials are given
- INSERT identity recovery via SCOPE_IDENTITY()
- Targeted diagnostics for common connection failures

Requirements:
    pip install sqlalchemy pymssql pyodbc
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from dbadapter.adapters.base import (
    AdapterError,
    BatchError,
    ConfigurationError,
    ConnectionError,
    DbAdapter,
    QueryError,
    RunResult,
)
from dbadapter.adapters.sqlserver_backends import (
    PYODBC_AVAILABLE,
    DirectBackend,
    FallbackBackend,
    PooledBackend,
    SqlServerBackend,
    log_connection_diagnostics,
)
from dbadapter.core.config import settings

logger = logging.getLogger(__name__)


# Selector values accepted for the "driver" option
DIRECT_DRIVERS = {"direct", "pyodbc", "odbc", "msnodesqlv8", "native"}
POOLED_DRIVERS = {"pooled", "pymssql", "mssql", "pool"}
FALLBACK_DRIVERS = {"fallback", "chained"}
AUTO_DRIVERS = {"auto", ""}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class SqlServerConnectionInfo:
    """
    SQL Server connection options.

    Config options:
        server: Server hostname, optionally "host\\instance" (required)
        database: Database name (required)
        user: Username (omit with password for Windows authentication)
        password: Password
        port: Server port (pooled backend uses 1433 when not set)
        trust_server_certificate: Trust self-signed certs (default: True)
        driver: Backend selector: "direct", "pooled", "fallback" or "auto"
        driver_version: ODBC Driver version for the direct backend (default: "17")
        options: Extra connection parameters merged into the driver config

    Example:
        info = SqlServerConnectionInfo(
            server="SQLHOST\\SQLEXPRESS",
            database="master",
            user="sa",
            password="secret",
        )
    """
    server: str
    database: str
    user: Optional[str] = None
    password: Optional[str] = None
    port: Optional[int] = None
    trust_server_certificate: bool = True
    driver: Optional[str] = None
    driver_version: str = "17"
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        missing = [name for name in ("server", "database") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required config: {', '.join(missing)}",
                engine=SqlServerAdapter.ENGINE
            )

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "SqlServerConnectionInfo":
        """Build from a dict, accepting both snake_case and camelCase keys."""
        trust = config.get("trust_server_certificate", config.get("trustServerCertificate"))
        port = config.get("port")
        return cls(
            server=config.get("server") or "",
            database=config.get("database") or "",
            user=config.get("user"),
            password=config.get("password"),
            port=int(port) if port else None,
            trust_server_certificate=_as_bool(trust, default=True),
            driver=config.get("driver"),
            driver_version=str(config.get("driver_version") or config.get("driverVersion") or "17"),
            options=dict(config.get("options") or {}),
        )

    @property
    def host(self) -> str:
        return self.server.split("\\", 1)[0]

    @property
    def instance_name(self) -> Optional[str]:
        if "\\" not in self.server:
            return None
        return self.server.split("\\", 1)[1] or None

    @property
    def uses_integrated_auth(self) -> bool:
        return not (self.user and self.password)


def select_backend(info: SqlServerConnectionInfo) -> SqlServerBackend:
    """
    Pick the backend for a connection, once, at adapter construction.

    An explicit driver selector is honored unconditionally. "auto" (the
    default) prefers the direct backend when pyodbc can be imported and
    the pooled backend otherwise.

    Raises:
        ConfigurationError: If the driver selector is unknown
    """
    selector = (info.driver or settings.sqlserver_driver or "auto").strip().lower()

    def pooled() -> PooledBackend:
        return PooledBackend(
            info,
            pool_size=settings.sqlserver_pool_size,
            connect_timeout=settings.sqlserver_connect_timeout,
        )

    if selector in DIRECT_DRIVERS:
        return DirectBackend(info)
    if selector in POOLED_DRIVERS:
        return pooled()
    if selector in FALLBACK_DRIVERS:
        return FallbackBackend(pooled(), DirectBackend(info))
    if selector in AUTO_DRIVERS:
        if PYODBC_AVAILABLE:
            logger.info("Using native SQL Server driver (pyodbc)")
            return DirectBackend(info)
        logger.info("Native SQL Server driver not available, using pymssql pool")
        return pooled()

    raise ConfigurationError(
        f"Unknown SQL Server driver: {info.driver}. "
        f"Use one of: direct, pooled, fallback, auto",
        engine=SqlServerAdapter.ENGINE
    )


class SqlServerAdapter(DbAdapter):
    """
    Adapter for Microsoft SQL Server.

    Queries use ? placeholders. The pooled backend rewrites them to named
    parameters; the direct backend hands them to ODBC unchanged.

    run() recovers the identity of an INSERT through SCOPE_IDENTITY().
    Affected-row counts for UPDATE / DELETE are not computed: changes is 1
    only for an INSERT that produced an identity, otherwise 0.

    After close() the pooled backend refuses further queries, while the
    direct backend, which holds nothing open, keeps working.

    Example:
        adapter = SqlServerAdapter({
            "server": "SQLHOST\\SQLEXPRESS",
            "database": "master",
            "user": "sa",
            "password": "secret"
        })
        await adapter.init()
        rows = await adapter.all("SELECT ? AS V", [42])
        await adapter.close()
    """

    ENGINE = "sqlserver"

    def __init__(
        self,
        connection_info: Union[SqlServerConnectionInfo, Mapping[str, Any]],
        backend: Optional[SqlServerBackend] = None,
    ):
        """Initialize SQL Server adapter."""
        if isinstance(connection_info, SqlServerConnectionInfo):
            self.connection_info = connection_info
        else:
            self.connection_info = SqlServerConnectionInfo.from_mapping(connection_info)

        # Original server string for metadata
        self.server = self.connection_info.server
        self.database = self.connection_info.database

        self._backend = backend or select_backend(self.connection_info)

    @property
    def backend(self) -> SqlServerBackend:
        return self._backend

    async def init(self) -> None:
        """Initialize SQL Server connection."""
        label = self._backend.label
        logger.info(f"Connecting to SQL Server: {self.server}, Database: {self.database} using {label}")
        logger.debug(f"Connection config: {self._backend.describe()}")

        try:
            await self._backend.open()
        except Exception as e:
            message = str(e)
            logger.error(f"SQL Server connection error: {message}")
            log_connection_diagnostics(message)
            raise ConnectionError(
                f"Failed to connect to SQL Server: {message}",
                engine=self.ENGINE,
                original_error=e
            ) from e

        logger.info(f"SQL Server connection ({self._backend.label}) established successfully")

    async def all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute a SQL query and get all results.

        Args:
            query: SQL query with ? placeholders
            params: Query parameters, in placeholder order

        Returns:
            Rows as dicts
        """
        try:
            return await self._backend.query(query, params or [])
        except AdapterError:
            raise
        except Exception as e:
            raise QueryError(
                f"SQL Server query error: {e}",
                engine=self.ENGINE,
                original_error=e
            ) from e

    async def run(self, query: str, params: Optional[Sequence[Any]] = None) -> RunResult:
        """
        Execute a SQL statement that modifies data.

        Returns:
            RunResult with changes and last_id (identity of an INSERT)
        """
        try:
            return await self._backend.execute(query, params or [])
        except AdapterError:
            raise
        except Exception as e:
            raise QueryError(
                f"SQL Server query error: {e}",
                engine=self.ENGINE,
                original_error=e
            ) from e

    async def exec(self, query: str) -> None:
        """Execute one or more SQL statements as a batch."""
        try:
            await self._backend.batch(query)
        except BatchError:
            raise
        except AdapterError as e:
            raise BatchError(str(e), engine=self.ENGINE, original_error=e.original_error) from e
        except Exception as e:
            raise BatchError(
                f"SQL Server batch error: {e}",
                engine=self.ENGINE,
                original_error=e
            ) from e

    async def close(self) -> None:
        """Close the database connection."""
        try:
            await self._backend.close()
        except Exception as e:
            logger.warning(f"Error closing SQL Server connection: {e}")

    def get_metadata(self) -> Dict[str, Any]:
        """Get database metadata."""
        return {
            "name": "SQL Server",
            "type": "sqlserver",
            "server": self.server,
            "database": self.database,
            "connection_method": self._backend.label,
        }

    def get_list_tables_query(self) -> str:
        """Get database-specific query for listing tables."""
        return (
            "SELECT TABLE_NAME as name FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_NAME"
        )

    def get_describe_table_query(self, table_name: str) -> str:
        """
        Get database-specific query for describing a table.

        table_name is interpolated as-is; escaping is the caller's job.
        """
        return f"""
      SELECT
        c.COLUMN_NAME as name,
        c.DATA_TYPE as type,
        CASE WHEN c.IS_NULLABLE = 'YES' THEN 1 ELSE 0 END as notnull,
        CASE WHEN pk.CONSTRAINT_TYPE = 'PRIMARY KEY' THEN 1 ELSE 0 END as pk,
        c.COLUMN_DEFAULT as dflt_value
      FROM
        INFORMATION_SCHEMA.COLUMNS c
      LEFT JOIN
        INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu ON c.TABLE_NAME = kcu.TABLE_NAME AND c.COLUMN_NAME = kcu.COLUMN_NAME
      LEFT JOIN
        INFORMATION_SCHEMA.TABLE_CONSTRAINTS pk ON kcu.CONSTRAINT_NAME = pk.CONSTRAINT_NAME AND pk.CONSTRAINT_TYPE = 'PRIMARY KEY'
      WHERE
        c.TABLE_NAME = '{table_name}'
      ORDER BY
        c.ORDINAL_POSITION
    """


# Aliases
MSSQLAdapter = SqlServerAdapter
AzureSQLAdapter = SqlServerAdapter
