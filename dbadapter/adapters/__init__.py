"""
Database Adapters for dbadapter

This package provides a uniform async query interface over SQL Server.
Each adapter handles:
- Connection management
- Query execution
- Parameter placeholder conversion
- Error wrapping

Supported Engines:
- SQL Server / Azure SQL (pooled pymssql or direct pyodbc)
"""

from dbadapter.adapters.base import (
    AdapterError,
    BatchError,
    ConfigurationError,
    ConnectionError,
    DbAdapter,
    QueryError,
    RunResult,
)
from dbadapter.adapters.factory import (
    create_db_adapter,
    register_adapter,
    list_adapters,
)
from dbadapter.adapters.sqlserver_adapter import SqlServerAdapter, SqlServerConnectionInfo

__all__ = [
    "AdapterError",
    "BatchError",
    "ConfigurationError",
    "ConnectionError",
    "DbAdapter",
    "QueryError",
    "RunResult",
    "create_db_adapter",
    "register_adapter",
    "list_adapters",
    "SqlServerAdapter",
    "SqlServerConnectionInfo",
]
