"""
Base Adapter Interface for dbadapter

All database adapters implement this interface so callers get the same
query surface regardless of engine or driver.

DESIGN PRINCIPLES:
-----------------
1. Connection pooling handled by the driver library (not the adapter)
2. Query parameters use ? placeholders (backends convert as needed)
3. Results returned as list of dicts (shape passed through from the driver)
4. Errors wrapped in AdapterError subclasses for consistent handling
5. Every operation is a coroutine, even when the backend holds no resource
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """Base exception for adapter errors."""

    def __init__(self, message: str, engine: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.engine = engine
        self.original_error = original_error


class ConnectionError(AdapterError):
    """Failed to connect to database."""
    pass


class QueryError(AdapterError):
    """Query execution failed."""
    pass


class BatchError(AdapterError):
    """Batch execution failed."""
    pass


class ConfigurationError(AdapterError):
    """Adapter could not be built from the supplied configuration."""
    pass


@dataclass(frozen=True)
class RunResult:
    """
    Outcome of a data-modifying statement.

    Attributes:
        changes: Rows known to be affected (1 for an INSERT that produced
                 an identity value, otherwise 0)
        last_id: Identity value generated by an INSERT, otherwise 0
    """
    changes: int = 0
    last_id: int = 0

    @property
    def lastID(self) -> int:
        return self.last_id

    def to_dict(self) -> Dict[str, int]:
        return {"changes": self.changes, "lastID": self.last_id}


class DbAdapter(ABC):
    """
    Abstract base class for database adapters.

    Each adapter must implement:
    - init(): Establish the backend resource
    - all(): Run a query and return every row
    - run(): Run a data-modifying statement
    - exec(): Run a batch of statements without reading rows
    - close(): Release the backend resource
    - get_metadata(): Describe the connection for diagnostics
    - get_list_tables_query() / get_describe_table_query(): introspection SQL

    Usage:
        adapter = SqlServerAdapter({"server": "db01", "database": "sales"})
        await adapter.init()

        rows = await adapter.all(
            "SELECT * FROM orders WHERE region = ?",
            ["emea"]
        )

        await adapter.close()
    """

    # Engine identifier (e.g., "sqlserver")
    ENGINE: str = "base"

    @abstractmethod
    async def init(self) -> None:
        """
        Establish the connection resource.

        Raises:
            ConnectionError: If connection fails
        """
        pass

    @abstractmethod
    async def all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute SQL query and return all rows.

        Args:
            query: SQL query with ? placeholders for parameters
            params: Parameter values (order matches ? positions)

        Raises:
            QueryError: If query execution fails
        """
        pass

    @abstractmethod
    async def run(self, query: str, params: Optional[Sequence[Any]] = None) -> RunResult:
        """
        Execute a data-modifying statement.

        Raises:
            QueryError: If execution fails
        """
        pass

    @abstractmethod
    async def exec(self, query: str) -> None:
        """
        Execute one or more statements as a batch.

        Raises:
            BatchError: If execution fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Release the connection resource.

        Should be safe to call even if not initialized.
        """
        pass

    @abstractmethod
    def get_metadata(self) -> Dict[str, Any]:
        """Get information about this adapter and its target database."""
        pass

    @abstractmethod
    def get_list_tables_query(self) -> str:
        pass

    @abstractmethod
    def get_describe_table_query(self, table_name: str) -> str:
        pass

    async def __aenter__(self):
        """Async context manager support."""
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager cleanup."""
        await self.close()
        return False
