"""
Adapter Factory for dbadapter

Maps a database type name to its adapter class.

Usage:
    from dbadapter.adapters import create_db_adapter

    adapter = create_db_adapter("sqlserver", {
        "server": "SQLHOST\\SQLEXPRESS",
        "database": "master"
    })
    await adapter.init()
"""

import logging
from typing import Any, Dict, List, Mapping, Type

from dbadapter.adapters.base import ConfigurationError, DbAdapter

logger = logging.getLogger(__name__)


# =============================================================================
# ADAPTER REGISTRY
# =============================================================================

# Map of database type -> adapter class
_ADAPTER_REGISTRY: Dict[str, Type[DbAdapter]] = {}


def register_adapter(db_type: str, adapter_class: Type[DbAdapter]) -> None:
    """
    Register an adapter class for a database type.

    Args:
        db_type: Database type identifier (e.g., "sqlserver")
        adapter_class: Adapter class to use for this type
    """
    _ADAPTER_REGISTRY[db_type.lower()] = adapter_class
    logger.debug(f"Registered adapter for database type: {db_type}")


def list_adapters() -> List[str]:
    """Get list of registered database types."""
    return list(_ADAPTER_REGISTRY.keys())


def is_type_supported(db_type: str) -> bool:
    return db_type.lower() in _ADAPTER_REGISTRY


# =============================================================================
# ADAPTER FACTORY
# =============================================================================

def create_db_adapter(db_type: str, connection_info: Mapping[str, Any], **kwargs) -> DbAdapter:
    """
    Create an (uninitialized) adapter for the given database type.

    Args:
        db_type: Database type name (e.g., "sqlserver", "mssql")
        connection_info: Connection options for the adapter
        **kwargs: Passed through to the adapter constructor

    Returns:
        Adapter instance; call init() before querying

    Raises:
        ConfigurationError: If the database type is not supported
    """
    if not is_type_supported(db_type):
        available = ", ".join(list_adapters())
        raise ConfigurationError(
            f"Unsupported database type: {db_type}. Available: {available}",
            engine=db_type
        )
    return _ADAPTER_REGISTRY[db_type.lower()](connection_info, **kwargs)


# =============================================================================
# AUTO-REGISTER BUILT-IN ADAPTERS
# =============================================================================

def _register_builtin_adapters():
    """Register all built-in adapters."""
    from dbadapter.adapters.sqlserver_adapter import SqlServerAdapter, MSSQLAdapter, AzureSQLAdapter

    register_adapter("sqlserver", SqlServerAdapter)
    register_adapter("mssql", MSSQLAdapter)  # Alias
    register_adapter("azuresql", AzureSQLAdapter)  # Azure SQL alias
    register_adapter("azure-sql", AzureSQLAdapter)  # Another Azure alias


# Register on module load
_register_builtin_adapters()
