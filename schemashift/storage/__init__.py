"""
Migration target storage layer.

This package provides the SQLAlchemy-backed migration target, the
connection providers it consumes, and the storage error hierarchy.
"""

from .errors import (
    CorruptStateError,
    IntegrityError,
    QueryError,
    StorageConnectionError,
    StorageError,
    translate_error,
)
from .provider import (
    ConnectionProvider,
    CreateNewConnection,
    SharedConnection,
    is_owned,
)
from .sql import enable_transactional_ddl, split_sql_statements
from .target import MigrationTarget, SQLMigrationTarget

__all__ = [
    # Targets
    "MigrationTarget",
    "SQLMigrationTarget",
    # Connection providers
    "ConnectionProvider",
    "CreateNewConnection",
    "SharedConnection",
    "is_owned",
    # SQL helpers
    "enable_transactional_ddl",
    "split_sql_statements",
    # Errors
    "StorageError",
    "StorageConnectionError",
    "QueryError",
    "IntegrityError",
    "CorruptStateError",
    "translate_error",
]
