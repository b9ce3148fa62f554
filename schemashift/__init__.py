"""
schemashift: transactional SQL migrations over SQLAlchemy asyncio.
"""

from schemashift.config import ConnectionConfiguration
from schemashift.migrations import (
    FileMigrationRepository,
    InMemoryMigrationRepository,
    InvalidFormatError,
    Migration,
    MigrationID,
    MigrationRepository,
    Migrator,
)
from schemashift.storage import (
    CorruptStateError,
    CreateNewConnection,
    IntegrityError,
    MigrationTarget,
    QueryError,
    SharedConnection,
    SQLMigrationTarget,
    StorageConnectionError,
    StorageError,
)

__version__ = '0.1.0'

__all__ = [
    'ConnectionConfiguration',
    'CorruptStateError',
    'CreateNewConnection',
    'FileMigrationRepository',
    'InMemoryMigrationRepository',
    'IntegrityError',
    'InvalidFormatError',
    'Migration',
    'MigrationID',
    'MigrationRepository',
    'MigrationTarget',
    'Migrator',
    'QueryError',
    'SharedConnection',
    'SQLMigrationTarget',
    'StorageConnectionError',
    'StorageError',
]
