"""
Migration definitions and orchestration.

This package provides:
- MigrationID: Fixed-width, sortable migration identifier
- Migration: Forward/backward SQL pair for one schema change
- MigrationRepository: Source of migrations (file-based, in-memory)
- Migrator: Applies pending migrations to a MigrationTarget in ID order
"""

from .migration import InvalidFormatError, Migration, MigrationID
from .migrator import Migrator
from .repository import (
    FileMigrationRepository,
    InMemoryMigrationRepository,
    MigrationRepository,
)

__all__ = [
    'InvalidFormatError',
    'Migration',
    'MigrationID',
    'MigrationRepository',
    'FileMigrationRepository',
    'InMemoryMigrationRepository',
    'Migrator',
]
