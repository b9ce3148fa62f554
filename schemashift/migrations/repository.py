"""
Migration repositories: where migration definitions come from.

This module provides:
- MigrationRepository: Abstract source of migrations
- InMemoryMigrationRepository: Migrations held in a list
- FileMigrationRepository: Discovery and parsing of .sql migration files

Migration files follow the naming convention: <14-digit ID>_description.sql
Example: 20230601120000_create_users.sql, 20230602090000_add_email.sql

File format:
    -- UP
    CREATE TABLE users (id UUID PRIMARY KEY);

    -- DOWN
    DROP TABLE users;
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

from .migration import Migration, MigrationID

logger = logging.getLogger(__name__)


class MigrationRepository(ABC):
    """Source of migration definitions, read by the Migrator."""

    @abstractmethod
    async def migrations(self) -> List[Migration]:
        """Return all known migrations, in any order."""
        pass


class InMemoryMigrationRepository(MigrationRepository):
    """
    Repository backed by a plain list.

    Example:
        >>> repository = InMemoryMigrationRepository([first])
        >>> repository.add(second)
    """

    def __init__(self, migrations: Optional[Iterable[Migration]] = None):
        self._migrations = list(migrations or [])

    def add(self, migration: Migration) -> None:
        self._migrations.append(migration)

    async def migrations(self) -> List[Migration]:
        return list(self._migrations)


class FileMigrationRepository(MigrationRepository):
    """
    Discovers and parses migration files in a directory.

    Responsibilities:
    - Discover migration files matching the naming convention
    - Parse migration files (extract UP/DOWN sections)
    - Reject duplicate migration IDs

    Does NOT execute migrations (see Migrator and SQLMigrationTarget).

    Example:
        >>> repository = FileMigrationRepository(Path('/opt/app/migrations'))
        >>> await repository.migrations()
        [<Migration(20230601120000, create_users)>, ...]
    """

    # Migration filename pattern: <ID>_description.sql
    MIGRATION_PATTERN = re.compile(
        r'^(\d{%d})_([A-Za-z0-9_]+)\.sql$' % MigrationID.LENGTH
    )

    # Section markers in migration files
    UP_MARKER = '-- UP'
    DOWN_MARKER = '-- DOWN'

    def __init__(self, directory):
        """
        Initialize repository.

        Args:
            directory: Directory containing migration .sql files
        """
        self.directory = Path(directory)

    async def migrations(self) -> List[Migration]:
        return self.discover_migrations()

    def discover_migrations(self) -> List[Migration]:
        """
        Discover all migration files in the directory.

        Returns:
            List of Migration objects sorted by ID ascending

        Raises:
            ValueError: If duplicate IDs found or a file is malformed
        """
        if not self.directory.exists():
            logger.warning("No migrations directory: %s", self.directory)
            return []

        migrations = []
        ids_seen = set()

        for file_path in sorted(self.directory.glob('*.sql')):
            match = self.MIGRATION_PATTERN.match(file_path.name)
            if not match:
                logger.warning(
                    "Skipping invalid migration filename: %s", file_path.name
                )
                continue

            migration = self.parse_migration_file(file_path)

            if migration.id in ids_seen:
                raise ValueError(
                    f"Duplicate migration ID {migration.id} found in "
                    f"{self.directory}"
                )
            ids_seen.add(migration.id)

            migrations.append(migration)
            logger.debug("Discovered migration: %s", migration)

        return sorted(migrations)

    def parse_migration_file(self, file_path: Path) -> Migration:
        """
        Parse a migration file and extract UP/DOWN sections.

        Args:
            file_path: Path to migration file

        Returns:
            Migration object with UP/DOWN SQL extracted

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If filename is invalid or the UP section is missing
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Migration file not found: {file_path}")

        match = self.MIGRATION_PATTERN.match(file_path.name)
        if not match:
            raise ValueError(f"Invalid migration filename: {file_path.name}")

        raw_id, name = match.groups()
        content = file_path.read_text(encoding='utf-8')
        up_sql, down_sql = self._parse_sections(content, file_path.name)

        return Migration(
            id=MigrationID(raw_id),
            up_sql=up_sql,
            down_sql=down_sql,
            name=name,
        )

    def _parse_sections(self, content: str, filename: str) -> tuple[str, str]:
        """
        Parse UP and DOWN sections from migration file content.

        A missing DOWN section yields an empty down_sql.

        Returns:
            Tuple of (up_sql, down_sql)

        Raises:
            ValueError: If UP marker missing or DOWN comes before UP
        """
        lines = content.split('\n')

        up_start = None
        down_start = None

        # Find section markers (case-insensitive)
        for i, line in enumerate(lines):
            line_stripped = line.strip().upper()
            if line_stripped == self.UP_MARKER and up_start is None:
                up_start = i + 1
            elif line_stripped == self.DOWN_MARKER and down_start is None:
                down_start = i + 1

        if up_start is None:
            raise ValueError(
                f"Migration {filename} missing '{self.UP_MARKER}' marker"
            )

        if down_start is None:
            return '\n'.join(lines[up_start:]).strip(), ''

        if up_start >= down_start:
            raise ValueError(
                f"Migration {filename} has '{self.DOWN_MARKER}' before "
                f"'{self.UP_MARKER}' (UP at line {up_start}, "
                f"DOWN at line {down_start})"
            )

        up_sql = '\n'.join(lines[up_start:down_start-1]).strip()
        down_sql = '\n'.join(lines[down_start:]).strip()

        return up_sql, down_sql
