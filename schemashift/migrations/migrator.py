"""
Migrator: decides which migrations to run and runs them in order.

The Migrator compares the repository's migrations with the highest ID the
target has recorded, then calls the target once per migration. It never
touches the database directly; atomicity of each step is the target's job.
"""

import logging
from typing import List

from .migration import Migration, MigrationID
from .repository import MigrationRepository

logger = logging.getLogger(__name__)


class Migrator:
    """
    Applies pending migrations from a repository to a target.

    Migrations with an ID greater than the highest applied ID are pending
    and are applied in ascending ID order. Migrations at or below it are
    treated as applied. Rollback works from the recorded IDs instead.

    Example:
        migrator = Migrator(
            FileMigrationRepository('migrations'),
            SQLMigrationTarget.from_configuration(config),
        )
        applied = await migrator.apply()
    """

    def __init__(self, repository: MigrationRepository, target):
        """
        Args:
            repository: Source of migration definitions
            target: MigrationTarget to apply migrations to
        """
        self.repository = repository
        self.target = target

    async def pending_migrations(self) -> List[Migration]:
        """Return migrations not yet applied, ascending by ID."""
        await self.target.create_migrations_table_if_needed()
        highest = await self.target.highest_applied_migration_id()
        migrations = sorted(await self.repository.migrations())

        if highest is None:
            return migrations
        return [m for m in migrations if m.id > highest]

    async def apply(self) -> List[MigrationID]:
        """
        Apply all pending migrations.

        Stops at the first failure and re-raises it. Migrations applied
        before the failure stay committed, so a later run resumes with the
        failed one.

        Returns:
            IDs of the migrations applied by this call, in order
        """
        pending = await self.pending_migrations()
        if not pending:
            logger.info('No pending migrations')
            return []

        logger.info('Applying %d pending migration(s)', len(pending))

        applied = []
        for migration in pending:
            await self.target.apply(migration.id, migration.up_sql)
            applied.append(migration.id)

        logger.info('Applied %d migration(s), now at %s', len(applied), applied[-1])
        return applied

    async def roll_back(self, count: int = 1) -> List[MigrationID]:
        """
        Roll back the newest applied migrations.

        Candidates are the IDs the target has recorded, not the repository
        contents, so a migration that never ran is never rolled back.

        Args:
            count: Number of migrations to roll back (newest first)

        Returns:
            IDs of the migrations rolled back, in order

        Raises:
            ValueError: If count < 1, or if one of the newest count applied
                migrations is missing from the repository (nothing is
                rolled back then)
        """
        if count < 1:
            raise ValueError(f"Rollback count must be >= 1, got {count}")

        await self.target.create_migrations_table_if_needed()
        applied = await self.target.applied_migration_ids()
        if not applied:
            logger.info('No applied migrations to roll back')
            return []

        newest = sorted(applied, reverse=True)[:count]
        definitions = {m.id: m for m in await self.repository.migrations()}
        missing = [migration_id for migration_id in newest if migration_id not in definitions]
        if missing:
            raise ValueError(
                "Cannot roll back applied migration(s) missing from repository: "
                + ', '.join(str(migration_id) for migration_id in missing)
            )

        rolled_back = []
        for migration_id in newest:
            await self.target.roll_back(migration_id, definitions[migration_id].down_sql)
            rolled_back.append(migration_id)

        logger.info('Rolled back %d migration(s)', len(rolled_back))
        return rolled_back
