#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migration targets: where migrations are applied and recorded.

SQLMigrationTarget executes migration SQL over a single SQLAlchemy
AsyncConnection and records applied migration IDs in a one-column
bookkeeping table. Each apply/rollback runs the migration SQL and the
bookkeeping change in one transaction, so the table holds an ID if and
only if that migration's forward SQL is committed.

The connection is acquired lazily on first use, according to the
connection provider (see provider.py). Owned connections are closed when an
operation fails and on shutdown(); shared connections are never closed.
"""
import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from sqlalchemy import Column, MetaData, String, Table, delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool
from sqlalchemy.schema import CreateTable
from sqlalchemy.sql.expression import Executable

from schemashift.config import ConnectionConfiguration
from schemashift.migrations.migration import MigrationID
from schemashift.storage.errors import (
    CorruptStateError,
    IntegrityError,
    StorageConnectionError,
    translate_error,
)
from schemashift.storage.provider import (
    ConnectionProvider,
    CreateNewConnection,
    SharedConnection,
    is_owned,
)
from schemashift.storage.sql import enable_transactional_ddl, split_sql_statements

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class MigrationTarget(ABC):
    """
    Abstract interface for a database that migrations are applied to.

    The Migrator only talks to this interface. All methods are async
    because every one of them may wait on database I/O.
    """

    @abstractmethod
    async def create_migrations_table_if_needed(self) -> None:
        """Create the bookkeeping table if it does not exist yet."""
        pass

    @abstractmethod
    async def highest_applied_migration_id(self) -> Optional[MigrationID]:
        """Return the greatest recorded migration ID, or None if none."""
        pass

    @abstractmethod
    async def applied_migration_ids(self) -> List[MigrationID]:
        """Return every recorded migration ID in ascending order."""
        pass

    @abstractmethod
    async def apply(self, migration_id: MigrationID, sql: str) -> None:
        """Run forward SQL and record migration_id, atomically."""
        pass

    @abstractmethod
    async def roll_back(self, migration_id: MigrationID, sql: str) -> None:
        """Run backward SQL and remove migration_id, atomically."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Release any connection the target owns."""
        pass


class SQLMigrationTarget(MigrationTarget):
    """
    Migration target backed by a SQLAlchemy async connection.

    Works with any SQLAlchemy async dialect that supports transactional
    DDL (PostgreSQL via asyncpg in production, SQLite via aiosqlite in
    development and tests).

    All operations are serialized with an asyncio.Lock, so concurrent
    callers queue behind one another instead of racing to create two owned
    connections or closing one twice.

    Attributes:
        connection_provider: SharedConnection or CreateNewConnection
        table: SQLAlchemy Table for the bookkeeping table
        logger: Logger for execution tracking

    Example:
        target = SQLMigrationTarget.from_configuration(
            ConnectionConfiguration.from_environment()
        )
        try:
            await target.create_migrations_table_if_needed()
            if await target.highest_applied_migration_id() is None:
                await target.apply(
                    MigrationID('20230601120000'),
                    'CREATE TABLE users (id UUID PRIMARY KEY);'
                )
        finally:
            await target.shutdown()
    """

    DEFAULT_TABLE_NAME = 'schema_migrations'

    def __init__(
        self,
        connection_provider: ConnectionProvider,
        table_name: str = DEFAULT_TABLE_NAME,
        schema: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize migration target. Does not connect.

        Args:
            connection_provider: Where the connection comes from
            table_name: Bookkeeping table name
            schema: Schema holding the bookkeeping table (None for the
                connection's default search path)
            logger: Optional logger instance

        Raises:
            ValueError: If table_name or schema is not a plain identifier
        """
        is_owned(connection_provider)  # rejects unknown provider types

        for label, identifier in (('table name', table_name), ('schema', schema)):
            if identifier is not None and not _IDENTIFIER.match(identifier):
                raise ValueError(f"Invalid {label}: {identifier!r}")

        self.connection_provider = connection_provider
        self.logger = logger or logging.getLogger(__name__)
        self.table = Table(
            table_name,
            MetaData(),
            Column('id', String(MigrationID.LENGTH), primary_key=True),
            schema=schema,
        )

        self._lock = asyncio.Lock()
        self._engine: Optional[AsyncEngine] = None
        self._connection: Optional[AsyncConnection] = None

    @classmethod
    def from_configuration(
        cls,
        configuration: ConnectionConfiguration,
        **kwargs
    ) -> 'SQLMigrationTarget':
        """Create a target that owns a connection built from configuration."""
        return cls(CreateNewConnection(configuration), **kwargs)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    # ==================== Operations ====================

    async def create_migrations_table_if_needed(self) -> None:
        """Ensure bookkeeping table exists.

        Safe to call on every run (uses CREATE TABLE IF NOT EXISTS).

        Raises:
            StorageConnectionError: On connection failure
            QueryError: On table creation failure
        """
        async with self._connection_scope() as connection:
            async with self._transaction(connection):
                await connection.execute(CreateTable(self.table, if_not_exists=True))

        self.logger.debug('Ensured %s table exists', self.table.fullname)

    async def highest_applied_migration_id(self) -> Optional[MigrationID]:
        """
        Return the greatest migration ID in the bookkeeping table.

        Relies on fixed-width IDs: ORDER BY id DESC on the raw strings is
        the same as ordering by ID.

        Returns:
            Highest applied MigrationID, or None if nothing was applied

        Raises:
            CorruptStateError: If the stored value is not a valid ID
            StorageConnectionError: On connection failure
            QueryError: On query failure
        """
        query = (
            select(self.table.c.id)
            .order_by(self.table.c.id.desc())
            .limit(1)
        )

        async with self._connection_scope() as connection:
            async with self._transaction(connection):
                result = await connection.execute(query)
                raw_value = result.scalar_one_or_none()

            if raw_value is None:
                return None
            return self._parse_stored_id(raw_value)

    async def applied_migration_ids(self) -> List[MigrationID]:
        """Return every recorded migration ID in ascending order."""
        query = select(self.table.c.id).order_by(self.table.c.id)

        async with self._connection_scope() as connection:
            async with self._transaction(connection):
                result = await connection.execute(query)
                raw_values = result.scalars().all()

            return [self._parse_stored_id(raw_value) for raw_value in raw_values]

    async def apply(self, migration_id: MigrationID, sql: str) -> None:
        """
        Apply forward SQL and record the migration.

        Executes begin, SQL, INSERT of the ID, commit. Any failure rolls
        the whole transaction back and re-raises; the ID stays unrecorded
        and the SQL side effects are reverted.

        Args:
            migration_id: ID to record
            sql: Forward SQL (one or more statements)

        Raises:
            IntegrityError: If migration_id is already recorded
            QueryError: On SQL failure
            StorageConnectionError: On connection failure
        """
        await self._run_migration(
            migration_id,
            sql,
            insert(self.table).values(id=migration_id.raw_value),
            'apply',
        )

    async def roll_back(self, migration_id: MigrationID, sql: str) -> None:
        """
        Apply backward SQL and remove the migration record.

        Symmetric to apply(): SQL and DELETE of the ID commit together or
        not at all. If the ID is not recorded, nothing is committed.

        Args:
            migration_id: ID to remove
            sql: Backward SQL (one or more statements)

        Raises:
            IntegrityError: If migration_id is not recorded
            QueryError: On SQL failure
            StorageConnectionError: On connection failure
        """
        await self._run_migration(
            migration_id,
            sql,
            delete(self.table).where(self.table.c.id == migration_id.raw_value),
            'roll back',
        )

    async def shutdown(self) -> None:
        """
        Close the connection if the target owns it.

        No-op for shared connections and when not connected. Safe to call
        multiple times.

        Raises:
            StorageConnectionError: If closing the connection fails (the
                target is disconnected regardless)
        """
        async with self._lock:
            if not is_owned(self.connection_provider) or self._connection is None:
                return

            try:
                await self._disconnect()
            except (SQLAlchemyError, OSError) as e:
                self.logger.error('Error closing database connection: %s', e)
                raise StorageConnectionError(f"Failed to close connection: {e}") from e

            self.logger.info('Closed database connection')

    # ==================== Internals ====================

    async def _run_migration(
        self,
        migration_id: MigrationID,
        sql: str,
        bookkeeping: Executable,
        action: str
    ) -> None:
        """Run sql and the one-row bookkeeping change in one transaction."""
        start_time = time.time()

        async with self._connection_scope() as connection:
            self.logger.info('Starting %s of migration %s', action, migration_id)
            try:
                async with self._transaction(connection):
                    for stmt in split_sql_statements(sql):
                        await connection.exec_driver_sql(
                            stmt, execution_options={'no_parameters': True}
                        )
                    result = await connection.execute(bookkeeping)
                    if result.rowcount != 1:
                        raise IntegrityError(
                            f"Migration {migration_id} is not recorded in "
                            f"{self.table.fullname}"
                        )
            except Exception as e:
                self.logger.error(
                    'Failed to %s migration %s: %s', action, migration_id, e
                )
                raise

        execution_time_ms = int((time.time() - start_time) * 1000)
        self.logger.info(
            'Finished %s of migration %s (%dms)', action, migration_id, execution_time_ms
        )

    def _parse_stored_id(self, raw_value) -> MigrationID:
        migration_id = MigrationID.parse(raw_value)
        if migration_id is None:
            raise CorruptStateError(
                f"Invalid migration ID {raw_value!r} in {self.table.fullname}"
            )
        return migration_id

    @staticmethod
    def _transaction(connection: AsyncConnection):
        """Top-level transaction, or a SAVEPOINT if the caller left one open."""
        if connection.in_transaction():
            return connection.begin_nested()
        return connection.begin()

    @asynccontextmanager
    async def _connection_scope(self) -> AsyncIterator[AsyncConnection]:
        """
        Hold the lock, connect if needed and yield the connection.

        On failure an owned connection is closed and the target reset to
        disconnected before the error propagates. Database errors are
        re-raised as StorageError subclasses chained to the original.
        """
        async with self._lock:
            connection = await self._acquire_connection()
            try:
                yield connection
            except (Exception, asyncio.CancelledError) as e:
                if is_owned(self.connection_provider):
                    await self._disconnect_after_error()
                if isinstance(e, (SQLAlchemyError, OSError)):
                    raise translate_error(e) from e
                raise

    async def _acquire_connection(self) -> AsyncConnection:
        if self._connection is not None:
            return self._connection

        provider = self.connection_provider
        if isinstance(provider, SharedConnection):
            self._connection = provider.connection
            return self._connection

        configuration = provider.configuration
        url = configuration.url
        engine = create_async_engine(
            url,
            echo=configuration.echo,
            connect_args=configuration.connect_args(),
            poolclass=NullPool,
        )
        enable_transactional_ddl(engine)

        try:
            connection = await engine.connect()
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            self.logger.error(
                'Failed to connect to %s: %s',
                url.render_as_string(hide_password=True),
                e
            )
            raise StorageConnectionError(
                f"Failed to connect to {url.render_as_string(hide_password=True)}: {e}"
            ) from e
        except asyncio.CancelledError:
            await engine.dispose()
            raise

        self._engine = engine
        self._connection = connection
        self.logger.info('Connected to %s', url.render_as_string(hide_password=True))
        return connection

    async def _disconnect(self) -> None:
        connection, engine = self._connection, self._engine
        self._connection = None
        self._engine = None

        try:
            if connection is not None:
                await connection.close()
        finally:
            if engine is not None:
                await engine.dispose()

    async def _disconnect_after_error(self) -> None:
        try:
            await self._disconnect()
        except (SQLAlchemyError, OSError) as e:
            # The operation's own error is the one worth surfacing
            self.logger.warning('Error closing connection after failure: %s', e)
        else:
            self.logger.info('Closed database connection after failure')
