"""
Global pytest configuration and fixtures for schemashift tests

Provides:
- SQLite file databases (one per test) standing in for the server
- Shared connections for SharedConnection targets
- Inspector reading database state through a separate engine
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from schemashift.config import ConnectionConfiguration
from schemashift.storage.sql import enable_transactional_ddl
from tests.fixtures.database import DatabaseInspector


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "postgres: Needs a PostgreSQL server")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def database_path(tmp_path):
    """Path of a fresh SQLite database file."""
    return tmp_path / "migrations_test.db"


@pytest.fixture
def sqlite_configuration(database_path):
    """Configuration for targets that create their own connection."""
    return ConnectionConfiguration(driver='sqlite+aiosqlite', database=str(database_path))


@pytest.fixture
async def sqlite_engine(sqlite_configuration):
    """Engine with transactional DDL, owned by the test."""
    engine = enable_transactional_ddl(create_async_engine(sqlite_configuration.url))
    yield engine
    await engine.dispose()


@pytest.fixture
async def shared_connection(sqlite_engine):
    """Open connection owned by the test, handed to targets as shared."""
    async with sqlite_engine.connect() as conn:
        yield conn


@pytest.fixture
async def inspector(sqlite_configuration):
    """Inspects the test database through a separate engine."""
    engine = create_async_engine(sqlite_configuration.url)
    yield DatabaseInspector(engine)
    await engine.dispose()
