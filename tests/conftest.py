"""Pytest configuration and shared fixtures for pg-ops-mcp tests"""

import os
import sys
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv

from pg_ops_mcp.core import DatabaseConnection
from pg_ops_mcp.models.config import (
    ConnectionCredentials,
    EffectiveConfig,
    resolve_config,
)
from tests.fakes import FakeConnection, FakeDatabaseFactory

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


# ==================== Configuration Fixtures ====================


@pytest.fixture
def credentials() -> ConnectionCredentials:
    """Complete credentials for a server that is never contacted"""
    return ConnectionCredentials(
        host="db.internal",
        port=5432,
        database="app",
        user="svc",
        password="secret",
    )


@pytest.fixture
def effective_config(credentials: ConnectionCredentials) -> EffectiveConfig:
    """Resolved configuration with default pool settings"""
    return resolve_config(credentials)


# ==================== Fake Driver Fixtures ====================


@pytest.fixture
def fake_connection() -> FakeConnection:
    """Connection answering every statement with an empty command result"""
    return FakeConnection()


@pytest.fixture
def fake_factory(fake_connection: FakeConnection) -> FakeDatabaseFactory:
    """Connection factory handing out fake pools over fake_connection"""
    return FakeDatabaseFactory(fake_connection)


# ==================== PostgreSQL Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


@pytest.fixture
def pg_credentials(pg_database_url: Optional[str]) -> ConnectionCredentials:
    """Credentials for the live test database"""
    if not pg_database_url:
        pytest.skip("PG_TEST_DATABASE_URL not set in environment")
    return ConnectionCredentials.from_url(pg_database_url)


@pytest.fixture
def pg_config(pg_credentials: ConnectionCredentials) -> EffectiveConfig:
    """Resolved configuration for the live test database"""
    return resolve_config(pg_credentials)


@pytest.fixture
async def pg_connection(
    pg_config: EffectiveConfig,
) -> AsyncGenerator[DatabaseConnection, None]:
    """Live database connection with proper cleanup"""
    connection = DatabaseConnection(pg_config)
    await connection.initialize()
    try:
        yield connection
    finally:
        await connection.dispose()


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "postgresql: PostgreSQL-specific tests")
    config.addinivalue_line("markers", "integration: Integration tests requiring database")
