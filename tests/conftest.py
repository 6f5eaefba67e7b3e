"""Pytest configuration and shared fixtures for dump engine tests"""

import os
import sqlite3
import sys
from pathlib import Path
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv

from db_dump_mcp.core import (
    DatabaseConnection,
    IntrospectionCache,
    QueryExecutor,
    SchemaIntrospector,
)
from db_dump_mcp.dialects import SQLiteDialect
from db_dump_mcp.models.config import DatabaseConfig

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


# Data rows go in before the trigger exists so replaying a dump can show
# whether the trigger fired during the load.
SQLITE_SEED = """
CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR(50) NOT NULL);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    code TEXT UNIQUE,
    total REAL,
    note TEXT
);
CREATE INDEX idx_orders_user ON orders (user_id);
CREATE TABLE tags (label TEXT, weight INTEGER DEFAULT 1);
INSERT INTO users (id, name) VALUES (1, 'a'), (2, 'b');
INSERT INTO orders (id, user_id, code, total, note) VALUES
    (1, 1, 'A-1', 19.99, 'first'),
    (2, 1, 'A-2', 5.0, NULL),
    (3, 2, 'B-1', 120.5, 'O''Brien''s order'),
    (4, 2, NULL, NULL, NULL),
    (5, 1, 'A-3', 0.25, 'line one
line two');
INSERT INTO tags (label, weight) VALUES ('red', 1), ('blue', 2), ('red', 3);
CREATE VIEW active_users AS SELECT id, name FROM users WHERE id > 0;
CREATE TRIGGER trg_orders_note AFTER INSERT ON orders
BEGIN
    UPDATE orders SET note = 'new' WHERE id = NEW.id AND note IS NULL;
END;
"""


# ==================== Configuration Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


@pytest.fixture(scope="session")
def mysql_database_url() -> Optional[str]:
    """MySQL test database URL from environment"""
    return os.getenv("MYSQL_TEST_DATABASE_URL")


# ==================== SQLite Fixtures ====================


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """Seeded SQLite database file"""
    path = tmp_path / "shop.db"
    db = sqlite3.connect(path)
    try:
        db.executescript(SQLITE_SEED)
        db.commit()
    finally:
        db.close()
    return path


@pytest.fixture
def sqlite_config(sqlite_path: Path) -> DatabaseConfig:
    """Read-only SQLite configuration"""
    return DatabaseConfig(url=f"sqlite:///{sqlite_path}")


@pytest.fixture
def sqlite_writable_config(sqlite_path: Path) -> DatabaseConfig:
    """SQLite configuration allowing structural changes"""
    return DatabaseConfig(url=f"sqlite:///{sqlite_path}", read_only=False)


@pytest.fixture
async def sqlite_connection(
    sqlite_config: DatabaseConfig,
) -> AsyncGenerator[DatabaseConnection, None]:
    """SQLite database connection with proper cleanup"""
    connection = DatabaseConnection(sqlite_config)
    await connection.initialize()
    try:
        yield connection
    finally:
        await connection.dispose()


@pytest.fixture
async def sqlite_writable_connection(
    sqlite_writable_config: DatabaseConfig,
) -> AsyncGenerator[DatabaseConnection, None]:
    """Writable SQLite database connection with proper cleanup"""
    connection = DatabaseConnection(sqlite_writable_config)
    await connection.initialize()
    try:
        yield connection
    finally:
        await connection.dispose()


@pytest.fixture
def sqlite_dialect() -> SQLiteDialect:
    return SQLiteDialect()


@pytest.fixture
def sqlite_executor(sqlite_connection: DatabaseConnection) -> QueryExecutor:
    return QueryExecutor(sqlite_connection)


@pytest.fixture
def sqlite_introspector(
    sqlite_executor: QueryExecutor, sqlite_dialect: SQLiteDialect
) -> SchemaIntrospector:
    """SQLite introspector with its own cache"""
    return SchemaIntrospector(sqlite_executor, sqlite_dialect, IntrospectionCache())


# ==================== PostgreSQL / MySQL Fixtures ====================


@pytest.fixture
async def pg_config(pg_database_url: Optional[str]) -> DatabaseConfig:
    """Writable PostgreSQL configuration"""
    if not pg_database_url:
        pytest.skip("PG_TEST_DATABASE_URL not set in environment")
    return DatabaseConfig(url=pg_database_url, read_only=False)


@pytest.fixture
async def mysql_config(mysql_database_url: Optional[str]) -> DatabaseConfig:
    """Writable MySQL configuration"""
    if not mysql_database_url:
        pytest.skip("MYSQL_TEST_DATABASE_URL not set in environment")
    return DatabaseConfig(url=mysql_database_url, read_only=False)


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "postgresql: PostgreSQL-specific tests")
    config.addinivalue_line("markers", "mysql: MySQL-specific tests")
    config.addinivalue_line("markers", "sqlite: SQLite-backed tests")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring database"
    )
    config.addinivalue_line("markers", "slow: Slow-running tests")
