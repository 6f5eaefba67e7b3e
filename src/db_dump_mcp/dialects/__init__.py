"""SQL dialect providers for the supported database families."""

from typing import Union

from sqlalchemy.engine.url import make_url

from .base import BaseDialect
from .mysql import MySQLDialect
from .postgresql import PostgreSQLDialect
from .quoting import IdentifierQuoter, StringEscaper
from .sqlite import SQLiteDialect
from ..models.config import DIALECT_VARIATIONS, DatabaseConfig

__all__ = [
    "BaseDialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "IdentifierQuoter",
    "StringEscaper",
    "create_dialect",
    "detect_dialect",
]

DIALECTS: dict[str, type[BaseDialect]] = {
    "postgresql": PostgreSQLDialect,
    "mysql": MySQLDialect,
    "sqlite": SQLiteDialect,
}


def detect_dialect(url: str) -> str:
    """
    Detect the dialect identity from a connection URL.

    Args:
        url: Database connection URL

    Returns:
        Dialect name (postgresql, mysql, sqlite)

    Raises:
        ValueError: If dialect cannot be detected
    """
    try:
        parsed_url = make_url(url)
    except Exception as e:
        raise ValueError(f"Failed to detect dialect from URL: {e}")
    # "postgresql" from "postgresql+asyncpg"
    name = parsed_url.drivername.split("+")[0].lower()
    return DIALECT_VARIATIONS.get(name, name)


def create_dialect(
    source: Union[str, DatabaseConfig], default_page_size: int = 100
) -> BaseDialect:
    """
    Factory function selecting the dialect provider once per target.

    Args:
        source: Dialect name or database configuration
        default_page_size: Row limit for page queries without a page size

    Returns:
        Dialect instance

    Raises:
        ValueError: If the database type is not supported
    """
    if isinstance(source, DatabaseConfig):
        name = source.dialect
    else:
        name = DIALECT_VARIATIONS.get(source.lower(), source.lower())

    dialect_class = DIALECTS.get(name)

    if dialect_class is None:
        raise ValueError(
            f"Unsupported database dialect: {name}. "
            f"Supported dialects: {', '.join(DIALECTS.keys())}"
        )

    return dialect_class(default_page_size=default_page_size)
