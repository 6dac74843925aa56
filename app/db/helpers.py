# app/db/helpers.py
"""
Database helper functions for common patterns.
Reduces boilerplate in the postgres-backed stores.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import db_pool
from app.features.matchmaking.domain.errors import ConflictError, MatchmakingError, UnavailableError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(MatchmakingError):
    """Non-transient database failure (data, integrity, programming errors)."""

    code = "database_error"

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message, operation=operation)
        self.operation = operation


@asynccontextmanager
async def translate_db_errors(operation: str) -> AsyncIterator[None]:
    """
    Map psycopg failures onto the engine's error taxonomy.

    OperationalError (connection lost, pool timeout, server shutdown) becomes
    UnavailableError so the boundary may retry it. A unique violation means a
    concurrent writer got there first and becomes ConflictError; anything
    else is fatal.
    """
    try:
        yield
    except psycopg.errors.UniqueViolation as e:
        logger.info("Unique constraint violated", operation=operation, error=str(e))
        raise ConflictError("Conflicting write", operation=operation) from e
    except psycopg.OperationalError as e:
        logger.warning("Database unavailable", operation=operation, error=str(e))
        raise UnavailableError("Database unavailable", operation=operation) from e
    except psycopg.Error as e:
        logger.error("Database error", operation=operation, error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Optional existing connection (e.g. inside a transaction)

    Returns:
        Dict with row data or None if no results
    """
    async with translate_db_errors("fetch_one"):
        if connection:
            async with connection.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()
        async with db_pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """
    Execute query and return all rows as list of dicts.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Optional existing connection

    Returns:
        List of dicts with row data
    """
    async with translate_db_errors("fetch_all"):
        if connection:
            async with connection.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
        async with db_pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
