# =============================================================================
# File: telemetry_service/infra/persistence/pg_client.py
# =============================================================================
# AsyncPG pool helper for the record, projection and fallback stores.
# Module-level pool with a ContextVar-propagated transaction connection so
# repository calls made inside `transaction()` join the same unit of work.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import pathlib
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, List, Optional

import asyncpg

from telemetry_service.common.exceptions.exceptions import DatabaseUnavailableError
from telemetry_service.config.pg_client_config import DatabaseConfig, get_database_config

log = logging.getLogger("telemetry.pg_client")

# =============================================================================
# Transaction Context (ContextVar for async context)
# =============================================================================

_current_transaction_connection: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
    'transaction_connection', default=None
)

# Connection-level failures; constraint violations and SQL errors propagate as-is
_CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.CannotConnectNowError,
)

_POOL: Optional[asyncpg.Pool] = None
_POOL_LOCK = asyncio.Lock()
_CONFIG: Optional[DatabaseConfig] = None


def get_config() -> DatabaseConfig:
    """Get database configuration"""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = get_database_config()
    return _CONFIG


def set_config(config: DatabaseConfig) -> None:
    """Set database configuration (for testing)"""
    global _CONFIG
    _CONFIG = config


# -----------------------------------------------------------------------------
# Pool lifecycle
# -----------------------------------------------------------------------------

async def init_db_pool(config: Optional[DatabaseConfig] = None) -> asyncpg.Pool:
    """Create the global pool (idempotent)."""
    global _POOL

    if config is not None:
        set_config(config)
    cfg = get_config()

    async with _POOL_LOCK:
        if _POOL is not None:
            return _POOL

        try:
            _POOL = await asyncpg.create_pool(
                dsn=cfg.dsn.get_secret_value(),
                min_size=cfg.pool_min_size,
                max_size=cfg.pool_max_size,
                command_timeout=cfg.command_timeout,
            )
        except _CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(f"Cannot connect to PostgreSQL: {e}") from e

        log.info(f"PostgreSQL pool initialized (min={cfg.pool_min_size}, max={cfg.pool_max_size})")
        return _POOL


async def get_pool() -> asyncpg.Pool:
    if _POOL is None:
        raise DatabaseUnavailableError("PostgreSQL pool is not initialized")
    return _POOL


async def close_db_pool() -> None:
    global _POOL
    async with _POOL_LOCK:
        if _POOL is None:
            return
        pool, _POOL = _POOL, None
        await pool.close()
        log.info("PostgreSQL pool closed")


@asynccontextmanager
async def acquire_connection() -> AsyncIterator[asyncpg.Connection]:
    """Yield the active transaction connection, or a pooled one."""
    tx_conn = _current_transaction_connection.get()
    if tx_conn is not None:
        yield tx_conn
        return

    pool = await get_pool()
    try:
        conn = await pool.acquire()
    except _CONNECTION_ERRORS as e:
        raise DatabaseUnavailableError(f"Cannot acquire PostgreSQL connection: {e}") from e

    try:
        yield conn
    finally:
        await pool.release(conn)


# -----------------------------------------------------------------------------
# Query helpers
# -----------------------------------------------------------------------------

async def fetch(query: str, *args: Any, timeout: Optional[float] = None) -> List[asyncpg.Record]:
    async with acquire_connection() as conn:
        try:
            return await conn.fetch(query, *args, timeout=timeout)
        except _CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e


async def fetchrow(query: str, *args: Any, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
    async with acquire_connection() as conn:
        try:
            return await conn.fetchrow(query, *args, timeout=timeout)
        except _CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e


async def fetchval(query: str, *args: Any, column: int = 0, timeout: Optional[float] = None) -> Any:
    async with acquire_connection() as conn:
        try:
            return await conn.fetchval(query, *args, column=column, timeout=timeout)
        except _CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e


async def execute(query: str, *args: Any, timeout: Optional[float] = None) -> str:
    async with acquire_connection() as conn:
        try:
            return await conn.execute(query, *args, timeout=timeout)
        except _CONNECTION_ERRORS as e:
            raise DatabaseUnavailableError(str(e)) from e


# -----------------------------------------------------------------------------
# Transactions
# -----------------------------------------------------------------------------

@asynccontextmanager
async def transaction() -> AsyncIterator[asyncpg.Connection]:
    """
    Transaction context manager.

    Usage:
        async with transaction() as conn:
            await conn.execute("INSERT INTO ...")

    Commits on clean exit and rolls back on exception. A nested call joins
    the outer transaction.
    """
    outer = _current_transaction_connection.get()
    if outer is not None:
        yield outer
        return

    async with acquire_connection() as conn:
        token = _current_transaction_connection.set(conn)
        tx_start = time.monotonic()
        try:
            async with conn.transaction():
                yield conn
        finally:
            _current_transaction_connection.reset(token)

        log.debug(f"Transaction committed in {(time.monotonic() - tx_start) * 1000:.1f}ms")


# -----------------------------------------------------------------------------
# Schema bootstrap & health
# -----------------------------------------------------------------------------

async def run_schema_from_file(file_path_str: Optional[str] = None) -> None:
    """Execute the idempotent DDL file (CREATE ... IF NOT EXISTS)."""
    path = pathlib.Path(file_path_str or get_config().schema_file)
    if not path.is_file():
        raise FileNotFoundError(f"Schema file not found: {path}")

    sql = path.read_text(encoding="utf-8").strip()
    if not sql:
        log.warning(f"Schema file {path} is empty")
        return

    await execute(sql)
    log.info(f"Schema applied from {path.name}")


async def health_check() -> dict:
    start = time.monotonic()
    try:
        await fetchval("SELECT 1")
    except DatabaseUnavailableError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": round((time.monotonic() - start) * 1000, 2)}
