"""libsql connections for the data store.

The ``libsql`` driver is synchronous; every call is pushed to a worker
thread with ``asyncio.to_thread()``. Where the data lives is decided by
settings:

- ``TURSO_DATABASE_URL`` set: hosted Turso database (``TURSO_AUTH_TOKEN``)
- otherwise: a local SQLite file at ``DATABASE_PATH``
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import libsql

from src.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

_LOCAL_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA busy_timeout=5000")


class Cursor:
    """Result of ``AsyncConnection.execute``."""

    def __init__(self, raw: Any) -> None:
        self._raw = raw

    @property
    def rowcount(self) -> int:
        return self._raw.rowcount

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._raw.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._raw.fetchall)


class AsyncConnection:
    def __init__(self, raw: Any) -> None:
        self._raw = raw

    async def execute(self, sql: str, params: tuple = ()) -> Cursor:
        return Cursor(await asyncio.to_thread(self._raw.execute, sql, params))

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        """Run a query and return every row."""
        cursor = await self.execute(sql, params)
        return await cursor.fetchall()

    async def commit(self) -> None:
        await asyncio.to_thread(self._raw.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._raw.close)


def _open(local_path: Path | None) -> Any:
    if local_path is None and settings.turso_database_url:
        logger.debug("Connecting to Turso at %s", settings.turso_database_url)
        return libsql.connect(
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )

    path = local_path or settings.database_path
    path.parent.mkdir(parents=True, exist_ok=True)
    raw = libsql.connect(str(path))
    for pragma in _LOCAL_PRAGMAS:
        raw.execute(pragma)
    return raw


async def get_connection(local_path_override: Path | None = None) -> AsyncConnection:
    """Open a connection.

    *local_path_override* pins a local file and ignores Turso settings,
    which keeps tests off the hosted database.
    """
    return AsyncConnection(await asyncio.to_thread(_open, local_path_override))


@asynccontextmanager
async def connection(
    schema: Iterable[str] = (),
    local_path_override: Path | None = None,
) -> AsyncIterator[AsyncConnection]:
    """Open a connection for one unit of work.

    *schema* statements run first and must be idempotent
    (``CREATE ... IF NOT EXISTS``). The connection is always closed, which
    discards anything left uncommitted.
    """
    conn = await get_connection(local_path_override=local_path_override)
    try:
        statements = list(schema)
        for statement in statements:
            await conn.execute(statement)
        if statements:
            await conn.commit()
        yield conn
    finally:
        await conn.close()
