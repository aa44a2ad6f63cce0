"""
clusterauth — Shared User Store Client

Async PostgreSQL access to the `users` table that holds every node's
root-scoped credential record. The bootstrap only ever deletes by id and
inserts; it never queries the table.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Protocol

import asyncpg
import structlog

if TYPE_CHECKING:
    from clusterauth.config import AuthDatabaseConfig
    from clusterauth.primitives.node import CredentialRecord

logger = structlog.get_logger("clusterauth.clients.user_store")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    user_id        TEXT PRIMARY KEY,
    user_key       TEXT NOT NULL,
    hashed_secret  TEXT NOT NULL,
    last_ip        TEXT[] NOT NULL DEFAULT '{{}}',
    scope          TEXT NOT NULL,
    refresh_token  TEXT NOT NULL,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class UserStore(Protocol):
    """Write interface the credential store needs from the shared database."""

    async def delete(self, user_id: str) -> int:
        """Remove the record for `user_id`. Returns the number of rows removed."""
        ...

    async def insert(self, record: CredentialRecord) -> None:
        ...

    async def supersede(self, record: CredentialRecord) -> None:
        """Replace whatever is stored for `record.user_id` with `record`."""
        ...

    async def close(self) -> None:
        ...


class PostgresUserStore:
    """
    asyncpg-backed UserStore with connection pooling.

    `supersede` runs the delete and the insert in one transaction, so a crash
    between them cannot leave a node without a record.
    """

    def __init__(
        self,
        url: str,
        *,
        table: str = "users",
        pool_size: int = 5,
        ssl: bool = False,
    ) -> None:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._url = url
        self._table = table
        self._pool_size = pool_size
        self._ssl = ssl
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create connection pool and initialise schema."""
        self._pool = await asyncpg.create_pool(
            dsn=self._url,
            min_size=1,
            max_size=self._pool_size,
            ssl="require" if self._ssl else None,
        )
        async with self.pool.acquire() as conn:
            await conn.execute(TABLE_SQL.format(table=self._table))
        logger.info("user_store_connected", table=self._table)

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("user_store_disconnected")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("User store not connected. Call connect() first.")
        return self._pool

    async def health_check(self) -> dict[str, Any]:
        """Check connectivity."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return {"status": "connected"}
        except Exception as e:
            logger.error("user_store_health_check_failed", error=str(e))
            return {"status": "disconnected", "error": str(e)}

    async def delete(self, user_id: str) -> int:
        async with self.pool.acquire() as conn:
            return await self._delete(conn, user_id)

    async def insert(self, record: CredentialRecord) -> None:
        async with self.pool.acquire() as conn:
            await self._insert(conn, record)

    async def supersede(self, record: CredentialRecord) -> None:
        async with self.pool.acquire() as conn, conn.transaction():
            removed = await self._delete(conn, record.user_id)
            await self._insert(conn, record)
        if removed:
            logger.info("user_record_superseded", user_id=record.user_id, removed=removed)

    async def _delete(self, conn: asyncpg.Connection, user_id: str) -> int:
        status = await conn.execute(
            f"DELETE FROM {self._table} WHERE user_id = $1",
            user_id,
        )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return int(status.split()[-1])

    async def _insert(self, conn: asyncpg.Connection, record: CredentialRecord) -> None:
        await conn.execute(
            f"""
            INSERT INTO {self._table}
                (user_id, user_key, hashed_secret, last_ip, scope, refresh_token, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            record.user_id,
            record.user_key,
            record.hashed_secret,
            record.last_ip,
            record.scope,
            record.refresh_token,
            record.created_at,
        )


async def connect_user_store(url: str, config: AuthDatabaseConfig) -> PostgresUserStore:
    """Open the shared user store at `url` using the pool settings in `config`."""
    store = PostgresUserStore(
        url,
        table=config.table,
        pool_size=config.pool_size,
        ssl=config.ssl,
    )
    await store.connect()
    return store
