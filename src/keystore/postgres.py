"""
PostgreSQL key registry.

This module provides:
- PostgresKeyRegistry: asyncpg-backed KeyRegistry
- SCHEMA: DDL for the master_keys table

One row per table is enforced by the UNIQUE constraint on ``table_name``;
two processes racing to register the same table get exactly one winner,
the loser sees UniqueViolationError.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID, uuid4

import asyncpg

from .errors import StorageError, UniqueViolationError
from .storage import KeyRegistry, MasterKeyRecord

SCHEMA = """
    CREATE TABLE IF NOT EXISTS master_keys (
        mki UUID PRIMARY KEY,
        table_name TEXT NOT NULL UNIQUE,
        wrapped_master_key BYTEA NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
"""


class PostgresKeyRegistry(KeyRegistry):
    """
    PostgreSQL registry of wrapped master keys.

    Master keys are stored wrapped under the root key; plaintext key
    material never reaches the database.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        """
        Initialize PostgreSQL registry.

        Args:
            pool: asyncpg connection pool
        """
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def create_schema(self) -> None:
        """Create the master_keys table if it does not exist."""
        try:
            await self._pool.execute(SCHEMA)
        except Exception as e:
            raise StorageError(f"Failed to create schema: {e}") from e

    async def lookup_master_key_id(self, table: str) -> Optional[str]:
        query = "SELECT mki FROM master_keys WHERE table_name = $1"
        try:
            mki = await self._pool.fetchval(query, table)
        except Exception as e:
            raise StorageError(f"Failed to look up master key: {e}") from e
        return str(mki) if mki is not None else None

    async def fetch_wrapped_master_key(self, master_key_id: str) -> bytes:
        query = "SELECT wrapped_master_key FROM master_keys WHERE mki = $1"
        try:
            wrapped = await self._pool.fetchval(query, UUID(master_key_id))
        except Exception as e:
            raise StorageError(f"Failed to fetch master key: {e}") from e
        if wrapped is None:
            raise StorageError(f"Master key {master_key_id} not found")
        return bytes(wrapped)

    async def insert_master_key(self, table: str, wrapped_master_key: bytes) -> str:
        """
        Register a wrapped master key.

        Raises:
            UniqueViolationError: If the table already has a master key
            StorageError: On any other database failure
        """
        query = """
            INSERT INTO master_keys (mki, table_name, wrapped_master_key)
            VALUES ($1, $2, $3)
        """
        mki = uuid4()
        try:
            await self._pool.execute(query, mki, table, wrapped_master_key)
        except asyncpg.UniqueViolationError as e:
            raise UniqueViolationError(table) from e
        except Exception as e:
            raise StorageError(f"Failed to store master key: {e}") from e
        return str(mki)

    async def list_records(self) -> List[MasterKeyRecord]:
        """List all registered master key records."""
        query = """
            SELECT mki, table_name, wrapped_master_key, created_at
            FROM master_keys
            ORDER BY created_at
        """
        try:
            rows = await self._pool.fetch(query)
        except Exception as e:
            raise StorageError(f"Failed to list master keys: {e}") from e
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> MasterKeyRecord:
        """Convert database row to MasterKeyRecord."""
        return MasterKeyRecord(
            table=row["table_name"],
            master_key_id=str(row["mki"]),
            wrapped_master_key=bytes(row["wrapped_master_key"]),
            created_at=row["created_at"],
        )
