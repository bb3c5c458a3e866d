"""
Key registry abstractions.

This module provides:
- KeyRegistry: Abstract table -> master key registry contract
- InMemoryKeyRegistry: asyncio-safe in-memory implementation for testing
- MasterKeyRecord: One registered master key (wrapped under the root key)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from .errors import StorageError, UniqueViolationError


@dataclass
class MasterKeyRecord:
    """Master key registered for a table, stored only in wrapped form."""

    table: str
    master_key_id: str
    wrapped_master_key: bytes
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class KeyRegistry(ABC):
    """
    Durable mapping from table name to its wrapped master key.

    Implementations must hold at most one record per table: a second
    ``insert_master_key`` for the same table raises UniqueViolationError.
    Any other backend failure is a StorageError.
    """

    @abstractmethod
    async def lookup_master_key_id(self, table: str) -> Optional[str]:
        """Get the master key ID registered for a table, if any."""
        ...

    @abstractmethod
    async def fetch_wrapped_master_key(self, master_key_id: str) -> bytes:
        """Get the wrapped master key for an ID."""
        ...

    @abstractmethod
    async def insert_master_key(self, table: str, wrapped_master_key: bytes) -> str:
        """Register a wrapped master key for a table and return its ID."""
        ...


class InMemoryKeyRegistry(KeyRegistry):
    """
    In-memory registry for tests and single-process deployments.

    Uses asyncio.Lock so the check-then-insert is atomic.
    """

    def __init__(self) -> None:
        self._ids_by_table: Dict[str, str] = {}
        self._records: Dict[str, MasterKeyRecord] = {}
        self._lock = asyncio.Lock()

    async def lookup_master_key_id(self, table: str) -> Optional[str]:
        async with self._lock:
            return self._ids_by_table.get(table)

    async def fetch_wrapped_master_key(self, master_key_id: str) -> bytes:
        async with self._lock:
            record = self._records.get(master_key_id)
            if record is None:
                raise StorageError(f"Master key {master_key_id} not found")
            return record.wrapped_master_key

    async def insert_master_key(self, table: str, wrapped_master_key: bytes) -> str:
        async with self._lock:
            if table in self._ids_by_table:
                raise UniqueViolationError(table)
            record = MasterKeyRecord(
                table=table,
                master_key_id=str(uuid4()),
                wrapped_master_key=bytes(wrapped_master_key),
            )
            self._ids_by_table[table] = record.master_key_id
            self._records[record.master_key_id] = record
            return record.master_key_id

    async def list_records(self) -> List[MasterKeyRecord]:
        """List all registered master key records."""
        async with self._lock:
            return list(self._records.values())
