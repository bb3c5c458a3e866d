"""
Pytest configuration and fixtures for keystore tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional

import pytest
import asyncpg
from dotenv import load_dotenv

from keystore import (
    AesGcmKeyWrapper,
    CryptoError,
    InMemoryKeyRegistry,
    KeyHierarchyService,
    PostgresKeyRegistry,
    RootKeyError,
    SecureKey,
    StaticAccessControl,
    StaticRootKeySource,
    StorageError,
)

ROOT_KEY = bytes(range(32))
TOKEN = "T1"
GRANTS = {
    TOKEN: {"orders": ["ssn"], "customers": ["*"]},
    "T2": {"customers": ["email"]},
}


class RecordingRegistry(InMemoryKeyRegistry):
    """In-memory registry that counts calls and can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: Dict[str, int] = {"lookup": 0, "fetch": 0, "insert": 0}
        self.fail = False
        self.error: Exception = StorageError("connection refused")

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def lookup_master_key_id(self, table: str) -> Optional[str]:
        self.calls["lookup"] += 1
        if self.fail:
            raise self.error
        return await super().lookup_master_key_id(table)

    async def fetch_wrapped_master_key(self, master_key_id: str) -> bytes:
        self.calls["fetch"] += 1
        if self.fail:
            raise self.error
        return await super().fetch_wrapped_master_key(master_key_id)

    async def insert_master_key(self, table: str, wrapped_master_key: bytes) -> str:
        self.calls["insert"] += 1
        if self.fail:
            raise self.error
        return await super().insert_master_key(table, wrapped_master_key)


class RecordingRootKeySource(StaticRootKeySource):
    """Static root key source that counts calls and can be made to fail."""

    def __init__(self, root_key: bytes) -> None:
        super().__init__(root_key)
        self.calls = 0
        self.fail = False
        self.error: Exception = RootKeyError("kms timeout")

    async def get_root_key(self) -> SecureKey:
        self.calls += 1
        if self.fail:
            raise self.error
        return await super().get_root_key()


class RecordingCrypto(AesGcmKeyWrapper):
    """AES-GCM wrapper that counts calls and can be made to fail."""

    def __init__(self) -> None:
        self.wraps = 0
        self.unwraps = 0
        self.fail_wraps = False
        self.fail_unwraps = False
        self.error: Exception = CryptoError("provider unavailable")

    @property
    def total_calls(self) -> int:
        return self.wraps + self.unwraps

    def wrap(self, plaintext: bytes, key: SecureKey) -> bytes:
        self.wraps += 1
        if self.fail_wraps:
            raise self.error
        return super().wrap(plaintext, key)

    def unwrap(self, ciphertext: bytes, key: SecureKey) -> bytes:
        self.unwraps += 1
        if self.fail_unwraps:
            raise self.error
        return super().unwrap(ciphertext, key)


@pytest.fixture
def access() -> StaticAccessControl:
    """Grant table: T1 -> orders.ssn and all of customers; T2 -> customers.email."""
    return StaticAccessControl(GRANTS)


@pytest.fixture
def root_keys() -> RecordingRootKeySource:
    return RecordingRootKeySource(ROOT_KEY)


@pytest.fixture
def registry() -> RecordingRegistry:
    return RecordingRegistry()


@pytest.fixture
def crypto() -> RecordingCrypto:
    return RecordingCrypto()


@pytest.fixture
def service(
    access: StaticAccessControl,
    root_keys: RecordingRootKeySource,
    registry: RecordingRegistry,
    crypto: RecordingCrypto,
) -> KeyHierarchyService:
    """Service wired to recording collaborators."""
    return KeyHierarchyService(
        access=access, root_keys=root_keys, registry=registry, crypto=crypto
    )


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await PostgresKeyRegistry(pool).create_schema()
    await pool.execute("TRUNCATE TABLE master_keys")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_registry(pg_pool: asyncpg.Pool) -> PostgresKeyRegistry:
    """Create a PostgreSQL registry instance for testing."""
    return PostgresKeyRegistry(pg_pool)
