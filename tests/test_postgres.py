"""
Tests for the PostgreSQL key registry. Skipped unless DATABASE_URL is set.
"""

from __future__ import annotations

import asyncio

import pytest

from keystore import (
    AesGcmKeyWrapper,
    KeyHierarchyService,
    StaticAccessControl,
    StaticRootKeySource,
    StorageError,
    UniqueViolationError,
)

from conftest import GRANTS, ROOT_KEY, TOKEN


async def test_insert_lookup_fetch(postgres_registry):
    assert await postgres_registry.lookup_master_key_id("orders") is None

    mki = await postgres_registry.insert_master_key("orders", b"wrapped-master-key")

    assert await postgres_registry.lookup_master_key_id("orders") == mki
    assert await postgres_registry.fetch_wrapped_master_key(mki) == b"wrapped-master-key"


async def test_second_insert_for_table_is_unique_violation(postgres_registry):
    first = await postgres_registry.insert_master_key("orders", b"first")

    with pytest.raises(UniqueViolationError):
        await postgres_registry.insert_master_key("orders", b"second")

    (record,) = await postgres_registry.list_records()
    assert record.master_key_id == first
    assert record.wrapped_master_key == b"first"


async def test_fetch_unknown_id(postgres_registry):
    with pytest.raises(StorageError):
        await postgres_registry.fetch_wrapped_master_key("00000000-0000-0000-0000-000000000000")
    with pytest.raises(StorageError):
        await postgres_registry.fetch_wrapped_master_key("not-a-uuid")


async def test_concurrent_first_use_against_postgres(postgres_registry):
    service = KeyHierarchyService(
        access=StaticAccessControl(GRANTS),
        root_keys=StaticRootKeySource(ROOT_KEY),
        registry=postgres_registry,
        crypto=AesGcmKeyWrapper(),
    )
    data_keys = [f"key-{i}".encode() for i in range(10)]

    wrapped = await asyncio.gather(
        *(service.wrap_data_key(TOKEN, "orders", "ssn", key) for key in data_keys)
    )

    assert len(await postgres_registry.list_records()) == 1
    for key, blob in zip(data_keys, wrapped):
        assert await service.unwrap_data_key(TOKEN, "orders", "ssn", blob) == key
