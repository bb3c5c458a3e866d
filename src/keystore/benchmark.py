"""
Keystore Benchmark CLI.

Usage:
    keystore-benchmark

Or run directly:
    python -m keystore.benchmark

Uses PostgreSQL when DATABASE_URL is set (environment or .env file),
otherwise the in-memory registry. The PostgreSQL master_keys table is
truncated on startup.
"""

from __future__ import annotations

import asyncio
import os
import sys
import time
from typing import Optional

import asyncpg
from dotenv import load_dotenv

from keystore.access import StaticAccessControl
from keystore.crypto import AesGcmKeyWrapper, generate_random_bytes
from keystore.kms import StaticRootKeySource
from keystore.models import UnwrapKeyRequest, WrapKeyRequest
from keystore.postgres import PostgresKeyRegistry
from keystore.service import KeyHierarchyService
from keystore.storage import InMemoryKeyRegistry, KeyRegistry

BENCH_TOKEN = "benchmark-token"
CONCURRENT_WRAPS_PER_TABLE = 8


def _banner(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}".ljust(69) + "|")
    print("+" + "-" * 68 + "+")


async def run_benchmark() -> None:
    """Run the keystore benchmark."""
    print("=== Keystore Benchmark ===\n")

    load_dotenv()

    pool: Optional[asyncpg.Pool] = None
    registry: KeyRegistry
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        pool = await asyncpg.create_pool(database_url)
        if pool is None:
            print("ERROR: Failed to create connection pool")
            sys.exit(1)
        registry = PostgresKeyRegistry(pool)
        await registry.create_schema()

        truncate_start = time.perf_counter()
        await pool.execute("TRUNCATE TABLE master_keys")
        truncate_duration = (time.perf_counter() - truncate_start) * 1000
        print(f"[STARTUP] PostgreSQL registry, master_keys truncated in {truncate_duration:.3f}ms")
    else:
        registry = InMemoryKeyRegistry()
        print("[STARTUP] DATABASE_URL not set, using in-memory registry")

    try:
        user_input = input("Enter number of tables to test (default: 50): ").strip()
        test_quantity = int(user_input) if user_input else 50
    except ValueError:
        test_quantity = 50
    test_quantity = max(test_quantity, 1)
    print(f"Testing with {test_quantity} tables\n")

    tables = [f"bench_table_{i}" for i in range(test_quantity)]
    service = KeyHierarchyService(
        access=StaticAccessControl({BENCH_TOKEN: {table: ["*"] for table in tables}}),
        root_keys=StaticRootKeySource(generate_random_bytes(32)),
        registry=registry,
        crypto=AesGcmKeyWrapper(),
    )

    print("=" * 70)
    print("                    BENCHMARK START")
    print("=" * 70 + "\n")

    # ========================================================================
    # Demo 1: Concurrent first use of every table
    # ========================================================================
    _banner(f"Demo 1: First use of {test_quantity} tables, {CONCURRENT_WRAPS_PER_TABLE} wraps each")

    data_key = generate_random_bytes(32)
    demo1_start = time.perf_counter()
    responses = await asyncio.gather(
        *(
            service.wrap_key(WrapKeyRequest(BENCH_TOKEN, table, "col", data_key))
            for table in tables
            for _ in range(CONCURRENT_WRAPS_PER_TABLE)
        )
    )
    demo1_duration = time.perf_counter() - demo1_start

    failures = sum(1 for r in responses if r.code != 0)
    distinct_ids = {await registry.lookup_master_key_id(table) for table in tables}
    print(f"[OK] {len(responses) - failures}/{len(responses)} wraps succeeded")
    print(f"[OK] {len(distinct_ids)} master keys registered for {test_quantity} tables")
    print(f"[PERF] Time: {demo1_duration * 1000:.3f}ms | Rate: {len(responses) / demo1_duration:.2f} ops/sec\n")

    # ========================================================================
    # Demo 2: Wrap/unwrap on registered tables
    # ========================================================================
    _banner("Demo 2: Wrap/Unwrap Benchmark")

    wrapped = []
    wrap_start = time.perf_counter()
    for table in tables:
        response = await service.wrap_key(WrapKeyRequest(BENCH_TOKEN, table, "col", data_key))
        wrapped.append((table, response.wrapped_key))
    wrap_time = time.perf_counter() - wrap_start

    unwrap_start = time.perf_counter()
    mismatches = 0
    for table, wrapped_key in wrapped:
        response = await service.unwrap_key(
            UnwrapKeyRequest(BENCH_TOKEN, table, "col", wrapped_key)
        )
        if response.plain_key != data_key:
            mismatches += 1
    unwrap_time = time.perf_counter() - unwrap_start

    print(f"[OK] {test_quantity - mismatches}/{test_quantity} round trips recovered the data key")
    print(f"[PERF] Wrap:   {wrap_time * 1000 / test_quantity:.3f}ms avg ({test_quantity / wrap_time:.2f} ops/sec)")
    print(f"[PERF] Unwrap: {unwrap_time * 1000 / test_quantity:.3f}ms avg ({test_quantity / unwrap_time:.2f} ops/sec)\n")

    # ========================================================================
    # Demo 3: Cross-table unwrap is rejected
    # ========================================================================
    _banner("Demo 3: Cross-Table Tamper Check")

    if test_quantity > 1:
        response = await service.unwrap_key(
            UnwrapKeyRequest(BENCH_TOKEN, tables[1], "col", wrapped[0][1])
        )
        if response.code != 0:
            print(f"[OK] Rejected: {response.error}\n")
        else:
            print("[ERROR] Wrapped key from another table was accepted\n")
    else:
        print("[SKIP] Needs at least 2 tables\n")

    # ========================================================================
    # Summary
    # ========================================================================
    print("=" * 70)
    print("                    BENCHMARK SUMMARY")
    print("=" * 70 + "\n")

    print("Test Configuration:")
    print(f"  - Tables: {test_quantity}")
    print(f"  - Concurrent first-use wraps per table: {CONCURRENT_WRAPS_PER_TABLE}")
    print(f"  - Registry: {'PostgreSQL' if pool is not None else 'in-memory'}")
    print("  - Crypto: AES-256-GCM key wrapping")

    print("\n" + "=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")

    if pool is not None:
        await pool.close()


def main() -> None:
    """CLI entry point for keystore-benchmark command."""
    asyncio.run(run_benchmark())


if __name__ == "__main__":
    main()
