"""
Keystore HTTP server.

Usage:
    keystore-server

Or run directly:
    python -m keystore.server

Configuration comes from the environment or a .env file, see
``keystore.config.Settings``. Without DATABASE_URL master keys are kept in
memory and are lost when the process exits.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
import uvicorn
from fastapi import FastAPI

from .access import StaticAccessControl
from .api import create_app
from .config import Settings
from .crypto import AesGcmKeyWrapper
from .errors import ConfigError
from .kms import RootKeySource
from .postgres import PostgresKeyRegistry
from .service import KeyHierarchyService
from .storage import InMemoryKeyRegistry

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Send log records to stderr in a single line format."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
        force=True,
    )


def build_app(settings: Settings) -> FastAPI:
    """Build the application; collaborators are created in the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        access = StaticAccessControl.from_file(settings.access_policy_path)
        root_keys = RootKeySource.from_settings(settings)

        pool = None
        if settings.database_url:
            pool = await asyncpg.create_pool(settings.database_url)
            registry = PostgresKeyRegistry(pool)
            await registry.create_schema()
            logger.info("Using PostgreSQL key registry")
        else:
            registry = InMemoryKeyRegistry()
            logger.warning("DATABASE_URL not set, master keys are kept in memory only")

        app.state.service = KeyHierarchyService(
            access=access,
            root_keys=root_keys,
            registry=registry,
            crypto=AesGcmKeyWrapper(),
        )
        try:
            yield
        finally:
            if pool is not None:
                await pool.close()

    return create_app(lifespan=lifespan)


def main() -> None:
    """CLI entry point for keystore-server command."""
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level)
    logger.info("Starting keystore on %s:%d", settings.host, settings.port)
    uvicorn.run(
        build_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
