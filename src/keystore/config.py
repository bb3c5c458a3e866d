"""
Service configuration loaded from the environment (and an optional .env file).
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the keystore service."""

    root_key: bytes
    access_policy_path: Path
    database_url: Optional[str] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL

    def __repr__(self) -> str:
        return (
            f"Settings(root_key=[REDACTED], access_policy_path={self.access_policy_path!r}, "
            f"database_url={'set' if self.database_url else None}, host={self.host!r}, "
            f"port={self.port}, log_level={self.log_level!r})"
        )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> Settings:
        """
        Build settings from environment variables.

        A ``.env`` file is loaded first (without overriding variables that
        are already set) unless an explicit ``environ`` mapping is given.

        Raises:
            ConfigError: If a required variable is missing or malformed
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        root_key = _decode_root_key(environ.get("KEYSTORE_ROOT_KEY"))

        policy = environ.get("KEYSTORE_ACCESS_POLICY")
        if not policy:
            raise ConfigError("KEYSTORE_ACCESS_POLICY must be set")

        port_value = environ.get("KEYSTORE_PORT", str(DEFAULT_PORT))
        try:
            port = int(port_value)
        except ValueError:
            raise ConfigError(f"Invalid KEYSTORE_PORT: {port_value}") from None
        if not 0 < port < 65536:
            raise ConfigError(f"KEYSTORE_PORT out of range: {port}")

        log_level = environ.get("KEYSTORE_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"Invalid KEYSTORE_LOG_LEVEL: {log_level}")

        return cls(
            root_key=root_key,
            access_policy_path=Path(policy),
            database_url=environ.get("DATABASE_URL") or None,
            host=environ.get("KEYSTORE_HOST", DEFAULT_HOST),
            port=port,
            log_level=log_level,
        )


def _decode_root_key(value: Optional[str]) -> bytes:
    if not value:
        raise ConfigError("KEYSTORE_ROOT_KEY must be set")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ConfigError("KEYSTORE_ROOT_KEY is not valid base64") from None
