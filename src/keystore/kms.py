"""
Root key sources.

The root key sits at the top of the hierarchy and wraps every table's
master key. The service asks for it once per request and wipes its copy
when the request ends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .config import Settings
from .crypto import AES_256_KEY_SIZE, SecureKey
from .errors import ConfigError


class RootKeySource(ABC):
    """
    Supplies the root key.

    Transient failures must be raised as RootKeyError.
    """

    @abstractmethod
    async def get_root_key(self) -> SecureKey:
        """Return a fresh copy of the root key."""
        ...

    @staticmethod
    def from_settings(settings: Settings) -> RootKeySource:
        """Build the configured root key source."""
        return StaticRootKeySource(settings.root_key)


class StaticRootKeySource(RootKeySource):
    """Root key held in process memory, e.g. injected from a secret store."""

    def __init__(self, root_key: bytes) -> None:
        if len(root_key) != AES_256_KEY_SIZE:
            raise ConfigError(
                f"Root key must be {AES_256_KEY_SIZE} bytes, got {len(root_key)}"
            )
        self._root_key = SecureKey(root_key)

    async def get_root_key(self) -> SecureKey:
        # Callers wipe the returned key, so hand out a copy.
        return SecureKey(self._root_key.as_bytes())
