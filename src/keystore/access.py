"""
Access control for key requests.

A request is authenticated by its token and authorized per (table, column).
"""

from __future__ import annotations

import hmac
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from .errors import ConfigError

ALL_COLUMNS = "*"


class AccessControl(ABC):
    """Token authentication and per-column authorization."""

    @abstractmethod
    async def authenticate(self, token: str) -> bool:
        """Return True if the token is valid."""
        ...

    @abstractmethod
    async def authorize(self, token: str, table: str, column: str) -> bool:
        """Return True if the token may access ``column`` of ``table``."""
        ...


class StaticAccessControl(AccessControl):
    """
    Fixed grant table: token -> table -> columns.

    A column list containing ``"*"`` grants every column of that table.
    """

    def __init__(self, grants: Mapping[str, Mapping[str, Iterable[str]]]) -> None:
        self._grants: Dict[str, Dict[str, frozenset]] = {
            token: {table: frozenset(columns) for table, columns in tables.items()}
            for token, tables in grants.items()
        }

    @classmethod
    def from_file(cls, path: Path) -> StaticAccessControl:
        """
        Load grants from a JSON file shaped like
        ``{"<token>": {"<table>": ["<column>", ...]}}``.

        Raises:
            ConfigError: If the file cannot be read or has the wrong shape
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to load access policy {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError("Access policy must be a JSON object")
        for tables in data.values():
            if not isinstance(tables, dict) or not all(
                isinstance(columns, list) and all(isinstance(c, str) for c in columns)
                for columns in tables.values()
            ):
                raise ConfigError("Access policy entries must map tables to column lists")
        return cls(data)

    def _lookup(self, token: str) -> Optional[Dict[str, frozenset]]:
        # Compare every known token so timing does not reveal a prefix match.
        found = None
        for known, tables in self._grants.items():
            if hmac.compare_digest(known.encode("utf-8"), token.encode("utf-8")):
                found = tables
        return found

    async def authenticate(self, token: str) -> bool:
        if not token:
            return False
        return self._lookup(token) is not None

    async def authorize(self, token: str, table: str, column: str) -> bool:
        tables = self._lookup(token) if token else None
        if tables is None:
            return False
        columns = tables.get(table)
        if columns is None:
            return False
        return ALL_COLUMNS in columns or column in columns
