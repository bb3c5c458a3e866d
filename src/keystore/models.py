"""
Request and response shapes for the wrap/unwrap operations.

Responses follow the service envelope: ``code`` 0 with the key on success,
``code`` -1 with an error message on a business failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

CODE_OK = 0
CODE_ERROR = -1


@dataclass(frozen=True)
class AccessRequest:
    """Unit of authentication and authorization."""

    token: str
    table: str
    column: str

    def __repr__(self) -> str:
        return f"AccessRequest(token=[REDACTED], table={self.table!r}, column={self.column!r})"


@dataclass(frozen=True, repr=False)
class WrapKeyRequest:
    """Wrap ``plain_key`` under the master key of ``table``."""

    token: str
    table: str
    column: str
    plain_key: bytes

    def __repr__(self) -> str:
        return f"WrapKeyRequest(table={self.table!r}, column={self.column!r})"


@dataclass(frozen=True, repr=False)
class UnwrapKeyRequest:
    """Unwrap ``wrapped_key`` with the master key of ``table``."""

    token: str
    table: str
    column: str
    wrapped_key: bytes

    def __repr__(self) -> str:
        return f"UnwrapKeyRequest(table={self.table!r}, column={self.column!r})"


@dataclass(frozen=True)
class WrapKeyResponse:
    code: int
    wrapped_key: Optional[bytes] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, wrapped_key: bytes) -> WrapKeyResponse:
        return cls(code=CODE_OK, wrapped_key=wrapped_key)

    @classmethod
    def failure(cls, error: str) -> WrapKeyResponse:
        return cls(code=CODE_ERROR, error=error)


@dataclass(frozen=True, repr=False)
class UnwrapKeyResponse:
    code: int
    plain_key: Optional[bytes] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, plain_key: bytes) -> UnwrapKeyResponse:
        return cls(code=CODE_OK, plain_key=plain_key)

    @classmethod
    def failure(cls, error: str) -> UnwrapKeyResponse:
        return cls(code=CODE_ERROR, error=error)

    def __repr__(self) -> str:
        return f"UnwrapKeyResponse(code={self.code}, error={self.error!r})"
