"""
Exception classes for keystore operations.

Errors fall into three groups:
- BusinessError: caller-visible rejections, answered with a ``code: -1`` envelope
- InternalError: faults reported to callers as one generic internal error
- Collaborator errors (StorageError, RootKeyError, CryptoError, ...) raised by
  the registry, root key source and cipher, translated by the service
"""

from __future__ import annotations

from typing import Optional


class KeystoreError(Exception):
    """Base exception for all keystore operations."""

    pass


# =============================================================================
# Business errors
# =============================================================================


class BusinessError(KeystoreError):
    """Rejection the caller is allowed to see; ``str(error)`` is safe to return."""

    pass


class InvalidRequestError(BusinessError):
    """Request is malformed (e.g. an empty key)."""

    pass


class UnauthenticatedError(BusinessError):
    """Token could not be authenticated."""

    def __init__(self) -> None:
        super().__init__("cannot authenticate the token")


class ForbiddenError(BusinessError):
    """Token is not allowed to access the (table, column) pair."""

    def __init__(self, table: str, column: str) -> None:
        super().__init__(
            f"do not have permission to access column {column} in table {table}"
        )
        self.table = table
        self.column = column


class TableNotRegisteredError(BusinessError):
    """No master key exists for the table, so nothing can be unwrapped."""

    def __init__(self, table: str) -> None:
        super().__init__(f"table {table} has not been registered yet")
        self.table = table


class InvalidWrappedKeyError(BusinessError):
    """Wrapped data key does not authenticate under the table's master key."""

    def __init__(self) -> None:
        super().__init__("provided data key cannot be unwrapped")


# =============================================================================
# Internal errors
# =============================================================================


class InternalError(KeystoreError):
    """Fault that is reported to callers only as a generic internal error."""

    pass


class DependencyUnavailableError(InternalError):
    """A collaborator (root key source, key registry, crypto provider) failed."""

    ROOT_KEY_SOURCE = "root_key_source"
    KEY_REGISTRY = "key_registry"
    CRYPTO_PROVIDER = "crypto_provider"

    def __init__(self, dependency: str, detail: Optional[str] = None) -> None:
        message = f"{dependency} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.dependency = dependency


class KeyIntegrityError(InternalError):
    """Stored master key cannot be unwrapped with the current root key."""

    pass


class CryptoOperationError(InternalError):
    """The crypto provider rejected a wrap or a non-tag unwrap failure occurred."""

    pass


# =============================================================================
# Collaborator errors
# =============================================================================


class StorageError(KeystoreError):
    """Key registry backend error (database, in-memory, etc.)."""

    pass


class UniqueViolationError(StorageError):
    """A master key is already registered for the table."""

    def __init__(self, table: str) -> None:
        super().__init__(f"master key already registered for table {table}")
        self.table = table


class RootKeyError(KeystoreError):
    """Root key source could not supply the root key."""

    pass


class CryptoError(KeystoreError):
    """Cryptographic operation failed (encryption, decryption, key generation)."""

    pass


class IntegrityError(CryptoError):
    """Ciphertext failed authentication (tampered, truncated, or wrong key)."""

    pass


class ConfigError(KeystoreError):
    """Configuration error."""

    pass
