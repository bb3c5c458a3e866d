"""
Key hierarchy service.

Key hierarchy:
- Root key (root key source) -> master key (one per table, stored wrapped)
- Master key -> data key (supplied by the caller, never stored)

Request flow:
1. Authenticate the token, then authorize it for (table, column).
   Nothing else is touched until both pass.
2. Resolve the table's master key through the registry, unwrapping it
   with the root key. Wrapping registers a new master key on first use of
   a table; unwrapping an unregistered table is rejected.
3. Wrap or unwrap the caller's data key with the master key.

Root and master keys live only for the duration of one call and are wiped
before it returns. Nothing is cached between calls.
"""

from __future__ import annotations

import logging
from typing import Optional

from .access import AccessControl
from .crypto import CryptoProvider, SecureKey
from .errors import (
    BusinessError,
    CryptoError,
    CryptoOperationError,
    DependencyUnavailableError,
    ForbiddenError,
    IntegrityError,
    InternalError,
    InvalidRequestError,
    InvalidWrappedKeyError,
    KeyIntegrityError,
    TableNotRegisteredError,
    UnauthenticatedError,
    UniqueViolationError,
)
from .kms import RootKeySource
from .models import (
    AccessRequest,
    UnwrapKeyRequest,
    UnwrapKeyResponse,
    WrapKeyRequest,
    WrapKeyResponse,
)
from .storage import KeyRegistry

logger = logging.getLogger(__name__)


class KeyHierarchyService:
    """
    Wraps and unwraps caller data keys under per-table master keys.

    ``wrap_key``/``unwrap_key`` are the request boundary: business errors
    become ``code -1`` responses, internal errors propagate.
    ``wrap_data_key``/``unwrap_data_key`` raise every error.
    """

    def __init__(
        self,
        access: AccessControl,
        root_keys: RootKeySource,
        registry: KeyRegistry,
        crypto: CryptoProvider,
    ) -> None:
        """
        Initialize the service with its collaborators.

        Args:
            access: Token authentication and authorization
            root_keys: Source of the root key
            registry: Table -> wrapped master key registry
            crypto: Key wrapping primitive
        """
        self._access = access
        self._root_keys = root_keys
        self._registry = registry
        self._crypto = crypto

    # =========================================================================
    # Request boundary
    # =========================================================================

    async def wrap_key(self, request: WrapKeyRequest) -> WrapKeyResponse:
        """Handle a wrap request, answering business errors with a failure response."""
        try:
            wrapped = await self.wrap_data_key(
                request.token, request.table, request.column, request.plain_key
            )
        except BusinessError as e:
            logger.warning(
                "Wrap rejected for table %s column %s: %s", request.table, request.column, e
            )
            return WrapKeyResponse.failure(str(e))
        except InternalError:
            logger.exception("Wrap failed for table %s", request.table)
            raise
        return WrapKeyResponse.ok(wrapped)

    async def unwrap_key(self, request: UnwrapKeyRequest) -> UnwrapKeyResponse:
        """Handle an unwrap request, answering business errors with a failure response."""
        try:
            plain = await self.unwrap_data_key(
                request.token, request.table, request.column, request.wrapped_key
            )
        except BusinessError as e:
            logger.warning(
                "Unwrap rejected for table %s column %s: %s", request.table, request.column, e
            )
            return UnwrapKeyResponse.failure(str(e))
        except InternalError:
            logger.exception("Unwrap failed for table %s", request.table)
            raise
        return UnwrapKeyResponse.ok(plain)

    # =========================================================================
    # Operations
    # =========================================================================

    async def wrap_data_key(
        self, token: str, table: str, column: str, plain_data_key: bytes
    ) -> bytes:
        """
        Wrap a data key under the table's master key.

        The master key is created and registered on first use of the table.

        Returns:
            Wrapped data key (AEAD blob)

        Raises:
            InvalidRequestError: If the data key is empty
            UnauthenticatedError: If the token does not authenticate
            ForbiddenError: If the token may not access (table, column)
            DependencyUnavailableError: If a collaborator fails
            KeyIntegrityError: If the stored master key does not unwrap
            CryptoOperationError: If wrapping fails
        """
        if not plain_data_key:
            raise InvalidRequestError("plain key must not be empty")

        await self._check_access(AccessRequest(token, table, column))

        root_key = await self._get_root_key()
        try:
            master_key = await self._resolve_master_key(table, root_key)
        finally:
            root_key.wipe()

        try:
            return self._crypto.wrap(plain_data_key, master_key)
        except CryptoError as e:
            raise CryptoOperationError("Failed to wrap data key") from e
        except Exception as e:
            raise DependencyUnavailableError(
                DependencyUnavailableError.CRYPTO_PROVIDER, "data key wrap failed"
            ) from e
        finally:
            master_key.wipe()

    async def unwrap_data_key(
        self, token: str, table: str, column: str, wrapped_data_key: bytes
    ) -> bytes:
        """
        Unwrap a data key with the table's master key.

        Returns:
            Plaintext data key

        Raises:
            InvalidRequestError: If the wrapped key is empty
            UnauthenticatedError: If the token does not authenticate
            ForbiddenError: If the token may not access (table, column)
            TableNotRegisteredError: If the table has no master key
            InvalidWrappedKeyError: If the wrapped key does not authenticate
            DependencyUnavailableError: If a collaborator fails
            KeyIntegrityError: If the stored master key does not unwrap
            CryptoOperationError: If unwrapping fails for another reason
        """
        if not wrapped_data_key:
            raise InvalidRequestError("wrapped key must not be empty")

        await self._check_access(AccessRequest(token, table, column))

        master_key_id = await self._lookup(table)
        if master_key_id is None:
            raise TableNotRegisteredError(table)

        wrapped_master_key = await self._fetch(master_key_id)
        root_key = await self._get_root_key()
        try:
            master_key = self._unwrap_master_key(master_key_id, wrapped_master_key, root_key)
        finally:
            root_key.wipe()

        try:
            return self._crypto.unwrap(wrapped_data_key, master_key)
        except IntegrityError as e:
            raise InvalidWrappedKeyError() from e
        except CryptoError as e:
            raise CryptoOperationError("Failed to unwrap data key") from e
        except Exception as e:
            raise DependencyUnavailableError(
                DependencyUnavailableError.CRYPTO_PROVIDER, "data key unwrap failed"
            ) from e
        finally:
            master_key.wipe()

    # =========================================================================
    # Internal
    # =========================================================================

    async def _check_access(self, request: AccessRequest) -> None:
        if not await self._access.authenticate(request.token):
            raise UnauthenticatedError()
        if not await self._access.authorize(request.token, request.table, request.column):
            raise ForbiddenError(request.table, request.column)

    async def _get_root_key(self) -> SecureKey:
        try:
            return await self._root_keys.get_root_key()
        except Exception as e:
            raise DependencyUnavailableError(
                DependencyUnavailableError.ROOT_KEY_SOURCE
            ) from e

    async def _resolve_master_key(self, table: str, root_key: SecureKey) -> SecureKey:
        """Get the table's master key, registering a new one on first use."""
        master_key_id = await self._lookup(table)
        if master_key_id is None:
            master_key = await self._create_master_key(table, root_key)
            if master_key is not None:
                return master_key

            # Another request registered this table first; use its key.
            master_key_id = await self._lookup(table)
            if master_key_id is None:
                raise DependencyUnavailableError(
                    DependencyUnavailableError.KEY_REGISTRY,
                    "master key missing after unique violation",
                )

        wrapped_master_key = await self._fetch(master_key_id)
        return self._unwrap_master_key(master_key_id, wrapped_master_key, root_key)

    async def _create_master_key(
        self, table: str, root_key: SecureKey
    ) -> Optional[SecureKey]:
        """
        Generate, wrap and register a master key for ``table``.

        Returns None if another request registered the table first.
        """
        master_key = SecureKey.generate(self._crypto.key_size)
        try:
            try:
                wrapped_master_key = self._crypto.wrap(master_key.as_bytes(), root_key)
            except CryptoError as e:
                raise CryptoOperationError("Failed to wrap new master key") from e
            except Exception as e:
                raise DependencyUnavailableError(
                    DependencyUnavailableError.CRYPTO_PROVIDER, "master key wrap failed"
                ) from e

            try:
                master_key_id = await self._registry.insert_master_key(
                    table, wrapped_master_key
                )
            except UniqueViolationError:
                logger.info("Master key for table %s was registered concurrently", table)
                master_key.wipe()
                return None
            except Exception as e:
                raise DependencyUnavailableError(
                    DependencyUnavailableError.KEY_REGISTRY, "insert failed"
                ) from e
        except BaseException:
            master_key.wipe()
            raise

        logger.info("Registered master key %s for table %s", master_key_id, table)
        return master_key

    def _unwrap_master_key(
        self, master_key_id: str, wrapped_master_key: bytes, root_key: SecureKey
    ) -> SecureKey:
        try:
            return SecureKey(self._crypto.unwrap(wrapped_master_key, root_key))
        except CryptoError as e:
            raise KeyIntegrityError(
                f"Master key {master_key_id} cannot be unwrapped with the current root key"
            ) from e
        except Exception as e:
            raise DependencyUnavailableError(
                DependencyUnavailableError.CRYPTO_PROVIDER, "master key unwrap failed"
            ) from e

    async def _lookup(self, table: str) -> Optional[str]:
        try:
            return await self._registry.lookup_master_key_id(table)
        except Exception as e:
            raise DependencyUnavailableError(
                DependencyUnavailableError.KEY_REGISTRY, "lookup failed"
            ) from e

    async def _fetch(self, master_key_id: str) -> bytes:
        try:
            return await self._registry.fetch_wrapped_master_key(master_key_id)
        except Exception as e:
            raise DependencyUnavailableError(
                DependencyUnavailableError.KEY_REGISTRY, "fetch failed"
            ) from e
