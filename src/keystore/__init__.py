"""
Keystore

An envelope-encryption key service. Callers wrap and unwrap their own data
keys; the service keeps one master key per table, stored wrapped under a
root key held by the root key source.

Quick Start
-----------
```python
import asyncio
from keystore import (
    AesGcmKeyWrapper,
    InMemoryKeyRegistry,
    KeyHierarchyService,
    StaticAccessControl,
    StaticRootKeySource,
    generate_random_bytes,
)

async def main():
    service = KeyHierarchyService(
        access=StaticAccessControl({"T1": {"orders": ["ssn"]}}),
        root_keys=StaticRootKeySource(generate_random_bytes(32)),
        registry=InMemoryKeyRegistry(),
        crypto=AesGcmKeyWrapper(),
    )

    wrapped = await service.wrap_data_key("T1", "orders", "ssn", b"123-45-6789")
    plain = await service.unwrap_data_key("T1", "orders", "ssn", wrapped)

asyncio.run(main())
```

Key Features
------------
- **Per-Table Master Keys**: Created on first use, stored only wrapped
- **AES-256-GCM**: Authenticated key wrapping at both tiers
- **Access Gate**: Authentication and authorization before any key I/O
- **Race-Safe Registration**: One master key per table under concurrency
- **PostgreSQL Registry**: asyncpg-backed storage with a UNIQUE table constraint
- **HTTP Binding**: FastAPI routes with ``code``/``error`` envelopes
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    AesGcmKeyWrapper,
    CryptoProvider,
    EncryptedData,
    SecureKey,
    generate_random_bytes,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    BusinessError,
    ConfigError,
    CryptoError,
    CryptoOperationError,
    DependencyUnavailableError,
    ForbiddenError,
    IntegrityError,
    InternalError,
    InvalidRequestError,
    InvalidWrappedKeyError,
    KeyIntegrityError,
    KeystoreError,
    RootKeyError,
    StorageError,
    TableNotRegisteredError,
    UnauthenticatedError,
    UniqueViolationError,
)

# =============================================================================
# Collaborator Exports
# =============================================================================

from .access import AccessControl, StaticAccessControl
from .config import Settings
from .kms import RootKeySource, StaticRootKeySource
from .storage import InMemoryKeyRegistry, KeyRegistry, MasterKeyRecord
from .postgres import PostgresKeyRegistry

# =============================================================================
# Service Exports (Primary API)
# =============================================================================

from .models import (
    AccessRequest,
    UnwrapKeyRequest,
    UnwrapKeyResponse,
    WrapKeyRequest,
    WrapKeyResponse,
)
from .service import KeyHierarchyService

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "AesGcmKeyWrapper",
    "CryptoProvider",
    "EncryptedData",
    "SecureKey",
    "generate_random_bytes",
    # Errors
    "KeystoreError",
    "BusinessError",
    "InvalidRequestError",
    "UnauthenticatedError",
    "ForbiddenError",
    "TableNotRegisteredError",
    "InvalidWrappedKeyError",
    "InternalError",
    "DependencyUnavailableError",
    "KeyIntegrityError",
    "CryptoOperationError",
    "StorageError",
    "UniqueViolationError",
    "RootKeyError",
    "CryptoError",
    "IntegrityError",
    "ConfigError",
    # Collaborators
    "AccessControl",
    "StaticAccessControl",
    "Settings",
    "RootKeySource",
    "StaticRootKeySource",
    "KeyRegistry",
    "InMemoryKeyRegistry",
    "MasterKeyRecord",
    "PostgresKeyRegistry",
    # Service (Primary API)
    "AccessRequest",
    "WrapKeyRequest",
    "WrapKeyResponse",
    "UnwrapKeyRequest",
    "UnwrapKeyResponse",
    "KeyHierarchyService",
]
