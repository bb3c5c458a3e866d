"""
Cryptographic primitives for key wrapping.

This module provides:
- SecureKey: Key wrapper with redacted repr and best-effort wiping
- EncryptedData: Wrapped key blob (nonce || ciphertext || tag)
- AesGcmCipher: AES-256-GCM encryption/decryption operations
- CryptoProvider: Abstract wrap/unwrap contract used by the key service
- AesGcmKeyWrapper: AES-256-GCM implementation of CryptoProvider
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, IntegrityError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)


class SecureKey:
    """
    Key wrapper that never prints its material.

    Uses bytearray internally so the material can be zeroed by ``wipe()``
    once a request is done with it, and again in ``__del__``.
    Python may still hold copies elsewhere, so this is best-effort.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls, size: int = AES_256_KEY_SIZE) -> SecureKey:
        """Generate a cryptographically secure random key."""
        return cls(secrets.token_bytes(size))

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def wipe(self) -> None:
        """Zero the key material in place."""
        for i in range(len(self._bytes)):
            self._bytes[i] = 0

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            self.wipe()


@dataclass
class EncryptedData:
    """
    Encrypted payload with nonce and ciphertext.

    The ciphertext includes the 16-byte authentication tag appended by AESGCM.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag

    def to_aead_blob(self) -> bytes:
        """
        Convert to AEAD blob format: nonce || ciphertext || tag.

        Wrapping a 32-byte key gives 12 + 32 + 16 = 60 bytes.
        """
        return self.nonce + self.ciphertext

    @classmethod
    def from_aead_blob(cls, blob: bytes) -> EncryptedData:
        """
        Parse from AEAD blob format: nonce || ciphertext || tag.

        Raises:
            IntegrityError: If blob is too small to hold a nonce and tag
        """
        min_size = NONCE_SIZE + TAG_SIZE
        if len(blob) < min_size:
            raise IntegrityError(
                f"AEAD blob too small: expected at least {min_size} bytes, got {len(blob)}"
            )
        return cls(nonce=blob[:NONCE_SIZE], ciphertext=blob[NONCE_SIZE:])


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    Provides static methods for encryption and decryption. No AAD is
    used; a master key is tied to its table by the registry record.
    """

    @staticmethod
    def encrypt(key: SecureKey, plaintext: bytes) -> EncryptedData:
        """
        Encrypt plaintext with AES-256-GCM.

        Args:
            key: 32-byte encryption key
            plaintext: Data to encrypt

        Returns:
            EncryptedData with nonce and ciphertext (includes auth tag)

        Raises:
            CryptoError: If key size is invalid or encryption fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        aesgcm = AESGCM(key.as_bytes())

        try:
            ciphertext = aesgcm.encrypt(nonce, plaintext, None)
        except Exception as e:
            raise CryptoError(f"Encryption error: {e}") from e

        return EncryptedData(nonce=nonce, ciphertext=ciphertext)

    @staticmethod
    def decrypt(key: SecureKey, encrypted: EncryptedData) -> bytes:
        """
        Decrypt ciphertext with AES-256-GCM.

        Raises:
            CryptoError: If key/nonce size is invalid
            IntegrityError: If the authentication tag does not verify
        """
        if len(key) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        if len(encrypted.nonce) != NONCE_SIZE:
            raise CryptoError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(encrypted.nonce)}"
            )

        aesgcm = AESGCM(key.as_bytes())

        try:
            return aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise IntegrityError("Decryption failed") from None


def generate_random_bytes(length: int) -> bytes:
    """Generate cryptographically secure random bytes."""
    return secrets.token_bytes(length)


class CryptoProvider(ABC):
    """
    Key-wrapping primitive used by the key service.

    ``unwrap`` must raise IntegrityError when the ciphertext does not
    authenticate under ``key``; any other failure is a CryptoError.
    """

    @property
    @abstractmethod
    def key_size(self) -> int:
        """Length in bytes of the keys this provider wraps with."""
        ...

    @abstractmethod
    def wrap(self, plaintext: bytes, key: SecureKey) -> bytes:
        """Wrap key material under ``key``."""
        ...

    @abstractmethod
    def unwrap(self, ciphertext: bytes, key: SecureKey) -> bytes:
        """Unwrap key material previously wrapped under ``key``."""
        ...


class AesGcmKeyWrapper(CryptoProvider):
    """AES-256-GCM key wrapping with a random nonce per call."""

    @property
    def key_size(self) -> int:
        return AES_256_KEY_SIZE

    def wrap(self, plaintext: bytes, key: SecureKey) -> bytes:
        return AesGcmCipher.encrypt(key, plaintext).to_aead_blob()

    def unwrap(self, ciphertext: bytes, key: SecureKey) -> bytes:
        encrypted = EncryptedData.from_aead_blob(ciphertext)
        return AesGcmCipher.decrypt(key, encrypted)
