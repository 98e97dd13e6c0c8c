# src/retro_messenger/services/keys.py
"""Identity key management for the messaging client.

The client owns a single RSA-OAEP key pair. The public half is published to
the identity directory; the private half only ever leaves the client wrapped
under a password-derived AES-GCM key.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Final

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from retro_messenger.core.errors import (
    CryptoError,
    InvalidKeyFormat,
    InvalidPassword,
    KeyGenerationError,
)
from retro_messenger.core.settings import settings
from retro_messenger.utils.encoding import b64d, b64e

logger = logging.getLogger(__name__)

SALT_LENGTH_BYTES: Final[int] = 16
IV_LENGTH_BYTES: Final[int] = 12
WRAP_KEY_LENGTH_BYTES: Final[int] = 32
GCM_TAG_LENGTH_BYTES: Final[int] = 16


@dataclass(frozen=True)
class KeyPair:
    """An RSA identity key pair held by one client session."""

    public_key: rsa.RSAPublicKey
    private_key: rsa.RSAPrivateKey

    @classmethod
    def from_private_key(cls, private_key: rsa.RSAPrivateKey) -> KeyPair:
        return cls(public_key=private_key.public_key(), private_key=private_key)


def derive_wrapping_key(password: str, salt: bytes, iterations: int | None = None) -> bytes:
    """Derive a 256-bit AES key from a password with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=WRAP_KEY_LENGTH_BYTES,
        salt=salt,
        iterations=iterations or settings.pbkdf2_iterations,
    )
    return kdf.derive(password.encode("utf-8"))


class KeyManager:
    """Generates, serializes and password-wraps the client's identity keys."""

    def __init__(
        self,
        *,
        key_size: int | None = None,
        pbkdf2_iterations: int | None = None,
    ) -> None:
        self._key_size = key_size or settings.rsa_key_size
        self._iterations = pbkdf2_iterations or settings.pbkdf2_iterations
        self._active: KeyPair | None = None

    # --- Generation -----------------------------------------------------------------
    def _generate_sync(self) -> KeyPair:
        private_key = rsa.generate_private_key(
            public_exponent=settings.rsa_public_exponent,
            key_size=self._key_size,
        )
        return KeyPair.from_private_key(private_key)

    async def generate_key_pair(self) -> KeyPair:
        """Generate a fresh RSA key pair and make it the active identity.

        Raises:
            KeyGenerationError: If the crypto provider cannot generate the key
        """
        try:
            key_pair = await asyncio.to_thread(self._generate_sync)
        except (UnsupportedAlgorithm, ValueError, TypeError) as err:
            logger.error("Failed to generate key pair: %s", err)
            raise KeyGenerationError("Key generation failed") from err

        self._active = key_pair
        return key_pair

    # --- Public key serialization ---------------------------------------------------
    def export_public_key(self, public_key: rsa.RSAPublicKey | None = None) -> str:
        """Serialize a public key to base64-encoded DER SubjectPublicKeyInfo.

        Defaults to the active key pair's public key.
        """
        key = public_key
        if key is None and self._active is not None:
            key = self._active.public_key
        if key is None:
            raise CryptoError("No public key available")

        der = key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return b64e(der)

    @staticmethod
    def import_public_key(public_key_b64: str) -> rsa.RSAPublicKey:
        """Load an RSA public key from base64-encoded SubjectPublicKeyInfo.

        Raises:
            InvalidKeyFormat: If the input is not a base64 SPKI RSA key
        """
        try:
            der = b64d(public_key_b64)
            key = serialization.load_der_public_key(der)
        except (ValueError, TypeError, UnsupportedAlgorithm) as err:
            raise InvalidKeyFormat("Public key is not valid base64 SPKI") from err

        if not isinstance(key, rsa.RSAPublicKey):
            raise InvalidKeyFormat("Public key must be an RSA key")
        return key

    # --- Password wrapping ----------------------------------------------------------
    def _wrap_sync(self, private_key: rsa.RSAPrivateKey, password: str) -> str:
        pkcs8 = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        salt = os.urandom(SALT_LENGTH_BYTES)
        iv = os.urandom(IV_LENGTH_BYTES)
        wrapping_key = derive_wrapping_key(password, salt, self._iterations)
        ciphertext = AESGCM(wrapping_key).encrypt(iv, pkcs8, None)
        return b64e(salt + iv + ciphertext)

    async def wrap_private_key(self, private_key: rsa.RSAPrivateKey, password: str) -> str:
        """Encrypt a private key under a password.

        The result is ``base64(salt || iv || AES-GCM(pkcs8))`` with a fresh
        random salt and IV on every call.
        """
        if not password:
            raise CryptoError("Password required to wrap private key")
        return await asyncio.to_thread(self._wrap_sync, private_key, password)

    def _unwrap_sync(self, wrapped: str, password: str) -> rsa.RSAPrivateKey:
        blob = b64d(wrapped)
        header = SALT_LENGTH_BYTES + IV_LENGTH_BYTES
        if len(blob) < header + GCM_TAG_LENGTH_BYTES:
            raise ValueError("Wrapped key is truncated")

        salt = blob[:SALT_LENGTH_BYTES]
        iv = blob[SALT_LENGTH_BYTES:header]
        wrapping_key = derive_wrapping_key(password, salt, self._iterations)
        pkcs8 = AESGCM(wrapping_key).decrypt(iv, blob[header:], None)

        key = serialization.load_der_private_key(pkcs8, password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError("Wrapped key is not an RSA private key")
        return key

    async def unwrap_private_key(self, wrapped: str, password: str) -> rsa.RSAPrivateKey:
        """Recover a private key wrapped by :meth:`wrap_private_key`.

        Raises:
            InvalidPassword: On a wrong password or any corruption of the blob
        """
        try:
            return await asyncio.to_thread(self._unwrap_sync, wrapped, password or "")
        except (InvalidTag, ValueError, TypeError, UnsupportedAlgorithm) as err:
            logger.warning("Private key unwrap rejected")
            raise InvalidPassword() from err

    # --- Active identity ------------------------------------------------------------
    def set_active_key_pair(self, key_pair: KeyPair) -> None:
        """Install a key pair (e.g. one restored from a wrapped blob)."""
        self._active = key_pair

    def get_active_key_pair(self) -> KeyPair | None:
        return self._active

    def clear_active_key_pair(self) -> None:
        """Drop the in-memory identity so it can be garbage collected."""
        self._active = None

    def has_private_key(self) -> bool:
        return self._active is not None
