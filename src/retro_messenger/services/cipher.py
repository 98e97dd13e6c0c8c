# src/retro_messenger/services/cipher.py
"""Hybrid (RSA-OAEP + AES-GCM) encryption of individual messages."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Final

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError as SchemaValidationError

from retro_messenger.core.errors import CryptoError, DecryptionError
from retro_messenger.schemas.envelope import EncryptedEnvelope
from retro_messenger.services.keys import KeyManager
from retro_messenger.utils.encoding import b64d, b64e

logger = logging.getLogger(__name__)

MESSAGE_KEY_LENGTH_BYTES: Final[int] = 32
MESSAGE_IV_LENGTH_BYTES: Final[int] = 12

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def _encrypt_sync(plaintext: str, recipient_public_key: rsa.RSAPublicKey) -> EncryptedEnvelope:
    message_key = AESGCM.generate_key(bit_length=MESSAGE_KEY_LENGTH_BYTES * 8)
    iv = os.urandom(MESSAGE_IV_LENGTH_BYTES)
    ciphertext = AESGCM(message_key).encrypt(iv, plaintext.encode("utf-8"), None)
    encrypted_key = recipient_public_key.encrypt(message_key, _OAEP)
    return EncryptedEnvelope(
        encrypted_key=b64e(encrypted_key),
        iv=b64e(iv),
        encrypted_message=b64e(ciphertext),
    )


def _decrypt_sync(envelope: EncryptedEnvelope, private_key: rsa.RSAPrivateKey) -> str:
    message_key = private_key.decrypt(b64d(envelope.encrypted_key), _OAEP)
    iv = b64d(envelope.iv)
    if len(iv) != MESSAGE_IV_LENGTH_BYTES:
        raise ValueError("Invalid IV length")
    plaintext = AESGCM(message_key).decrypt(iv, b64d(envelope.encrypted_message), None)
    return plaintext.decode("utf-8")


class MessageCipher:
    """Encrypts messages for recipients and decrypts messages for the owner.

    Stateless apart from a cache of recipients' imported public keys.
    """

    def __init__(self, key_manager: KeyManager | None = None) -> None:
        self._key_manager = key_manager or KeyManager()
        self._recipient_keys: dict[str, rsa.RSAPublicKey] = {}

    @property
    def key_manager(self) -> KeyManager:
        return self._key_manager

    async def encrypt_for(
        self,
        plaintext: str,
        recipient_public_key: rsa.RSAPublicKey,
    ) -> EncryptedEnvelope:
        """Encrypt ``plaintext`` under a one-time AES key wrapped for the recipient."""
        return await asyncio.to_thread(_encrypt_sync, plaintext, recipient_public_key)

    async def decrypt_with(
        self,
        envelope: EncryptedEnvelope | str,
        own_private_key: rsa.RSAPrivateKey,
    ) -> str:
        """Decrypt an envelope (or its JSON text) with the owner's private key.

        Raises:
            DecryptionError: For a wrong key, tampering or malformed input alike
        """
        try:
            if not isinstance(envelope, EncryptedEnvelope):
                envelope = EncryptedEnvelope.from_json(envelope)
            return await asyncio.to_thread(_decrypt_sync, envelope, own_private_key)
        except (InvalidTag, ValueError, TypeError, SchemaValidationError) as err:
            logger.warning("Message decryption failed")
            raise DecryptionError() from err

    # --- Recipient key cache ------------------------------------------------------
    def store_recipient_key(self, username: str, public_key_b64: str) -> None:
        """Import and cache a recipient's public key; last write wins."""
        self._recipient_keys[username] = self._key_manager.import_public_key(public_key_b64)

    def recipient_key(self, username: str) -> rsa.RSAPublicKey | None:
        return self._recipient_keys.get(username)

    async def encrypt_message(self, plaintext: str, recipient_username: str) -> EncryptedEnvelope:
        """Encrypt for a recipient whose key was cached via :meth:`store_recipient_key`."""
        public_key = self._recipient_keys.get(recipient_username)
        if public_key is None:
            raise CryptoError(f"No public key for {recipient_username}")
        return await self.encrypt_for(plaintext, public_key)

    async def decrypt_message(self, envelope: EncryptedEnvelope | str) -> str:
        """Decrypt with the key manager's active private key."""
        key_pair = self._key_manager.get_active_key_pair()
        if key_pair is None:
            raise CryptoError("No private key available")
        return await self.decrypt_with(envelope, key_pair.private_key)

    def clear(self) -> None:
        """Forget all cached recipient keys (logout path)."""
        self._recipient_keys.clear()
