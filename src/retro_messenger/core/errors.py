"""Exception taxonomy shared by the messaging core.

Every failure the core raises derives from :class:`MessengerError`. The four
families mirror how a caller is expected to recover:

- :class:`ValidationError` - bad input shape, surfaced to the user as-is.
- :class:`AuthError` - bad credentials or session, re-prompt.
- :class:`CryptoError` - key or ciphertext problems. Messages never say *why*
  a decryption failed.
- :class:`TransportError` - broken push channel, recovered by reconnecting or
  by polling the ledger.
"""

from __future__ import annotations


class MessengerError(RuntimeError):
    """Base exception for all messaging core failures."""


class ValidationError(MessengerError):
    """Raised when input is missing or has the wrong shape."""


class WeakPassword(ValidationError):
    """Raised when a password is shorter than the configured minimum."""


class MissingPublicKey(ValidationError):
    """Raised when registration is attempted without a public key."""


class UsernameTaken(ValidationError):
    """Raised when the trimmed username is already registered."""


class InvalidTransition(ValidationError):
    """Raised when a message status change skips or reverses a state."""

    def __init__(self, message_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Message {message_id} cannot move from '{current}' to '{requested}'"
        )
        self.message_id = message_id
        self.current = current
        self.requested = requested


class AuthError(MessengerError):
    """Raised for authentication and session failures."""


class InvalidCredentials(AuthError):
    """Raised on unknown username or password mismatch (same shape for both)."""

    def __init__(self) -> None:
        super().__init__("Invalid username or password")


class CryptoError(MessengerError):
    """Base class for key management and cipher failures."""


class KeyGenerationError(CryptoError):
    """Raised when the crypto provider cannot produce a key pair."""


class InvalidKeyFormat(CryptoError):
    """Raised when a serialized public key cannot be imported."""


class InvalidPassword(CryptoError):
    """Raised when a wrapped private key cannot be unwrapped."""

    def __init__(self) -> None:
        super().__init__("Invalid password or corrupted key")


class DecryptionError(CryptoError):
    """Raised for any envelope decryption failure.

    Wrong key, tampering and malformed input are deliberately indistinguishable.
    """

    def __init__(self) -> None:
        super().__init__("Decryption failed")


class TransportError(MessengerError):
    """Raised when a push channel cannot be written or the stream drops."""
