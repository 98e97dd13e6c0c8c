# src/retro_messenger/schemas/envelope.py
"""Wire format of one end-to-end encrypted message."""

from pydantic import BaseModel, ConfigDict, Field


class EncryptedEnvelope(BaseModel):
    """Hybrid-encrypted payload for exactly one (message, recipient) pair."""

    encrypted_key: str = Field(
        ...,
        alias="encryptedKey",
        description="Base64 RSA-OAEP ciphertext of the one-time AES-256 key",
    )
    iv: str = Field(..., description="Base64 12-byte AES-GCM nonce")
    encrypted_message: str = Field(
        ...,
        alias="encryptedMessage",
        description="Base64 AES-GCM ciphertext (with tag) of the UTF-8 plaintext",
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        """Serialize with the camelCase keys used on the wire."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "EncryptedEnvelope":
        return cls.model_validate_json(raw)
