# src/retro_messenger/schemas/auth.py
"""Authentication-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_CamelModel):
    """Schema for creating an account."""

    username: str = Field(..., description="Unique, case-sensitive username")
    password: str = Field(..., description="Account password")
    public_key: str | None = Field(
        None, alias="publicKey", description="Base64 SPKI RSA-OAEP public key"
    )
    wrapped_private_key: str | None = Field(
        None,
        alias="wrappedPrivateKey",
        description="Base64 password-wrapped private key (opaque to the server)",
    )


class LoginRequest(_CamelModel):
    username: str
    password: str


class StoreKeysRequest(_CamelModel):
    wrapped_private_key: str = Field(..., alias="wrappedPrivateKey")


class RegisterResponse(_CamelModel):
    user_id: str = Field(..., alias="userId")
    session_token: str = Field(..., alias="sessionToken")


class LoginResponse(_CamelModel):
    user_id: str = Field(..., alias="userId")
    session_token: str = Field(..., alias="sessionToken")
    public_key: str = Field(..., alias="publicKey")
    wrapped_private_key: str | None = Field(None, alias="wrappedPrivateKey")


class SessionResponse(_CamelModel):
    user_id: str = Field(..., alias="userId")
    username: str
    online: bool


class DirectoryEntry(_CamelModel):
    """Another user as seen for recipient and key discovery."""

    user_id: str = Field(..., alias="userId")
    username: str
    public_key: str = Field(..., alias="publicKey")
    online: bool
    last_seen_at: datetime | None = Field(None, alias="lastSeenAt")
