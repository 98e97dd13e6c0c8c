# src/retro_messenger/schemas/messages.py
"""Message-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SendMessageRequest(BaseModel):
    """Schema for sending an (already encrypted) message."""

    to_username: str = Field(..., alias="toUsername")
    content: str = Field(..., description="EncryptedEnvelope JSON; opaque to the server")

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    """A ledger entry returned by the API."""

    message_id: str = Field(..., alias="messageId")
    from_user_id: str = Field(..., alias="fromUserId")
    to_username: str = Field(..., alias="toUsername")
    content: str
    status: str
    sent_at: datetime = Field(..., alias="sentAt")
    delivered_at: datetime | None = Field(None, alias="deliveredAt")
    read_at: datetime | None = Field(None, alias="readAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class SendMessageResponse(BaseModel):
    message: MessageResponse
    pushed: bool = Field(..., description="True if a live channel accepted the push")


class UnreadCountResponse(BaseModel):
    unread: int
