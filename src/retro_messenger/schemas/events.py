# src/retro_messenger/schemas/events.py
"""Push channel events.

Events are a tagged union on ``type`` so receivers can match exhaustively
instead of probing an open dictionary.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ConnectedEvent(_WireModel):
    """Acknowledgement sent as the first frame of every push stream."""

    type: Literal["connected"] = "connected"
    user_id: str = Field(..., alias="userId")
    username: str


class MessagePayload(_WireModel):
    """Routing metadata plus opaque (encrypted) content of a pushed message."""

    message_id: str = Field(..., alias="messageId")
    sender: str = Field(..., alias="from", description="Sender username")
    from_user_id: str = Field(..., alias="fromUserId")
    content: str
    timestamp: str
    status: Literal["sent", "delivered", "read"]


class NewMessageEvent(_WireModel):
    """A message pushed live to the recipient's channels."""

    type: Literal["new_message"] = "new_message"
    message: MessagePayload


PushEvent = Annotated[ConnectedEvent | NewMessageEvent, Field(discriminator="type")]

_push_event_adapter: TypeAdapter[ConnectedEvent | NewMessageEvent] = TypeAdapter(PushEvent)


def parse_event(raw: str | bytes) -> ConnectedEvent | NewMessageEvent:
    """Validate one JSON frame payload into its event variant.

    Raises:
        pydantic.ValidationError: If the JSON is malformed, the ``type`` is
            unknown or a required field is missing
    """
    return _push_event_adapter.validate_json(raw)


def format_frame(event: ConnectedEvent | NewMessageEvent) -> str:
    """Render an event as a single Server-Sent Events frame."""
    return f"data: {event.to_json()}\n\n"
