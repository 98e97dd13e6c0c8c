"""Pydantic schemas for the wire formats and HTTP payloads."""

from .envelope import EncryptedEnvelope
from .events import ConnectedEvent, MessagePayload, NewMessageEvent, PushEvent, parse_event

__all__ = [
    "EncryptedEnvelope",
    "ConnectedEvent",
    "MessagePayload",
    "NewMessageEvent",
    "PushEvent",
    "parse_event",
]
