# src/retro_messenger/api/v1/endpoints/messages.py
"""Message send/acknowledge endpoints and the live push stream."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from retro_messenger.api.v1.dependencies import CoreDep, CurrentAccountDep
from retro_messenger.core.container import MessengerCore
from retro_messenger.core.errors import InvalidTransition, ValidationError
from retro_messenger.core.settings import settings
from retro_messenger.schemas.events import (
    ConnectedEvent,
    MessagePayload,
    NewMessageEvent,
    format_frame,
)
from retro_messenger.schemas.messages import (
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
    UnreadCountResponse,
)
from retro_messenger.services.ledger import Message
from retro_messenger.services.presence import QueueChannel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])

LimitQuery = Annotated[int | None, Query(ge=1, le=settings.inbox_max_limit)]


def _serialize_message(message: Message) -> MessageResponse:
    return MessageResponse(
        message_id=message.message_id,
        from_user_id=message.from_user_id,
        to_username=message.to_username,
        content=message.content,
        status=message.status.value,
        sent_at=message.sent_at,
        delivered_at=message.delivered_at,
        read_at=message.read_at,
    )


def _get_addressed_message(core: MessengerCore, message_id: str, username: str) -> Message:
    message = core.ledger.get(message_id)
    if message is None or message.to_username != username:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return message


@router.post("/send", status_code=status.HTTP_201_CREATED, response_model=SendMessageResponse)
async def send_message(
    payload: SendMessageRequest,
    account: CurrentAccountDep,
    core: CoreDep,
) -> SendMessageResponse:
    """Record an encrypted message and push it to the recipient if online."""
    recipient = core.directory.get_by_username(payload.to_username.strip())
    if recipient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipient not found",
        )

    try:
        message = core.ledger.send(account.user_id, recipient.username, payload.content)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    event = NewMessageEvent(
        message=MessagePayload(
            message_id=message.message_id,
            sender=account.username,
            from_user_id=account.user_id,
            content=message.content,
            timestamp=message.sent_at.isoformat(),
            status=message.status.value,
        )
    )
    pushed = core.presence.push_to(recipient.user_id, event)
    return SendMessageResponse(message=_serialize_message(message), pushed=pushed)


@router.post("/{message_id}/delivered", response_model=MessageResponse)
async def mark_delivered(
    message_id: str,
    account: CurrentAccountDep,
    core: CoreDep,
) -> MessageResponse:
    """Recipient acknowledgement that a message reached its client."""
    _get_addressed_message(core, message_id, account.username)
    try:
        message = core.ledger.deliver(message_id, account.user_id)
    except InvalidTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return _serialize_message(message)


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_read(
    message_id: str,
    account: CurrentAccountDep,
    core: CoreDep,
) -> MessageResponse:
    """Recipient acknowledgement that a message was displayed."""
    _get_addressed_message(core, message_id, account.username)
    try:
        message = core.ledger.mark_read(message_id)
    except InvalidTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return _serialize_message(message)


@router.get("/inbox", response_model=list[MessageResponse])
async def get_inbox(
    account: CurrentAccountDep,
    core: CoreDep,
    limit: LimitQuery = None,
) -> list[MessageResponse]:
    """Delivered messages for the current user, most recent first."""
    return [_serialize_message(m) for m in core.ledger.inbox_for(account.user_id, limit)]


@router.get("/pending", response_model=list[MessageResponse])
async def get_pending(account: CurrentAccountDep, core: CoreDep) -> list[MessageResponse]:
    """Messages addressed to the current user that still await delivery."""
    return [_serialize_message(m) for m in core.ledger.pending_for(account.username)]


@router.get("/sent", response_model=list[MessageResponse])
async def get_sent(
    account: CurrentAccountDep,
    core: CoreDep,
    limit: LimitQuery = None,
) -> list[MessageResponse]:
    return [_serialize_message(m) for m in core.ledger.sent_for(account.user_id, limit)]


@router.get("/unread", response_model=UnreadCountResponse)
async def get_unread_count(account: CurrentAccountDep, core: CoreDep) -> UnreadCountResponse:
    return UnreadCountResponse(unread=core.ledger.unread_count_for(account.user_id))


@router.get("/stream")
async def stream(request: Request, account: CurrentAccountDep, core: CoreDep) -> StreamingResponse:
    """Server-Sent Events stream of push events for the current user."""
    channel = QueueChannel(maxsize=settings.stream_queue_maxsize)
    channel.write(format_frame(ConnectedEvent(user_id=account.user_id, username=account.username)))
    core.presence.attach(account.user_id, channel)

    async def _frames() -> AsyncIterator[str]:
        try:
            async for frame in channel.frames(settings.stream_keepalive_seconds):
                if await request.is_disconnected():
                    break
                yield frame
        finally:
            channel.close()
            core.presence.detach(account.user_id, channel)

    return StreamingResponse(
        _frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
