# src/retro_messenger/services/ledger.py
"""Message lifecycle tracking and per-user inbox/outbox indices."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from retro_messenger.core.errors import InvalidTransition, ValidationError
from retro_messenger.core.settings import settings
from retro_messenger.services.identity import IdentityDirectory
from retro_messenger.utils.time import utcnow

logger = logging.getLogger(__name__)


class MessageStatus(str, Enum):
    """Delivery states. Order of declaration is the only legal order."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ)


@dataclass
class Message:
    """One message as seen by the server; ``content`` is opaque ciphertext."""

    message_id: str
    from_user_id: str
    to_username: str
    content: str
    status: MessageStatus
    sent_at: datetime
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    to_user_id: str | None = None


class DeliveryLedger:
    """Sole owner of message status and timestamps.

    Transitions fail closed: ``sent -> delivered -> read`` must be followed in
    order. Repeating the current state is accepted as an idempotent
    acknowledgement.
    """

    def __init__(self, directory: IdentityDirectory | None = None) -> None:
        self._directory = directory
        self._messages: dict[str, Message] = {}
        self._inboxes: defaultdict[str, list[str]] = defaultdict(list)
        self._outboxes: defaultdict[str, list[str]] = defaultdict(list)

    def send(self, from_user_id: str, to_username: str, content: str) -> Message:
        """Record a new message in the ``sent`` state."""
        if not content:
            raise ValidationError("Message content is required")

        message = Message(
            message_id=str(uuid.uuid4()),
            from_user_id=from_user_id,
            to_username=to_username,
            content=content,
            status=MessageStatus.SENT,
            sent_at=utcnow(),
        )
        self._messages[message.message_id] = message
        self._outboxes[from_user_id].append(message.message_id)
        return message

    def deliver(self, message_id: str, to_user_id: str | None = None) -> Message | None:
        """Move a message to ``delivered`` and file it in the recipient's inbox.

        When ``to_user_id`` is omitted the recipient is resolved by username.
        Returns ``None`` if the message (or recipient) is unknown.
        """
        message = self._messages.get(message_id)
        if message is None:
            return None

        if to_user_id is None:
            to_user_id = self._resolve_recipient(message)
            if to_user_id is None:
                return None

        if not self._advance(message, MessageStatus.DELIVERED):
            return message

        message.delivered_at = utcnow()
        message.to_user_id = to_user_id
        self._inboxes[to_user_id].append(message_id)
        return message

    def mark_read(self, message_id: str) -> Message | None:
        """Move a delivered message to ``read``. Returns ``None`` if unknown."""
        message = self._messages.get(message_id)
        if message is None:
            return None

        if self._advance(message, MessageStatus.READ):
            message.read_at = utcnow()
        return message

    def _advance(self, message: Message, target: MessageStatus) -> bool:
        """Apply a transition; False means it was a repeat of the current state."""
        if message.status is target:
            return False
        if target.rank != message.status.rank + 1:
            raise InvalidTransition(message.message_id, message.status.value, target.value)
        message.status = target
        return True

    def _resolve_recipient(self, message: Message) -> str | None:
        if self._directory is None:
            return None
        account = self._directory.get_by_username(message.to_username)
        return account.user_id if account else None

    # --- Queries --------------------------------------------------------------------
    def get(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    def _collect(self, message_ids: list[str], limit: int | None) -> list[Message]:
        cap = settings.inbox_default_limit if limit is None else limit
        if cap <= 0:
            return []
        found = [self._messages.get(mid) for mid in message_ids[-cap:]]
        return [message for message in reversed(found) if message is not None]

    def inbox_for(self, user_id: str, limit: int | None = None) -> list[Message]:
        """Most recent delivered messages first, capped at ``limit``."""
        return self._collect(self._inboxes.get(user_id, []), limit)

    def sent_for(self, user_id: str, limit: int | None = None) -> list[Message]:
        """Most recent sent messages first, capped at ``limit``."""
        return self._collect(self._outboxes.get(user_id, []), limit)

    def pending_for(self, username: str) -> list[Message]:
        """Messages addressed to ``username`` that were never delivered, oldest first."""
        return [
            message for message in self._messages.values()
            if message.to_username == username and message.status is MessageStatus.SENT
        ]

    def unread_count_for(self, user_id: str) -> int:
        count = 0
        for message_id in self._inboxes.get(user_id, []):
            message = self._messages.get(message_id)
            if message is not None and message.status is not MessageStatus.READ:
                count += 1
        return count

    def clear_all(self) -> None:
        """Wipe all messages and indices."""
        self._messages.clear()
        self._inboxes.clear()
        self._outboxes.clear()
        logger.info("Delivery ledger cleared")

    reset = clear_all
