# src/retro_messenger/services/__init__.py
"""Business logic services for the messaging core."""

from .cipher import MessageCipher
from .identity import IdentityDirectory
from .keys import KeyManager, KeyPair
from .ledger import DeliveryLedger, Message, MessageStatus
from .presence import PresenceTransport, QueueChannel

__all__ = [
    "KeyManager",
    "KeyPair",
    "MessageCipher",
    "IdentityDirectory",
    "DeliveryLedger",
    "Message",
    "MessageStatus",
    "PresenceTransport",
    "QueueChannel",
]
