# src/retro_messenger/core/container.py
"""Composition root owning the server-side registries."""

from __future__ import annotations

from dataclasses import dataclass

from argon2 import PasswordHasher

from retro_messenger.services.identity import IdentityDirectory
from retro_messenger.services.ledger import DeliveryLedger
from retro_messenger.services.presence import PresenceTransport


@dataclass
class MessengerCore:
    """The three in-memory registries, wired to share one identity directory."""

    directory: IdentityDirectory
    ledger: DeliveryLedger
    presence: PresenceTransport

    @classmethod
    def build(cls, *, password_hasher: PasswordHasher | None = None) -> MessengerCore:
        directory = IdentityDirectory(password_hasher=password_hasher)
        return cls(
            directory=directory,
            ledger=DeliveryLedger(directory),
            presence=PresenceTransport(directory),
        )

    def reset(self) -> None:
        """Close all channels and wipe every registry."""
        self.presence.reset()
        self.ledger.clear_all()
        self.directory.reset()
