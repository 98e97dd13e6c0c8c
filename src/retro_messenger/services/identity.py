# src/retro_messenger/services/identity.py
"""Account registry, authentication and session issuance."""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from retro_messenger.core.errors import (
    InvalidCredentials,
    MissingPublicKey,
    UsernameTaken,
    ValidationError,
    WeakPassword,
)
from retro_messenger.core.settings import settings
from retro_messenger.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Account:
    """A registered user and the public half of their identity."""

    user_id: str
    username: str
    password_hash: str
    public_key: str
    wrapped_private_key: str | None = None
    online: bool = False
    last_seen_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Session:
    """An issued bearer token. A user may hold several at once."""

    token: str
    user_id: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


@dataclass(frozen=True)
class Registration:
    user_id: str
    session_token: str


@dataclass(frozen=True)
class LoginResult:
    user_id: str
    session_token: str
    public_key: str
    wrapped_private_key: str | None


def build_password_hasher() -> PasswordHasher:
    """Return an argon2id hasher configured from settings."""
    return PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
    )


class IdentityDirectory:
    """In-memory registry of accounts and session tokens.

    Not thread-safe: callers are expected to run on a single event loop.
    """

    def __init__(
        self,
        *,
        password_hasher: PasswordHasher | None = None,
        session_ttl_seconds: int | None = None,
        min_password_length: int | None = None,
    ) -> None:
        self._hasher = password_hasher or build_password_hasher()
        self._session_ttl = timedelta(
            seconds=session_ttl_seconds if session_ttl_seconds is not None
            else settings.session_ttl_seconds
        )
        self._min_password_length = (
            min_password_length if min_password_length is not None
            else settings.min_password_length
        )
        self._accounts: dict[str, Account] = {}
        self._username_index: dict[str, str] = {}
        self._sessions: dict[str, Session] = {}
        # Verified against on unknown usernames so both login failures do similar work.
        self._dummy_hash = self._hasher.hash(secrets.token_hex(16))

    # --- Registration and login -----------------------------------------------------
    def register(
        self,
        username: str,
        password: str,
        public_key: str | None,
        wrapped_private_key: str | None = None,
    ) -> Registration:
        """Create an account plus its first session.

        Raises:
            ValidationError: If the username is empty after trimming
            WeakPassword: If the password is shorter than the minimum length
            MissingPublicKey: If no public key was supplied
            UsernameTaken: If the trimmed username already exists
        """
        clean_username = (username or "").strip()
        if not clean_username:
            raise ValidationError("Username is required")
        if password is None or len(password) < self._min_password_length:
            raise WeakPassword(
                f"Password must be at least {self._min_password_length} characters"
            )
        if not public_key or not public_key.strip():
            raise MissingPublicKey("Public key is required")
        if clean_username in self._username_index:
            raise UsernameTaken(f"Username '{clean_username}' is already taken")

        account = Account(
            user_id=str(uuid.uuid4()),
            username=clean_username,
            password_hash=self._hasher.hash(password),
            public_key=public_key.strip(),
            wrapped_private_key=wrapped_private_key,
        )
        self._accounts[account.user_id] = account
        self._username_index[clean_username] = account.user_id

        session = self._issue_session(account.user_id)
        logger.info("Registered user %s", account.user_id)
        return Registration(user_id=account.user_id, session_token=session.token)

    def login(self, username: str, password: str) -> LoginResult:
        """Authenticate and issue a new session; earlier sessions stay valid.

        Raises:
            InvalidCredentials: On unknown username or wrong password
        """
        account = self.get_by_username((username or "").strip())
        stored_hash = account.password_hash if account else self._dummy_hash

        try:
            verified = self._hasher.verify(stored_hash, password or "")
        except (VerificationError, InvalidHashError):
            verified = False

        if account is None or not verified:
            raise InvalidCredentials()

        if self._hasher.check_needs_rehash(account.password_hash):
            account.password_hash = self._hasher.hash(password)

        session = self._issue_session(account.user_id)
        return LoginResult(
            user_id=account.user_id,
            session_token=session.token,
            public_key=account.public_key,
            wrapped_private_key=account.wrapped_private_key,
        )

    def _issue_session(self, user_id: str) -> Session:
        now = utcnow()
        session = Session(
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            created_at=now,
            expires_at=now + self._session_ttl,
        )
        self._sessions[session.token] = session
        return session

    # --- Sessions -------------------------------------------------------------------
    def resolve_session(self, token: str | None) -> Account | None:
        """Return the account owning ``token``; expired tokens are purged."""
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        if session.is_expired():
            self._sessions.pop(token, None)
            return None
        return self._accounts.get(session.user_id)

    def logout(self, token: str) -> bool:
        """Remove one session and mark its account offline."""
        session = self._sessions.pop(token, None)
        if session is None:
            return False
        self.set_presence(session.user_id, False)
        return True

    # --- Lookups and presence -------------------------------------------------------
    def get_by_id(self, user_id: str) -> Account | None:
        return self._accounts.get(user_id)

    def get_by_username(self, username: str) -> Account | None:
        user_id = self._username_index.get(username)
        if user_id is None:
            return None
        return self._accounts.get(user_id)

    def set_presence(self, user_id: str, online: bool) -> None:
        account = self._accounts.get(user_id)
        if account is None:
            return
        account.online = online
        account.last_seen_at = utcnow()

    def list_others(self, exclude_user_id: str) -> list[Account]:
        """Return every account except the caller, in registration order."""
        return [
            account for account in self._accounts.values()
            if account.user_id != exclude_user_id
        ]

    def store_wrapped_private_key(self, user_id: str, wrapped_private_key: str) -> Account | None:
        """Attach the client's wrapped private key; it can only be set once."""
        account = self._accounts.get(user_id)
        if account is None:
            return None
        if not wrapped_private_key:
            raise ValidationError("Wrapped private key is required")
        if account.wrapped_private_key is not None:
            raise ValidationError("Wrapped private key is already stored")
        account.wrapped_private_key = wrapped_private_key
        return account

    def reset(self) -> None:
        """Drop every account and session."""
        self._accounts.clear()
        self._username_index.clear()
        self._sessions.clear()
