# src/retro_messenger/api/v1/endpoints/auth.py
"""Registration, login and session endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from retro_messenger.api.v1.dependencies import CoreDep, CurrentAccountDep, SessionTokenDep
from retro_messenger.core.errors import InvalidCredentials, UsernameTaken, ValidationError
from retro_messenger.schemas.auth import (
    DirectoryEntry,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    StoreKeysRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegisterResponse)
async def register(payload: RegisterRequest, core: CoreDep) -> RegisterResponse:
    """Create an account with its published public key."""
    try:
        result = core.directory.register(
            payload.username,
            payload.password,
            payload.public_key,
            payload.wrapped_private_key,
        )
    except UsernameTaken as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return RegisterResponse(user_id=result.user_id, session_token=result.session_token)


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, core: CoreDep) -> LoginResponse:
    """Issue a new session and hand back the stored key material."""
    try:
        result = core.directory.login(payload.username, payload.password)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    return LoginResponse(
        user_id=result.user_id,
        session_token=result.session_token,
        public_key=result.public_key,
        wrapped_private_key=result.wrapped_private_key,
    )


@router.post("/logout")
async def logout(token: SessionTokenDep, core: CoreDep) -> dict[str, bool]:
    """Invalidate only the presented session token."""
    return {"success": core.directory.logout(token)}


@router.get("/session", response_model=SessionResponse)
async def get_session(account: CurrentAccountDep) -> SessionResponse:
    return SessionResponse(user_id=account.user_id, username=account.username, online=account.online)


@router.get("/users", response_model=list[DirectoryEntry])
async def list_users(account: CurrentAccountDep, core: CoreDep) -> list[DirectoryEntry]:
    """List every other account with its public key and presence."""
    return [
        DirectoryEntry(
            user_id=other.user_id,
            username=other.username,
            public_key=other.public_key,
            online=other.online,
            last_seen_at=other.last_seen_at,
        )
        for other in core.directory.list_others(account.user_id)
    ]


@router.put("/keys")
async def store_keys(
    payload: StoreKeysRequest,
    account: CurrentAccountDep,
    core: CoreDep,
) -> dict[str, str]:
    """Store the client's password-wrapped private key (once)."""
    try:
        core.directory.store_wrapped_private_key(account.user_id, payload.wrapped_private_key)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"status": "stored"}
