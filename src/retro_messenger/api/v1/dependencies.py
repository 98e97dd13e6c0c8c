"""Shared API dependencies for authentication and core access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from retro_messenger.core.container import MessengerCore
from retro_messenger.services.identity import Account

# HTTP Bearer scheme carrying the session token
bearer_scheme = HTTPBearer()


def get_core(request: Request) -> MessengerCore:
    """Return the registries owned by the running application."""
    return request.app.state.core


CoreDep = Annotated[MessengerCore, Depends(get_core)]


def get_session_token(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    return credentials.credentials


SessionTokenDep = Annotated[str, Depends(get_session_token)]


def get_current_account(token: SessionTokenDep, core: CoreDep) -> Account:
    """Resolve the bearer session token to its account.

    Raises:
        HTTPException: If the token is unknown or expired
    """
    account = core.directory.resolve_session(token)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session",
        )
    return account


CurrentAccountDep = Annotated[Account, Depends(get_current_account)]
