"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract the
caller's identity and to build the services with their collaborators.

Claim extraction never raises: `get_principal_optional` returns a
Principal or None. Only `get_current_principal` turns "None" into a 401,
so it's the route (by choosing which dependency it asks for) that
decides whether anonymous access is allowed.

Row-secured reads use `get_scoped_db`: a session whose connections are
stamped with the caller's account id before any query runs.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from wayfarer.auth.clock import Clock, SystemClock
from wayfarer.auth.jwt import TokenIssuer, get_token_issuer
from wayfarer.auth.password import PasswordHasher, get_password_hasher
from wayfarer.auth.principal import Principal
from wayfarer.config import settings
from wayfarer.db.engine import get_db, scoped_session
from wayfarer.services.auth_service import AuthService
from wayfarer.services.email import EmailDispatcher, get_email_dispatcher
from wayfarer.services.user_service import UserService

_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


def get_principal_optional(
    authorization: Optional[str] = Header(None),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Optional[Principal]:
    """Bearer token → Principal, or None (missing, malformed, expired)."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return issuer.decode_access_token(authorization[7:].strip())


def get_current_principal(
    principal: Optional[Principal] = Depends(get_principal_optional),
) -> Principal:
    """Principal (required — 401 if no valid access token)."""
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


async def get_scoped_db(
    principal: Principal = Depends(get_current_principal),
) -> AsyncIterator[AsyncSession]:
    """Session bound to the caller's account id (for row-secured tables)."""
    async with scoped_session(principal) as session:
        yield session


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    issuer: TokenIssuer = Depends(get_token_issuer),
    email: EmailDispatcher = Depends(get_email_dispatcher),
    clock: Clock = Depends(get_clock),
) -> AuthService:
    return AuthService(
        db=db,
        hasher=hasher,
        issuer=issuer,
        email=email,
        settings=settings,
        clock=clock,
    )


def get_user_service(
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> UserService:
    return UserService(db, auth)
