"""Auth service — register, login, token rotation, password flows.

Learn: This is the orchestrator. It owns no state of its own; every flow
is a short script over four collaborators:

    PasswordHasher   hash / verify (offloaded to a worker thread)
    TokenIssuer      mint / validate JWTs
    CredentialStore  the only thing that remembers anything
    EmailDispatcher  hands reset links to whatever sends mail

Each flow returns its success value or a `Failure`. Nothing here raises
for a business-rule miss (wrong password, stale token), so the routes
never need try/except for those. Exceptions that do escape (database
down, role table empty) are infrastructure problems and end up as 500.

Refresh-token lifetime:

    Issued ──rotate──▶ Rotated
      │  ──logout──▶ Revoked
      │  ──TTL────▶ Expired

A token that has left Issued never comes back. Presenting one anyway
(signature still valid, but not the stored value) looks like a stolen
token being replayed, so the stored token is cleared as well and the
account has to log in again.
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wayfarer.auth.clock import Clock, SystemClock, as_utc
from wayfarer.auth.jwt import TokenIssuer
from wayfarer.auth.password import HASH_BYTES, SALT_BYTES, PasswordHasher
from wayfarer.auth.principal import Principal
from wayfarer.auth.results import ErrorCode, Failure, Outcome
from wayfarer.config import Settings
from wayfarer.db.models import Account
from wayfarer.events.store import EventStore, account_stream
from wayfarer.events.types import (
    ACCOUNT_REGISTERED,
    LOGGED_OUT,
    LOGIN_SUCCEEDED,
    PASSWORD_CHANGED,
    PASSWORD_RESET,
    PASSWORD_RESET_REQUESTED,
    REFRESH_TOKEN_REUSE_DETECTED,
    TOKEN_REFRESHED,
)
from wayfarer.services.credential_store import CredentialStore
from wayfarer.services.email import EmailDispatcher, build_reset_link

logger = structlog.get_logger()

# Verified against when there is no stored credential, so a login for an
# unknown email costs one KDF run like any other.
_UNMATCHED_SALT = secrets.token_bytes(SALT_BYTES)
_UNMATCHED_HASH = bytes(HASH_BYTES)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
FORGOT_PASSWORD_MESSAGE = (
    "If an account with this email exists, a password reset link has been sent."
)
SAME_PASSWORD_MESSAGE = "New password cannot be the same as the current password"
LOGOUT_MESSAGE = "Logged out successfully"
RESET_MESSAGE = "Password reset successfully."
CHANGE_MESSAGE = "Password changed successfully."

# 64 random bytes, URL-safe (86 chars). Only its digest is stored.
RESET_TOKEN_BYTES = 64


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ─── Result values ──────────────────────────────────────


@dataclass(frozen=True)
class AccountProfile:
    """Public view of an account — safe to return to the client."""

    id: uuid.UUID
    user_name: str
    email: str
    created_at: datetime
    roles: tuple[str, ...]

    @classmethod
    def from_account(cls, account: Account) -> "AccountProfile":
        return cls(
            id=account.id,
            user_name=account.user_name,
            email=account.email,
            created_at=as_utc(account.created_at),
            roles=account.role_names,
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    expires_in: int
    user: AccountProfile


class AuthService:
    """Business logic for authentication and password management."""

    def __init__(
        self,
        db: AsyncSession,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        email: EmailDispatcher,
        settings: Settings,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.store = CredentialStore(db)
        self.events = EventStore(db)
        self.hasher = hasher
        self.issuer = issuer
        self.email = email
        self.settings = settings
        self.clock = clock or SystemClock()

    # ─── Register ───────────────────────────────────────

    async def register(
        self, user_name: str, email: str, password: str
    ) -> Outcome[AccountProfile]:
        """Create an account with the default role. Does not log in."""
        email = normalize_email(email)
        user_name = user_name.strip()

        if await self.store.email_exists(email):
            return Failure(
                ErrorCode.EMAIL_ALREADY_EXISTS,
                f"Email '{email}' is already registered.",
            )

        role = await self.store.get_role(self.settings.default_role)
        if role is None:
            # Seeded by the initial migration; missing means a broken deploy.
            raise RuntimeError(f"Default role {self.settings.default_role!r} not found")

        password_hash, salt = await self.hasher.hash_async(password)
        try:
            account = await self.store.create_account(
                user_name=user_name,
                email=email,
                password_hash=password_hash,
                password_salt=salt,
                roles=[role],
                created_at=self.clock.now(),
            )
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email.
            await self.db.rollback()
            return Failure(
                ErrorCode.EMAIL_ALREADY_EXISTS,
                f"Email '{email}' is already registered.",
            )

        await self.events.append(
            stream_id=account_stream(account.id),
            event_type=ACCOUNT_REGISTERED,
            data={"user_name": user_name, "email": email, "roles": [role.name]},
        )
        await self.db.commit()

        logger.info("auth.registered", account_id=str(account.id))
        return AccountProfile.from_account(account)

    # ─── Login ──────────────────────────────────────────

    async def login(self, email: str, password: str) -> Outcome[LoginResult]:
        """Email + password → access/refresh pair.

        Learn: "no such account" and "wrong password" return the exact
        same Failure after the same amount of hashing work, so neither the
        response nor its timing tells which emails are registered. Any
        previously issued refresh token is overwritten, which logs out the
        other session.
        """
        email = normalize_email(email)
        account = await self.store.get_by_email(email)
        credential = await self.store.get_credential(account.id) if account else None
        if credential is None:
            await self.hasher.verify_async(password, _UNMATCHED_HASH, _UNMATCHED_SALT)
            logger.info("auth.login_failed", email=email, reason="unknown_account")
            return Failure(ErrorCode.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        if not await self.hasher.verify_async(
            password, credential.password_hash, credential.password_salt
        ):
            logger.info("auth.login_failed", email=email, reason="bad_password")
            return Failure(ErrorCode.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)

        principal = Principal(account_id=account.id, roles=account.role_names)
        access_token = self.issuer.issue_access_token(principal)
        refresh_token = self.issuer.issue_refresh_token(account.id)
        await self.store.store_refresh_token(
            account.id, refresh_token, self._refresh_expiry()
        )

        await self.events.append(
            stream_id=account_stream(account.id),
            event_type=LOGIN_SUCCEEDED,
            data={},
        )
        await self.db.commit()

        logger.info("auth.login_succeeded", account_id=str(account.id))
        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.issuer.access_token_expires_in,
            user=AccountProfile.from_account(account),
        )

    # ─── Refresh ────────────────────────────────────────

    async def refresh(self, token: str) -> Outcome[TokenPair]:
        """Rotate a refresh token.

        Learn: The swap is one conditional UPDATE in the credential store.
        If two requests race with the same token, the database lets one
        through and the other's WHERE no longer matches. The loser falls
        into the reuse branch below, same as a replayed old token.
        """
        account_id = self.issuer.validate_refresh_token(token)
        if account_id is None:
            return Failure(ErrorCode.INVALID_REFRESH_TOKEN, "Invalid refresh token")

        new_refresh_token = self.issuer.issue_refresh_token(account_id)
        swapped = await self.store.replace_refresh_token(
            account_id,
            presented=token,
            new_token=new_refresh_token,
            expires_at=self._refresh_expiry(),
            now=self.clock.now(),
        )

        if not swapped:
            revoked = await self.store.revoke_refresh_token(account_id)
            if revoked:
                logger.warning("auth.refresh_token_reuse", account_id=str(account_id))
                await self.events.append(
                    stream_id=account_stream(account_id),
                    event_type=REFRESH_TOKEN_REUSE_DETECTED,
                    data={},
                )
            await self.db.commit()
            return Failure(
                ErrorCode.INVALID_REFRESH_TOKEN, "Invalid or expired refresh token"
            )

        account = await self.store.get_by_id(account_id)
        if account is None:
            await self.db.rollback()
            return Failure(ErrorCode.INVALID_REFRESH_TOKEN, "Invalid refresh token")

        access_token = self.issuer.issue_access_token(
            Principal(account_id=account.id, roles=account.role_names)
        )
        await self.events.append(
            stream_id=account_stream(account_id),
            event_type=TOKEN_REFRESHED,
            data={},
        )
        await self.db.commit()

        return TokenPair(
            access_token=access_token,
            refresh_token=new_refresh_token,
            expires_in=self.issuer.access_token_expires_in,
        )

    # ─── Logout ─────────────────────────────────────────

    async def logout(self, token: str) -> str:
        """Revoke the presented refresh token. Always succeeds.

        An invalid, expired or already-revoked token just means there is
        nothing left to log out of.
        """
        account_id = self.issuer.validate_refresh_token(token)
        if account_id is None:
            return LOGOUT_MESSAGE

        if await self.store.revoke_refresh_token(account_id, presented=token):
            await self.events.append(
                stream_id=account_stream(account_id),
                event_type=LOGGED_OUT,
                data={},
            )
            await self.db.commit()
            logger.info("auth.logged_out", account_id=str(account_id))
        return LOGOUT_MESSAGE

    # ─── Forgot password ────────────────────────────────

    async def forgot_password(self, email: str) -> str:
        """Store a fresh reset token and hand the link to the mailer.

        Same answer whether or not the account exists. A mailer failure
        is logged, not reported: the token is already stored and the
        user can simply ask again.
        """
        email = normalize_email(email)
        account = await self.store.get_by_email(email)
        if account is None:
            logger.info("auth.reset_requested_unknown", email=email)
            return FORGOT_PASSWORD_MESSAGE

        token = secrets.token_urlsafe(RESET_TOKEN_BYTES)
        expires_at = self.clock.now() + timedelta(
            minutes=self.settings.password_reset_expire_minutes
        )
        await self.store.store_reset_token(account.id, token, expires_at)
        await self.events.append(
            stream_id=account_stream(account.id),
            event_type=PASSWORD_RESET_REQUESTED,
            data={"expires_at": expires_at.isoformat()},
        )
        await self.db.commit()

        try:
            await self.email.send_password_reset(account.email, build_reset_link(token))
        except Exception as e:
            logger.error(
                "auth.reset_email_failed",
                account_id=str(account.id),
                error=str(e),
            )
        return FORGOT_PASSWORD_MESSAGE

    # ─── Reset password ─────────────────────────────────

    async def reset_password(self, token: str, new_password: str) -> Outcome[str]:
        """Consume a reset token and set a new password.

        Learn: The token is single-use. The final write only succeeds if
        the credential still holds this token, so two submissions of the
        same link can't both change the password. A successful reset
        also revokes the refresh token: whoever had the old password
        loses their session.
        """
        credential = await self.store.get_by_reset_token(token)
        if credential is None:
            return Failure(ErrorCode.TOKEN_NOT_FOUND, "Reset token not found")

        account_id = credential.account_id
        expires_at = credential.reset_token_expires_at
        if expires_at is None or as_utc(expires_at) <= self.clock.now():
            await self.store.clear_reset_token(account_id)
            await self.db.commit()
            return Failure(ErrorCode.TOKEN_EXPIRED, "Reset token has expired")

        if await self.hasher.verify_async(
            new_password, credential.password_hash, credential.password_salt
        ):
            return Failure(ErrorCode.SAME_PASSWORD, SAME_PASSWORD_MESSAGE)

        password_hash, salt = await self.hasher.hash_async(new_password)
        if not await self.store.consume_reset_token(account_id, token, password_hash, salt):
            await self.db.rollback()
            return Failure(ErrorCode.TOKEN_NOT_FOUND, "Reset token not found")

        await self.store.revoke_refresh_token(account_id)
        await self.events.append(
            stream_id=account_stream(account_id),
            event_type=PASSWORD_RESET,
            data={},
        )
        await self.db.commit()

        logger.info("auth.password_reset", account_id=str(account_id))
        return RESET_MESSAGE

    # ─── Change password ────────────────────────────────

    async def change_password(
        self, account_id: uuid.UUID, current_password: str, new_password: str
    ) -> Outcome[str]:
        credential = await self.store.get_credential(account_id)
        if credential is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found")

        if not await self.hasher.verify_async(
            current_password, credential.password_hash, credential.password_salt
        ):
            return Failure(
                ErrorCode.CURRENT_PASSWORD_MISMATCH, "Current password is incorrect"
            )

        if secrets.compare_digest(new_password.encode(), current_password.encode()):
            return Failure(ErrorCode.SAME_PASSWORD, SAME_PASSWORD_MESSAGE)

        password_hash, salt = await self.hasher.hash_async(new_password)
        await self.store.set_password(account_id, password_hash, salt)
        await self.events.append(
            stream_id=account_stream(account_id),
            event_type=PASSWORD_CHANGED,
            data={},
        )
        await self.db.commit()

        logger.info("auth.password_changed", account_id=str(account_id))
        return CHANGE_MESSAGE

    # ─── Helpers ────────────────────────────────────────

    def _refresh_expiry(self) -> datetime:
        return self.clock.now() + timedelta(days=self.issuer.refresh_token_expires_in_days)
