"""Credential store — persistence for accounts and their secrets.

Learn: All reads and writes of password hashes, refresh-token digests
and reset-token digests go through here. Raw tokens never reach the
database: they are SHA-256 digested first (the same way API keys are
stored), so a leaked table can't be replayed.

The one operation that must be race-safe is the refresh-token swap.
`replace_refresh_token` is a single conditional UPDATE:

    UPDATE credentials SET refresh_token_hash = :new
    WHERE account_id = :id AND refresh_token_hash = :presented
      AND refresh_token_expires_at > :now

Two concurrent refreshes with the same token both run it; the database
serializes them on the row and only the first still matches.
"""

import hashlib
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wayfarer.db.models import Account, Credential, Role


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class CredentialStore:
    """Account + credential lookups and conditional token writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Accounts ───────────────────────────────────────

    async def email_exists(self, email: str) -> bool:
        result = await self.db.execute(select(Account.id).where(Account.email == email))
        return result.first() is not None

    async def get_by_email(self, email: str) -> Optional[Account]:
        return await self._first(select(Account).where(Account.email == email))

    async def get_by_id(self, account_id: uuid.UUID) -> Optional[Account]:
        return await self._first(select(Account).where(Account.id == account_id))

    async def get_credential(self, account_id: uuid.UUID) -> Optional[Credential]:
        return await self._first(
            select(Credential).where(Credential.account_id == account_id)
        )

    async def get_role(self, name: str) -> Optional[Role]:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalars().first()

    async def create_account(
        self,
        user_name: str,
        email: str,
        password_hash: bytes,
        password_salt: bytes,
        roles: list[Role],
        created_at: datetime,
    ) -> Account:
        account = Account(
            user_name=user_name,
            email=email,
            created_at=created_at,
            roles=roles,
        )
        account.credential = Credential(
            password_hash=password_hash,
            password_salt=password_salt,
        )
        self.db.add(account)
        await self.db.flush()
        return account

    # ─── Passwords ──────────────────────────────────────

    async def set_password(
        self, account_id: uuid.UUID, password_hash: bytes, password_salt: bytes
    ) -> None:
        await self.db.execute(
            update(Credential)
            .where(Credential.account_id == account_id)
            .values(password_hash=password_hash, password_salt=password_salt)
            .execution_options(synchronize_session=False)
        )

    # ─── Refresh tokens ─────────────────────────────────

    async def store_refresh_token(
        self, account_id: uuid.UUID, token: str, expires_at: datetime
    ) -> None:
        """Unconditional overwrite (login). Supersedes any previous token."""
        await self.db.execute(
            update(Credential)
            .where(Credential.account_id == account_id)
            .values(
                refresh_token_hash=token_digest(token),
                refresh_token_expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )

    async def replace_refresh_token(
        self,
        account_id: uuid.UUID,
        presented: str,
        new_token: str,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Compare-and-swap. True only if `presented` was the live token."""
        result = await self.db.execute(
            update(Credential)
            .where(
                Credential.account_id == account_id,
                Credential.refresh_token_hash == token_digest(presented),
                Credential.refresh_token_expires_at > now,
            )
            .values(
                refresh_token_hash=token_digest(new_token),
                refresh_token_expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def revoke_refresh_token(
        self, account_id: uuid.UUID, presented: Optional[str] = None
    ) -> bool:
        """Clear the stored refresh token.

        With `presented`, only clears if it is the stored one (logout).
        Without, clears unconditionally (reuse detected, password reset).
        Returns whether a row changed.
        """
        stmt = update(Credential).where(Credential.account_id == account_id)
        if presented is not None:
            stmt = stmt.where(Credential.refresh_token_hash == token_digest(presented))
        else:
            stmt = stmt.where(Credential.refresh_token_hash.is_not(None))
        result = await self.db.execute(
            stmt.values(refresh_token_hash=None, refresh_token_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ─── Reset tokens ───────────────────────────────────

    async def store_reset_token(
        self, account_id: uuid.UUID, token: str, expires_at: datetime
    ) -> None:
        await self.db.execute(
            update(Credential)
            .where(Credential.account_id == account_id)
            .values(reset_token_hash=token_digest(token), reset_token_expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )

    async def get_by_reset_token(self, token: str) -> Optional[Credential]:
        return await self._first(
            select(Credential).where(Credential.reset_token_hash == token_digest(token))
        )

    async def consume_reset_token(
        self,
        account_id: uuid.UUID,
        token: str,
        password_hash: bytes,
        password_salt: bytes,
    ) -> bool:
        """Set the new password and clear the reset token, only if still held."""
        result = await self.db.execute(
            update(Credential)
            .where(
                Credential.account_id == account_id,
                Credential.reset_token_hash == token_digest(token),
            )
            .values(
                password_hash=password_hash,
                password_salt=password_salt,
                reset_token_hash=None,
                reset_token_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def clear_reset_token(self, account_id: uuid.UUID) -> None:
        await self.db.execute(
            update(Credential)
            .where(Credential.account_id == account_id)
            .values(reset_token_hash=None, reset_token_expires_at=None)
            .execution_options(synchronize_session=False)
        )

    async def _first(self, stmt):
        # Token/password writes are bulk UPDATEs that bypass the identity
        # map, so reads must overwrite whatever the session already holds.
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()
