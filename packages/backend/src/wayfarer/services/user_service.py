"""User service — the authenticated account's own profile.

Learn: Profile reads and edits for the caller. Password changes are
routed through AuthService.change_password so the verification rules
live in one place.
"""

import uuid
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from wayfarer.auth.results import ErrorCode, Failure, Outcome, is_failure
from wayfarer.db.models import Account
from wayfarer.events.store import EventStore, account_stream
from wayfarer.events.types import ACCOUNT_UPDATED
from wayfarer.services.auth_service import AccountProfile, AuthService
from wayfarer.services.credential_store import CredentialStore


class UserService:
    """Business logic for profile management."""

    def __init__(self, db: AsyncSession, auth: AuthService):
        self.db = db
        self.auth = auth
        self.store = CredentialStore(db)
        self.events = EventStore(db)

    async def get_profile(self, account_id: uuid.UUID) -> Outcome[AccountProfile]:
        account = await self.store.get_by_id(account_id)
        if account is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found")
        return AccountProfile.from_account(account)

    async def update_profile(
        self,
        account_id: uuid.UUID,
        user_name: Optional[str] = None,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
    ) -> Outcome[AccountProfile]:
        """Rename and/or change password. Password checks run first.

        If the password part fails, nothing is changed.
        """
        if await self.store.get_by_id(account_id) is None:
            return Failure(ErrorCode.USER_NOT_FOUND, "User not found")

        if new_password is not None:
            if not current_password:
                return Failure(
                    ErrorCode.CURRENT_PASSWORD_MISMATCH,
                    "Current password is required to change password",
                )
            changed = await self.auth.change_password(
                account_id, current_password, new_password
            )
            if is_failure(changed):
                return changed

        if user_name is not None:
            user_name = user_name.strip()
            await self.db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(user_name=user_name)
                .execution_options(synchronize_session=False)
            )
            await self.events.append(
                stream_id=account_stream(account_id),
                event_type=ACCOUNT_UPDATED,
                data={"user_name": user_name},
            )
            await self.db.commit()

        return await self.get_profile(account_id)
