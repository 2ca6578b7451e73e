"""Settings service — profile, password, calendar sync and personal tokens.

Learn: Everything on the settings page that isn't a notification
preference. Account deletion removes the user row; the foreign keys
cascade, and the rows are also deleted explicitly for databases that
don't enforce them (SQLite without PRAGMA foreign_keys).
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.password import hash_password, verify_password
from pillar.auth.tokens import generate_token, hash_token
from pillar.db.models import (
    AccessToken,
    CalendarSync,
    Category,
    FilterPreset,
    Label,
    Notification,
    NotificationPreference,
    Task,
    User,
)
from pillar.services.errors import LimitExceededError, NotFoundError

MAX_TOKENS_PER_USER = 10
TOKEN_PREFIX_LENGTH = 8


class InvalidPasswordError(Exception):
    """The current password didn't match."""
    pass


class CalendarNotConnectedError(Exception):
    """Calendar sync was toggled before the provider was connected."""
    pass


@dataclass
class CreatedToken:
    """A new token plus its raw value — the only time the raw value exists."""

    token: AccessToken
    raw: str


class SettingsService:
    """Business logic for the settings page."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Profile ─────────────────────────────────────────

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def update_profile(self, user_id: uuid.UUID, changes: dict[str, Any]) -> User:
        user = await self.get_user(user_id)
        for field in ("name", "image"):
            if field in changes:
                setattr(user, field, changes[field])
        await self.db.commit()
        return user

    async def delete_account(self, user_id: uuid.UUID) -> None:
        user = await self.get_user(user_id)
        for model in (
            Notification,
            NotificationPreference,
            CalendarSync,
            AccessToken,
            FilterPreset,
            Task,
            Label,
            Category,
        ):
            await self.db.execute(delete(model).where(model.user_id == user_id))
        await self.db.delete(user)
        await self.db.commit()

    # ─── Password ────────────────────────────────────────

    async def change_password(
        self, user_id: uuid.UUID, current_password: str, new_password: str
    ) -> None:
        user = await self.get_user(user_id)
        if not user.password_hash or not verify_password(
            current_password, user.password_hash
        ):
            raise InvalidPasswordError("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        await self.db.commit()

    # ─── Calendar sync ───────────────────────────────────

    async def get_calendar_sync(self, user_id: uuid.UUID) -> Optional[CalendarSync]:
        result = await self.db.execute(
            select(CalendarSync).where(CalendarSync.user_id == user_id)
        )
        return result.scalars().first()

    async def set_calendar_enabled(self, user_id: uuid.UUID, enabled: bool) -> CalendarSync:
        """Turn sync on or off. Turning it on clears the error counter."""
        sync = await self.get_calendar_sync(user_id)
        if not sync or not sync.connected:
            raise CalendarNotConnectedError(
                "Google Calendar is not connected. Please connect first."
            )
        sync.enabled = enabled
        if enabled:
            sync.sync_errors = 0
            sync.last_sync_error = None
        await self.db.commit()
        return sync

    async def disconnect_calendar(self, user_id: uuid.UUID) -> None:
        await self.db.execute(delete(CalendarSync).where(CalendarSync.user_id == user_id))
        await self.db.commit()

    # ─── Personal access tokens ──────────────────────────

    async def list_tokens(self, user_id: uuid.UUID) -> list[AccessToken]:
        result = await self.db.execute(
            select(AccessToken)
            .where(AccessToken.user_id == user_id)
            .order_by(AccessToken.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_token(self, user_id: uuid.UUID, name: str) -> CreatedToken:
        count = await self.db.scalar(
            select(func.count(AccessToken.id)).where(AccessToken.user_id == user_id)
        )
        if count >= MAX_TOKENS_PER_USER:
            raise LimitExceededError(f"Maximum of {MAX_TOKENS_PER_USER} tokens allowed")

        raw = generate_token()
        token = AccessToken(
            user_id=user_id,
            name=name,
            token_hash=hash_token(raw),
            token_prefix=raw[:TOKEN_PREFIX_LENGTH],
        )
        self.db.add(token)
        await self.db.commit()
        return CreatedToken(token=token, raw=raw)

    async def delete_token(self, user_id: uuid.UUID, token_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(AccessToken).where(
                AccessToken.id == token_id, AccessToken.user_id == user_id
            )
        )
        token = result.scalars().first()
        if not token:
            return False
        await self.db.delete(token)
        await self.db.commit()
        return True
