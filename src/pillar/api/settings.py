"""Settings API — profile, password, calendar sync, personal tokens.

Learn: Everything here acts on the caller's own account, so there are
no ids in the paths except for revoking a specific token.

Calendar sync can only be toggled once the provider is connected; the
OAuth handshake that sets `connected` lives outside this service.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.events.types import CREATED, DELETED, ENTITY_SETTINGS, UPDATED
from pillar.realtime.publisher import SyncPublisher, get_sync_publisher
from pillar.schemas.settings import (
    AccessTokenCreate,
    AccessTokenCreated,
    AccessTokenRead,
    CalendarSyncRead,
    CalendarSyncUpdate,
    PasswordChange,
    ProfileRead,
    ProfileUpdate,
)
from pillar.services.errors import LimitExceededError, NotFoundError
from pillar.services.settings_service import (
    CalendarNotConnectedError,
    InvalidPasswordError,
    SettingsService,
)

router = APIRouter(prefix="/settings")


def _svc(db: AsyncSession = Depends(get_db)) -> SettingsService:
    return SettingsService(db)


# ─── Profile ─────────────────────────────────────────────


@router.get("/profile", response_model=ProfileRead)
async def get_profile(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
):
    try:
        return await svc.get_user(identity.user_uuid)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/profile", response_model=ProfileRead)
async def update_profile(
    body: ProfileUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    try:
        user = await svc.update_profile(
            identity.user_uuid, body.model_dump(exclude_unset=True, mode="json")
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    publisher.publish(ENTITY_SETTINGS, UPDATED, user.id)
    return user


@router.delete("/profile")
async def delete_account(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
):
    """Delete the account and everything it owns."""
    try:
        await svc.delete_account(identity.user_uuid)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Account deleted"}


# ─── Password ────────────────────────────────────────────


@router.patch("/password")
async def change_password(
    body: PasswordChange,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
):
    try:
        await svc.change_password(
            identity.user_uuid, body.current_password, body.new_password
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidPasswordError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Password updated"}


# ─── Calendar sync ───────────────────────────────────────


@router.get("/calendar", response_model=CalendarSyncRead)
async def get_calendar(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
):
    sync = await svc.get_calendar_sync(identity.user_uuid)
    return sync or CalendarSyncRead()


@router.patch("/calendar", response_model=CalendarSyncRead)
async def update_calendar(
    body: CalendarSyncUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Enable or disable calendar sync. Enabling resets the error counter."""
    try:
        sync = await svc.set_calendar_enabled(identity.user_uuid, body.enabled)
    except CalendarNotConnectedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    publisher.publish(ENTITY_SETTINGS, UPDATED, sync.id)
    return sync


@router.delete("/calendar")
async def disconnect_calendar(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    await svc.disconnect_calendar(identity.user_uuid)
    publisher.publish(ENTITY_SETTINGS, DELETED, identity.user_id)
    return {"success": True}


# ─── Personal access tokens ──────────────────────────────


@router.get("/tokens", response_model=list[AccessTokenRead])
async def list_tokens(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
):
    return await svc.list_tokens(identity.user_uuid)


@router.post("/tokens", response_model=AccessTokenCreated, status_code=201)
async def create_token(
    body: AccessTokenCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Create a token. The raw value is in this response and nowhere else."""
    try:
        created = await svc.create_token(identity.user_uuid, body.name)
    except LimitExceededError as e:
        raise HTTPException(status_code=400, detail=str(e))
    publisher.publish(ENTITY_SETTINGS, CREATED, created.token.id)
    read = AccessTokenRead.model_validate(created.token)
    return AccessTokenCreated(**read.model_dump(), token=created.raw)


@router.delete("/tokens/{token_id}")
async def revoke_token(
    token_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: SettingsService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    if not await svc.delete_token(identity.user_uuid, token_id):
        raise HTTPException(status_code=404, detail="Token not found")
    publisher.publish(ENTITY_SETTINGS, DELETED, token_id)
    return {"success": True}
