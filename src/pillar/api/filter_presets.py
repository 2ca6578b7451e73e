"""Filter preset API routes."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.events.types import CREATED, DELETED, ENTITY_FILTER_PRESET, UPDATED
from pillar.realtime.publisher import SyncPublisher, get_sync_publisher
from pillar.schemas.category import (
    FilterPresetCreate,
    FilterPresetRead,
    FilterPresetUpdate,
)
from pillar.services.errors import LimitExceededError
from pillar.services.filter_preset_service import FilterPresetService

router = APIRouter(prefix="/filter-presets")


def _svc(db: AsyncSession = Depends(get_db)) -> FilterPresetService:
    return FilterPresetService(db)


@router.get("", response_model=list[FilterPresetRead])
async def list_presets(
    context: Optional[str] = Query(None, pattern=r"^(overview|kanban)$"),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: FilterPresetService = Depends(_svc),
):
    return await svc.list_presets(identity.user_uuid, context)


@router.post("", response_model=FilterPresetRead, status_code=201)
async def create_preset(
    body: FilterPresetCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: FilterPresetService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Save a preset. Capped at 50 per context."""
    try:
        preset = await svc.create_preset(identity.user_uuid, **body.model_dump())
    except LimitExceededError as e:
        raise HTTPException(status_code=400, detail=str(e))
    data = FilterPresetRead.model_validate(preset).model_dump(mode="json")
    publisher.publish(ENTITY_FILTER_PRESET, CREATED, preset.id, data)
    return preset


@router.get("/{preset_id}", response_model=FilterPresetRead)
async def get_preset(
    preset_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: FilterPresetService = Depends(_svc),
):
    preset = await svc.get_preset(identity.user_uuid, preset_id)
    if not preset:
        raise HTTPException(status_code=404, detail="Filter preset not found")
    return preset


@router.patch("/{preset_id}", response_model=FilterPresetRead)
async def update_preset(
    preset_id: uuid.UUID,
    body: FilterPresetUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: FilterPresetService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    preset = await svc.update_preset(
        identity.user_uuid, preset_id, body.model_dump(exclude_unset=True)
    )
    if not preset:
        raise HTTPException(status_code=404, detail="Filter preset not found")
    data = FilterPresetRead.model_validate(preset).model_dump(mode="json")
    publisher.publish(ENTITY_FILTER_PRESET, UPDATED, preset.id, data)
    return preset


@router.delete("/{preset_id}")
async def delete_preset(
    preset_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: FilterPresetService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    if not await svc.delete_preset(identity.user_uuid, preset_id):
        raise HTTPException(status_code=404, detail="Filter preset not found")
    publisher.publish(ENTITY_FILTER_PRESET, DELETED, preset_id)
    return {"success": True}
