"""Label API routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.events.types import CREATED, DELETED, ENTITY_LABEL, UPDATED
from pillar.realtime.publisher import SyncPublisher, get_sync_publisher
from pillar.schemas.category import LabelCreate, LabelRead, LabelUpdate
from pillar.services.errors import ConflictError
from pillar.services.label_service import LabelService

router = APIRouter(prefix="/labels")


def _svc(db: AsyncSession = Depends(get_db)) -> LabelService:
    return LabelService(db)


@router.get("", response_model=list[LabelRead])
async def list_labels(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: LabelService = Depends(_svc),
):
    return await svc.list_labels(identity.user_uuid)


@router.post("", response_model=LabelRead, status_code=201)
async def create_label(
    body: LabelCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: LabelService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Create a label. Returns 409 if the caller already has one by that name."""
    try:
        label = await svc.create_label(identity.user_uuid, body.name, body.color)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    data = LabelRead.model_validate(label).model_dump(mode="json")
    publisher.publish(ENTITY_LABEL, CREATED, label.id, data)
    return label


@router.get("/{label_id}", response_model=LabelRead)
async def get_label(
    label_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: LabelService = Depends(_svc),
):
    label = await svc.get_label(identity.user_uuid, label_id)
    if not label:
        raise HTTPException(status_code=404, detail="Label not found")
    return label


@router.patch("/{label_id}", response_model=LabelRead)
async def update_label(
    label_id: uuid.UUID,
    body: LabelUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: LabelService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    try:
        label = await svc.update_label(
            identity.user_uuid, label_id, body.model_dump(exclude_unset=True)
        )
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not label:
        raise HTTPException(status_code=404, detail="Label not found")
    data = LabelRead.model_validate(label).model_dump(mode="json")
    publisher.publish(ENTITY_LABEL, UPDATED, label.id, data)
    return label


@router.delete("/{label_id}")
async def delete_label(
    label_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: LabelService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Delete a label and remove it from every task."""
    if not await svc.delete_label(identity.user_uuid, label_id):
        raise HTTPException(status_code=404, detail="Label not found")
    publisher.publish(ENTITY_LABEL, DELETED, label_id)
    return {"success": True}
