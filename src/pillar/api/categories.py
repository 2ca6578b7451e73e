"""Category API routes.

Learn: Routes translate HTTP to service calls and back. Every
mutation publishes a sync event after the commit, so the user's other
tabs refetch; the tab that made the change is excluded by its
X-Session-Id.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.events.types import CREATED, DELETED, ENTITY_CATEGORY, UPDATED
from pillar.realtime.publisher import SyncPublisher, get_sync_publisher
from pillar.schemas.category import CategoryCreate, CategoryRead, CategoryUpdate
from pillar.services.category_service import CategoryService

router = APIRouter(prefix="/categories")


def _svc(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


@router.get("", response_model=list[CategoryRead])
async def list_categories(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CategoryService = Depends(_svc),
):
    """List the caller's categories in sidebar order."""
    return await svc.list_categories(identity.user_uuid)


@router.post("", response_model=CategoryRead, status_code=201)
async def create_category(
    body: CategoryCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CategoryService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Create a category. Without `order` it is appended at the end."""
    category = await svc.create_category(identity.user_uuid, **body.model_dump())
    data = CategoryRead.model_validate(category).model_dump(mode="json")
    publisher.publish(ENTITY_CATEGORY, CREATED, category.id, data)
    return category


@router.get("/{category_id}", response_model=CategoryRead)
async def get_category(
    category_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CategoryService = Depends(_svc),
):
    category = await svc.get_category(identity.user_uuid, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.patch("/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: uuid.UUID,
    body: CategoryUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CategoryService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    category = await svc.update_category(
        identity.user_uuid, category_id, body.model_dump(exclude_unset=True)
    )
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    data = CategoryRead.model_validate(category).model_dump(mode="json")
    publisher.publish(ENTITY_CATEGORY, UPDATED, category.id, data)
    return category


@router.delete("/{category_id}")
async def delete_category(
    category_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CategoryService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Delete a category together with its tasks."""
    if not await svc.delete_category(identity.user_uuid, category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    publisher.publish(ENTITY_CATEGORY, DELETED, category_id)
    return {"success": True}
