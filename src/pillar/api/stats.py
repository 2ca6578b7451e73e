"""Dashboard counters.

Learn: The sidebar badge polls this and refetches whenever a "task"
sync event arrives, so it stays a single COUNT query.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.schemas.task import OverdueCount
from pillar.services.task_service import TaskService

router = APIRouter(prefix="/stats")


@router.get("/overdue-count", response_model=OverdueCount)
async def overdue_count(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return OverdueCount(count=await TaskService(db).count_overdue(identity.user_uuid))
