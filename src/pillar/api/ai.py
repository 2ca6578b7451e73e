"""AI status endpoint.

Learn: The frontend hides AI buttons unless this says enabled.
Only presence of a provider key is reported — never the key itself.
"""

from fastapi import APIRouter, Depends

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.services.ai_service import is_ai_enabled

router = APIRouter(prefix="/ai")


@router.get("/status")
async def ai_status(identity: CurrentIdentity = Depends(get_current_user)):
    return {"enabled": is_ai_enabled()}
