from fastapi import APIRouter, Depends

from api.deps import get_current_identity, get_services
from schemas.requests import PushTokenRegister
from services.container import Services
from services.identity import Identity

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("/token")
async def register_push_token(
    body: PushTokenRegister,
    identity: Identity = Depends(get_current_identity),
    services: Services = Depends(get_services),
):
    """Anonymous sessions are accepted but not stored; failures are never surfaced."""
    saved = await services.notifications.register_token(identity, body.token)
    return {"saved": saved}
