# foodshare/routers/notifications.py
from fastapi import APIRouter, Depends

from foodshare.deps import Services, get_current_user, get_services

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(unread_only: bool = False, limit: int = 50,
                             user=Depends(get_current_user),
                             services: Services = Depends(get_services)):
    return await services.notifier.list_for(user["id"], unread_only=unread_only, limit=limit)


@router.post("/read-all")
async def mark_all_read(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return {"ok": True, "marked": await services.notifier.mark_all_read(user["id"])}


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, user=Depends(get_current_user),
                    services: Services = Depends(get_services)):
    return await services.notifier.mark_read(user["id"], notification_id)
