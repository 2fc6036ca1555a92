# foodshare/routers/admin.py
"""Moderation console. Every call re-reads ``is_admin`` from the store."""
from typing import Optional

from fastapi import APIRouter, Depends

from foodshare.deps import Services, get_services, require_admin
from foodshare.routers.serializers import user_out
from foodshare.schemas import SuspendIn, WarnIn

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users")
async def list_users(role: Optional[str] = "volunteer", _=Depends(require_admin),
                     services: Services = Depends(get_services)):
    return [user_out(u) for u in await services.accounts.list_users(role or None)]


@router.get("/complaints")
async def list_complaints(status: Optional[str] = None, admin=Depends(require_admin),
                          services: Services = Depends(get_services)):
    return await services.complaints.list_complaints(admin["id"], status)


@router.post("/complaints/{complaint_id}/resolve")
async def resolve_complaint(complaint_id: str, admin=Depends(require_admin),
                            services: Services = Depends(get_services)):
    return await services.complaints.resolve_complaint(admin["id"], complaint_id)


@router.post("/users/{user_id}/suspend")
async def suspend_user(user_id: str, body: SuspendIn, admin=Depends(require_admin),
                       services: Services = Depends(get_services)):
    user = await services.gate.suspend(admin["id"], user_id, until=body.until, days=body.days)
    return user_out(user)


@router.post("/users/{user_id}/ban")
async def ban_user(user_id: str, admin=Depends(require_admin),
                   services: Services = Depends(get_services)):
    return user_out(await services.gate.ban(admin["id"], user_id))


@router.post("/users/{user_id}/reinstate")
async def reinstate_user(user_id: str, admin=Depends(require_admin),
                         services: Services = Depends(get_services)):
    return user_out(await services.gate.reinstate(admin["id"], user_id))


@router.post("/users/{user_id}/warn")
async def warn_user(user_id: str, body: WarnIn, admin=Depends(require_admin),
                    services: Services = Depends(get_services)):
    count = await services.gate.warn(admin["id"], user_id, body.reason or "")
    return {"ok": True, "warning_count": count}
