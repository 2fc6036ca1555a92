# foodshare/routers/users.py
from fastapi import APIRouter, Depends, Request

from foodshare.deps import Services, gated_user, get_current_user, get_services
from foodshare.routers.serializers import user_out
from foodshare.schemas import ProfileUpdate

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me")
async def get_me(user=Depends(get_current_user)):
    return user_out(user)


@router.patch("/me")
async def update_me(body: ProfileUpdate, user=Depends(gated_user),
                    services: Services = Depends(get_services)):
    updated = await services.accounts.update_profile(user["id"], body.model_dump(exclude_unset=True))
    return user_out(updated)


@router.get("/me/stats")
async def my_stats(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.accounts.stats(user["id"])


@router.post("/me/device")
async def record_device(request: Request, user=Depends(get_current_user),
                        services: Services = Depends(get_services)):
    ip = request.client.host if request.client else None
    await services.accounts.record_device(user["id"], ip, request.headers.get("user-agent"))
    return {"ok": True}


@router.get("/{user_id}")
async def get_profile(user_id: str, _=Depends(get_current_user),
                      services: Services = Depends(get_services)):
    return await services.accounts.public_profile(user_id)
