# foodshare/routers/inventory.py
from fastapi import APIRouter, Depends

from foodshare.deps import Services, get_services, require_scopes
from foodshare.schemas import InventoryIn

router = APIRouter(prefix="/api/inventory", tags=["inventory"])

manage = require_scopes(["inventory:manage"])


@router.get("")
async def list_items(user=Depends(manage), services: Services = Depends(get_services)):
    return await services.inventory.list_items(user["id"])


@router.post("", status_code=201)
async def add_item(body: InventoryIn, user=Depends(manage), services: Services = Depends(get_services)):
    return await services.inventory.add_item(user["id"], body.model_dump(exclude_none=True))


@router.get("/{item_id}")
async def get_item(item_id: str, user=Depends(manage), services: Services = Depends(get_services)):
    return await services.inventory.get_item(user["id"], item_id)


@router.patch("/{item_id}")
async def update_item(item_id: str, body: InventoryIn, user=Depends(manage),
                      services: Services = Depends(get_services)):
    return await services.inventory.update_item(user["id"], item_id, body.model_dump(exclude_unset=True))


@router.delete("/{item_id}")
async def delete_item(item_id: str, user=Depends(manage), services: Services = Depends(get_services)):
    await services.inventory.delete_item(user["id"], item_id)
    return {"ok": True}
