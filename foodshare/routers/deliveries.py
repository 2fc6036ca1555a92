# foodshare/routers/deliveries.py
from fastapi import APIRouter, Depends, WebSocket

from foodshare.deps import Services, get_current_user, get_services, require_scopes, websocket_user
from foodshare.routers.serializers import donation_out
from foodshare.routers.streaming import stream_snapshots

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


@router.get("/available")
async def available_pickups(_=Depends(get_current_user), services: Services = Depends(get_services)):
    return [donation_out(d) for d in await services.lifecycle.available_pickups()]


@router.get("/mine")
async def my_deliveries(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return [donation_out(d) for d in await services.lifecycle.volunteer_deliveries(user["id"])]


@router.post("/{donation_id}/claim")
async def claim_delivery(donation_id: str, user=Depends(require_scopes(["deliveries:claim"])),
                         services: Services = Depends(get_services)):
    return donation_out(await services.matching.claim_delivery(donation_id, user["id"]))


@router.post("/{donation_id}/picked-up")
async def picked_up(donation_id: str, user=Depends(require_scopes(["deliveries:update"])),
                    services: Services = Depends(get_services)):
    return donation_out(await services.lifecycle.mark_picked_up(donation_id, user["id"]))


@router.post("/{donation_id}/delivered")
async def delivered(donation_id: str, user=Depends(require_scopes(["deliveries:update"])),
                    services: Services = Depends(get_services)):
    return donation_out(await services.lifecycle.mark_delivered(donation_id, user["id"]))


@router.websocket("/ws/available")
async def watch_available_pickups(websocket: WebSocket, services: Services = Depends(get_services)):
    user = await websocket_user(websocket, services)
    if not user:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    feed = services.hub.subscribe(
        "donations", {"status": "accepted", "delivery_status": "available_for_pickup"},
        [("updated_at", -1)],
    )
    await stream_snapshots(websocket, feed, donation_out)
