# foodshare/routers/donations.py
from typing import List

from fastapi import APIRouter, Depends, File, Form, UploadFile, WebSocket
from pydantic import ValidationError as PydanticValidationError

from foodshare.core.errors import ValidationError
from foodshare.deps import Services, get_current_user, get_services, require_scopes, websocket_user
from foodshare.routers.serializers import donation_detail, donation_out
from foodshare.routers.streaming import stream_snapshots
from foodshare.schemas import DonationIn, DonationUpdate, StatusIn

router = APIRouter(prefix="/api/donations", tags=["donations"])

NEWEST_FIRST = [("created_at", -1)]


def _fields(body: DonationIn) -> dict:
    return body.model_dump(exclude_none=True)


async def _created(services: Services, result: dict) -> dict:
    doc = await services.lifecycle.get(result["id"])
    return {"donation": donation_out(doc), "failed_uploads": result["failed_uploads"]}


@router.post("", status_code=201)
async def create_donation(body: DonationIn,
                          user=Depends(require_scopes(["donations:create"])),
                          services: Services = Depends(get_services)):
    result = await services.lifecycle.create_donation(user["id"], _fields(body))
    return await _created(services, result)


@router.post("/upload", status_code=201)
async def create_donation_with_images(payload: str = Form(...),
                                      images: List[UploadFile] = File(default=[]),
                                      user=Depends(require_scopes(["donations:create"])),
                                      services: Services = Depends(get_services)):
    """Multipart variant: donation JSON in ``payload`` plus up to seven image files."""
    try:
        body = DonationIn.model_validate_json(payload)
    except PydanticValidationError as ex:
        bad = [".".join(str(p) for p in e["loc"]) for e in ex.errors()]
        raise ValidationError("Invalid donation payload", fields=bad)
    uploads = [(f.filename or "image", await f.read()) for f in images]
    result = await services.lifecycle.create_donation(user["id"], _fields(body), uploads)
    return await _created(services, result)


@router.get("/mine")
async def my_donations(user=Depends(get_current_user), services: Services = Depends(get_services)):
    if user.get("role") == "ngo":
        docs = await services.lifecycle.ngo_donations(user["id"])
    else:
        docs = await services.lifecycle.donor_donations(user["id"])
    return [donation_out(d) for d in docs]


@router.get("/available")
async def available_donations(_=Depends(get_current_user), services: Services = Depends(get_services)):
    return [donation_out(d) for d in await services.lifecycle.available_donations()]


@router.get("/{donation_id}")
async def get_donation(donation_id: str, _=Depends(get_current_user),
                       services: Services = Depends(get_services)):
    return donation_detail(await services.lifecycle.get(donation_id))


@router.patch("/{donation_id}")
async def update_donation(donation_id: str, body: DonationUpdate,
                          user=Depends(require_scopes(["donations:edit"])),
                          services: Services = Depends(get_services)):
    doc = await services.lifecycle.update_donation(donation_id, user["id"],
                                                   body.model_dump(exclude_unset=True))
    return donation_out(doc)


@router.delete("/{donation_id}")
async def delete_donation(donation_id: str, user=Depends(require_scopes(["donations:delete"])),
                          services: Services = Depends(get_services)):
    await services.lifecycle.delete_donation(donation_id, user["id"])
    return {"ok": True}


@router.post("/{donation_id}/accept")
async def accept_donation(donation_id: str, user=Depends(require_scopes(["donations:accept"])),
                          services: Services = Depends(get_services)):
    return donation_out(await services.matching.accept_donation(donation_id, user["id"]))


@router.post("/{donation_id}/request-pickup")
async def request_pickup(donation_id: str, user=Depends(require_scopes(["donations:request_pickup"])),
                         services: Services = Depends(get_services)):
    return donation_out(await services.matching.request_pickup(donation_id, user["id"]))


@router.post("/{donation_id}/complete")
async def complete_donation(donation_id: str, user=Depends(require_scopes(["donations:complete"])),
                            services: Services = Depends(get_services)):
    return donation_out(await services.lifecycle.complete_donation(donation_id, user["id"]))


@router.post("/{donation_id}/cancel")
async def cancel_donation(donation_id: str, user=Depends(require_scopes(["donations:cancel"])),
                          services: Services = Depends(get_services)):
    return donation_out(await services.lifecycle.cancel_donation(donation_id, user["id"]))


@router.patch("/{donation_id}/status")
async def set_status(donation_id: str, body: StatusIn, user=Depends(get_current_user),
                     services: Services = Depends(get_services)):
    doc = await services.lifecycle.set_status(donation_id, body.status, actor_id=user["id"], note=body.note)
    return donation_out(doc)


# ---------- live views ----------
@router.websocket("/ws/available")
async def watch_available(websocket: WebSocket, services: Services = Depends(get_services)):
    user = await websocket_user(websocket, services)
    if not user:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    feed = services.hub.subscribe("donations", {"status": "pending"}, NEWEST_FIRST)
    await stream_snapshots(websocket, feed, donation_out)


@router.websocket("/ws/mine")
async def watch_mine(websocket: WebSocket, services: Services = Depends(get_services)):
    user = await websocket_user(websocket, services)
    if not user:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    field = {"ngo": "accepted_by", "volunteer": "volunteer_id"}.get(user.get("role"), "donor_id")
    feed = services.hub.subscribe("donations", {field: user["id"]}, NEWEST_FIRST)
    await stream_snapshots(websocket, feed, donation_out)
