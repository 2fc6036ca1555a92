# foodshare/routers/chats.py
from fastapi import APIRouter, Depends, WebSocket

from foodshare.core.errors import FoodShareError
from foodshare.deps import Services, gated_user, get_current_user, get_services, websocket_user
from foodshare.routers.serializers import chat_out
from foodshare.routers.streaming import stream_snapshots
from foodshare.schemas import ChatOpenIn, MessageIn

router = APIRouter(prefix="/api/chats", tags=["chats"])


@router.post("")
async def open_chat(body: ChatOpenIn, user=Depends(gated_user),
                    services: Services = Depends(get_services)):
    chat = await services.chats.find_or_create_chat(user["id"], body.other_user_id, body.donation_id)
    return chat_out(chat)


@router.get("")
async def list_chats(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return [chat_out(c) for c in await services.chats.list_chats(user["id"])]


@router.get("/{chat_id}")
async def get_chat(chat_id: str, user=Depends(get_current_user),
                   services: Services = Depends(get_services)):
    return chat_out(await services.chats.get_chat(chat_id, user["id"]))


@router.get("/{chat_id}/messages")
async def list_messages(chat_id: str, user=Depends(get_current_user),
                        services: Services = Depends(get_services)):
    return await services.chats.list_messages(chat_id, user["id"])


@router.post("/{chat_id}/messages", status_code=201)
async def send_message(chat_id: str, body: MessageIn, user=Depends(gated_user),
                       services: Services = Depends(get_services)):
    return await services.chats.send_message(chat_id, user["id"], body.text)


@router.post("/{chat_id}/read")
async def mark_read(chat_id: str, user=Depends(gated_user),
                    services: Services = Depends(get_services)):
    marked = await services.chats.mark_read(chat_id, user["id"])
    return {"ok": True, "marked": marked}


@router.websocket("/{chat_id}/ws")
async def watch_messages(websocket: WebSocket, chat_id: str,
                         services: Services = Depends(get_services)):
    user = await websocket_user(websocket, services)
    if not user:
        await websocket.close(code=1008)
        return
    try:
        await services.chats.get_chat(chat_id, user["id"])
    except FoodShareError:
        await websocket.close(code=1008)
        return
    await websocket.accept()
    feed = services.hub.subscribe("messages", {"chat_id": chat_id}, [("seq", 1)])
    await stream_snapshots(websocket, feed, dict)
