# foodshare/services/chat.py
"""
Chat coordinator.

A conversation is identified by the sorted pair of participants plus the
donation it is about ("direct" when it is about nothing in particular), so
both sides opening the chat at the same time upsert the same document
instead of creating two. Chats about different donations with the same
person stay separate; there is no fallback to "any chat with that user".

Messages are ordered by a per-chat logical clock advanced atomically on the
chat document: ``seq = max(previous + 1, now in microseconds)``. ``created_at``
is derived from ``seq`` and therefore strictly increasing within a chat.
"""
import logging
from typing import List, Optional

from foodshare.core.clock import from_micros, to_micros, utcnow
from foodshare.core.errors import AccessDeniedError, NotFoundError, ValidationError
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.moderation import ModerationGate
from foodshare.services.notifications import Notifier

logger = logging.getLogger(__name__)

MAX_MESSAGE_LEN = 4000


def chat_id_for(user_a: str, user_b: str, donation_id: Optional[str] = None) -> str:
    lo, hi = sorted([user_a, user_b])
    return f"{lo}__{hi}__{donation_id or 'direct'}"


class ChatCoordinator:
    def __init__(self, store: EntityStore, gate: ModerationGate, notifier: Optional[Notifier] = None):
        self.store = store
        self.gate = gate
        self.notifier = notifier

    async def _chat_for(self, chat_id: str, user_id: str) -> dict:
        chat = await self.store.get("chats", chat_id)
        if not chat:
            raise NotFoundError("Chat not found")
        if user_id not in chat.get("participants", []):
            raise AccessDeniedError("You are not part of this conversation")
        return chat

    async def find_or_create_chat(self, user_a: str, user_b: str,
                                  donation_id: Optional[str] = None) -> dict:
        if not user_b or user_a == user_b:
            raise ValidationError("A chat needs two different participants", fields=["other_user_id"])
        await self.gate.check(user_a)
        if not await self.store.get("users", user_b):
            raise NotFoundError("User not found")
        if donation_id and not await self.store.get("donations", donation_id):
            raise NotFoundError("Donation not found")

        cid = chat_id_for(user_a, user_b, donation_id)
        participants = sorted([user_a, user_b])
        chat, created = await self.store.create_if_absent("chats", cid, {
            "participants": participants,
            "donation_id": donation_id,
            "last_message": "",
            "last_message_time": None,
            "last_message_seq": 0,
            "unread_count": {p: 0 for p in participants},
            "clock": 0,
            "created_at": utcnow(),
        })
        if created:
            logger.info("chat %s opened", cid)
        return chat

    async def get_chat(self, chat_id: str, user_id: str) -> dict:
        return await self._chat_for(chat_id, user_id)

    async def list_chats(self, user_id: str) -> List[dict]:
        return await self.store.find("chats", {"participants": user_id},
                                     sort=[("last_message_time", -1)])

    async def send_message(self, chat_id: str, sender_id: str, text: str) -> dict:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty", fields=["text"])
        if len(text) > MAX_MESSAGE_LEN:
            raise ValidationError(f"Message is longer than {MAX_MESSAGE_LEN} characters", fields=["text"])
        await self.gate.check(sender_id)
        chat = await self._chat_for(chat_id, sender_id)

        try:
            seq = await self.store.advance_clock("chats", chat_id, "clock", to_micros(utcnow()))
        except EntityNotFound:
            raise NotFoundError("Chat not found")
        created_at = from_micros(seq)
        message = {
            "chat_id": chat_id,
            "sender_id": sender_id,
            "text": text,
            "seq": seq,
            "created_at": created_at,
            "read_by": [sender_id],
        }
        message["id"] = await self.store.create("messages", message)

        others = [p for p in chat["participants"] if p != sender_id]
        await self.store.update("chats", chat_id, inc={f"unread_count.{p}": 1 for p in others})
        try:
            # only move the preview forward; a later message may already be there
            await self.store.update(
                "chats", chat_id,
                {"last_message": text, "last_message_time": created_at, "last_message_seq": seq},
                precondition={"last_message_seq": {"$lt": seq}},
            )
        except PreconditionFailed:
            pass

        if self.notifier:
            for uid in others:
                await self.notifier.notify(uid, "New message", text[:120], "info",
                                           link=f"/chats/{chat_id}")
        return message

    async def list_messages(self, chat_id: str, user_id: str) -> List[dict]:
        await self._chat_for(chat_id, user_id)
        return await self.store.find("messages", {"chat_id": chat_id}, sort=[("seq", 1)])

    async def mark_read(self, chat_id: str, user_id: str) -> int:
        await self.gate.check(user_id)
        await self._chat_for(chat_id, user_id)
        await self.store.update("chats", chat_id, {f"unread_count.{user_id}": 0})
        return await self.store.update_many(
            "messages", {"chat_id": chat_id}, add_to_set={"read_by": user_id}
        )
