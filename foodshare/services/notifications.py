# foodshare/services/notifications.py
import logging
from typing import List, Optional

from foodshare.core.clock import utcnow
from foodshare.core.errors import NotFoundError
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed

logger = logging.getLogger(__name__)

KINDS = {"info", "success", "warning", "error"}


class Notifier:
    """In-app notification fan-out. Delivery is best-effort and never raises."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def notify(self, user_id: Optional[str], title: str, message: str,
                     kind: str = "info", link: Optional[str] = None) -> None:
        if not user_id:
            return
        try:
            await self.store.create("notifications", {
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": kind if kind in KINDS else "info",
                "link": link,
                "read": False,
                "created_at": utcnow(),
            })
        except Exception:
            logger.warning("notification to %s dropped: %s", user_id, title, exc_info=True)

    async def list_for(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
        where = {"user_id": user_id}
        if unread_only:
            where["read"] = False
        return await self.store.find("notifications", where, sort=[("created_at", -1)], limit=limit)

    async def mark_read(self, user_id: str, notification_id: str) -> dict:
        try:
            return await self.store.update(
                "notifications", notification_id, {"read": True},
                precondition={"user_id": user_id},
            )
        except (EntityNotFound, PreconditionFailed):
            raise NotFoundError("Notification not found")

    async def mark_all_read(self, user_id: str) -> int:
        return await self.store.update_many(
            "notifications", {"user_id": user_id, "read": False}, {"read": True}
        )
