# foodshare/services/complaints.py
import logging
from typing import List

from foodshare.core.clock import utcnow
from foodshare.core.errors import AccessDeniedError, IllegalStateError, NotFoundError, ValidationError
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.moderation import ModerationGate

logger = logging.getLogger(__name__)


class ComplaintService:
    """NGO reports against volunteers; resolved by administrators only."""

    def __init__(self, store: EntityStore, gate: ModerationGate):
        self.store = store
        self.gate = gate

    async def file_complaint(self, ngo_id: str, donation_id: str, reason: str) -> dict:
        await self.gate.check(ngo_id, roles=["ngo"])
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Describe the issue with this volunteer", fields=["reason"])

        donation = await self.store.get("donations", donation_id)
        if not donation:
            raise NotFoundError("Donation not found")
        if donation.get("accepted_by") != ngo_id:
            raise AccessDeniedError("Only the accepting NGO can report this delivery")
        if donation.get("delivery_status") not in ("assigned", "picked_up") or not donation.get("volunteer_id"):
            raise IllegalStateError("There is no volunteer on an active delivery to report")

        doc = {
            "volunteer_id": donation["volunteer_id"],
            "volunteer_name": donation.get("volunteer_name"),
            "ngo_id": ngo_id,
            "donation_id": donation_id,
            "reason": reason,
            "status": "pending",
            "created_at": utcnow(),
        }
        doc["id"] = await self.store.create("complaints", doc)
        logger.info("complaint %s filed by %s against %s", doc["id"], ngo_id, doc["volunteer_id"])
        return doc

    async def list_complaints(self, admin_id: str, status: str | None = None) -> List[dict]:
        await self.gate.require_admin(admin_id)
        where = {"status": status} if status else None
        return await self.store.find("complaints", where, sort=[("created_at", -1)])

    async def resolve_complaint(self, admin_id: str, complaint_id: str) -> dict:
        await self.gate.require_admin(admin_id)
        try:
            updated = await self.store.update(
                "complaints", complaint_id,
                {"status": "resolved", "resolved_by": admin_id, "resolved_at": utcnow()},
                precondition={"status": "pending"},
            )
        except EntityNotFound:
            raise NotFoundError("Complaint not found")
        except PreconditionFailed:
            raise IllegalStateError("Complaint is already resolved")
        logger.info("complaint %s resolved by %s", complaint_id, admin_id)
        return updated
