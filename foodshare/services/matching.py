# foodshare/services/matching.py
"""
Matching & assignment: who gets a donation (one NGO) and who carries it
(one volunteer). Both are single conditional writes on the donation, so the
store picks exactly one winner no matter how many clients race.
"""
import logging
from typing import Optional

from foodshare.core.clock import utcnow
from foodshare.core.errors import (
    AccessDeniedError, AlreadyAcceptedError, AlreadyAssignedError, IllegalStateError,
    NotFoundError,
)
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.lifecycle import history_entry
from foodshare.services.moderation import ModerationGate
from foodshare.services.notifications import Notifier

logger = logging.getLogger(__name__)


class MatchingService:
    def __init__(self, store: EntityStore, gate: ModerationGate, notifier: Notifier):
        self.store = store
        self.gate = gate
        self.notifier = notifier

    async def accept_donation(self, donation_id: str, ngo_id: str,
                              ngo_profile: Optional[dict] = None) -> dict:
        ngo = (await self.gate.check(ngo_id, roles=["ngo"])).user
        profile = {**ngo, **(ngo_profile or {})}
        name = profile.get("organization_name") or profile.get("display_name") or "NGO"

        try:
            updated = await self.store.update(
                "donations", donation_id,
                {
                    "status": "accepted",
                    "delivery_status": "none",
                    "accepted_by": ngo_id,
                    "accepted_by_name": name,
                    "accepted_by_phone": profile.get("phone"),
                    "accepted_by_address": profile.get("address"),
                    "updated_at": utcnow(),
                },
                inc={"version": 1},
                push={"history": history_entry(ngo_id, "pending", "accepted")},
                precondition={"status": "pending"},
            )
        except EntityNotFound:
            raise NotFoundError("Donation not found")
        except PreconditionFailed as ex:
            current = ex.current or {}
            if current.get("status") == "accepted":
                logger.info("accept of %s by %s lost to %s", donation_id, ngo_id, current.get("accepted_by"))
                raise AlreadyAcceptedError(
                    f"Already accepted by {current.get('accepted_by_name') or 'another NGO'}"
                )
            raise IllegalStateError("This donation is no longer available")

        logger.info("donation %s accepted by %s", donation_id, ngo_id)
        await self.notifier.notify(updated["donor_id"], "Donation accepted",
                                   f"Your donation '{updated.get('title')}' was accepted by {name}.",
                                   "success", link=f"/donations/{donation_id}")
        return updated

    async def request_pickup(self, donation_id: str, ngo_id: str) -> dict:
        await self.gate.check(ngo_id, roles=["ngo"])
        try:
            updated = await self.store.update(
                "donations", donation_id,
                {"delivery_status": "available_for_pickup", "updated_at": utcnow()},
                inc={"version": 1},
                push={"history": history_entry(ngo_id, "none", "available_for_pickup")},
                precondition={"status": "accepted", "accepted_by": ngo_id,
                              "delivery_status": {"$in": ["none", None]}},
            )
        except EntityNotFound:
            raise NotFoundError("Donation not found")
        except PreconditionFailed as ex:
            current = ex.current or {}
            if current.get("status") == "accepted" and current.get("accepted_by") != ngo_id:
                raise AccessDeniedError("Only the accepting NGO can request a pickup")
            raise IllegalStateError("Pickup can only be requested once, on an accepted donation")

        logger.info("donation %s open for volunteer pickup", donation_id)
        await self.notifier.notify(updated["donor_id"], "Pickup requested",
                                   f"{updated.get('accepted_by_name')} is looking for a volunteer "
                                   f"to collect '{updated.get('title')}'.", "info")
        return updated

    async def claim_delivery(self, donation_id: str, volunteer_id: str,
                             volunteer_profile: Optional[dict] = None) -> dict:
        vol = (await self.gate.check(volunteer_id, roles=["volunteer"])).user
        profile = {**vol, **(volunteer_profile or {})}
        name = profile.get("display_name") or "Volunteer"

        try:
            updated = await self.store.update(
                "donations", donation_id,
                {
                    "delivery_status": "assigned",
                    "volunteer_id": volunteer_id,
                    "volunteer_name": name,
                    "volunteer_phone": profile.get("phone") or "Not provided",
                    "updated_at": utcnow(),
                },
                inc={"version": 1},
                push={"history": history_entry(volunteer_id, "available_for_pickup", "assigned")},
                precondition={"status": "accepted", "delivery_status": "available_for_pickup",
                              "volunteer_id": None},
            )
        except EntityNotFound:
            raise NotFoundError("Donation not found")
        except PreconditionFailed as ex:
            current = ex.current or {}
            if current.get("volunteer_id"):
                logger.info("claim of %s by %s lost to %s", donation_id, volunteer_id, current["volunteer_id"])
                raise AlreadyAssignedError(
                    f"Already assigned to {current.get('volunteer_name') or 'another volunteer'}"
                )
            raise IllegalStateError("This delivery is no longer available")

        logger.info("donation %s delivery assigned to %s", donation_id, volunteer_id)
        msg = f"{name} will deliver '{updated.get('title')}'."
        await self.notifier.notify(updated.get("accepted_by"), "Delivery assigned", msg, "info")
        await self.notifier.notify(updated["donor_id"], "Delivery assigned", msg, "info")
        return updated
