# foodshare/services/lifecycle.py
r"""
Donation lifecycle controller.

    pending --(matching: accept)--> accepted --> completed
       \                               \
        `--> cancelled                  `--> cancelled

While accepted, the delivery sub-state moves
none -> available_for_pickup -> assigned -> picked_up -> delivered.
Completion is allowed from any delivery sub-state (the NGO may deliver
itself). Every write here is conditioned on the status it was computed
from, so concurrent writers cannot make a donation go backwards.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from foodshare.core.clock import parse_dt, utcnow
from foodshare.core.config import settings
from foodshare.core.errors import (
    AccessDeniedError, IllegalStateError, IllegalTransitionError, NotFoundError,
    PartialUploadError, ValidationError,
)
from foodshare.core.states import (
    DONATION_STATES, TERMINAL_DONATION_STATES, delivery_state, is_legal, is_legal_delivery,
)
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.moderation import ModerationGate
from foodshare.services.notifications import Notifier
from foodshare.services.storage import LocalObjectStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "food_type", "quantity", "expiry_time", "location.address", "contact_phone")
EDITABLE_FIELDS = {
    "title", "description", "food_type", "quantity", "expiry_time",
    "location", "image_urls", "contact_phone", "country_code",
}


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def missing_fields(fields: Dict[str, Any]) -> List[str]:
    missing = []
    for name in REQUIRED_FIELDS:
        if name == "location.address":
            value = (fields.get("location") or {}).get("address")
        else:
            value = fields.get(name)
        if _blank(value):
            missing.append(name)
    return missing


def history_entry(by_user: Optional[str], src: Optional[str], dst: str, note: Optional[str] = None) -> dict:
    return {"at": utcnow(), "by_user": by_user, "from_status": src, "to_status": dst, "note": note}


def _location(raw: Optional[dict]) -> dict:
    raw = raw or {}
    loc = {"address": (raw.get("address") or "").strip()}
    for k in ("lat", "lng"):
        if raw.get(k) is not None:
            try:
                loc[k] = float(raw[k])
            except (TypeError, ValueError):
                raise ValidationError(f"location.{k} must be a number", fields=[f"location.{k}"])
    return loc


class DonationLifecycle:
    def __init__(self, store: EntityStore, gate: ModerationGate, notifier: Notifier,
                 objects: Optional[LocalObjectStore] = None, max_images: Optional[int] = None):
        self.store = store
        self.gate = gate
        self.notifier = notifier
        self.objects = objects
        self.max_images = max_images or settings.max_images

    async def get(self, donation_id: str) -> dict:
        doc = await self.store.get("donations", donation_id)
        if not doc:
            raise NotFoundError("Donation not found")
        return doc

    # ---------- create / edit / delete (donor, pending only) ----------
    async def create_donation(self, donor_id: str, fields: Dict[str, Any],
                              uploads: Sequence[Tuple[str, bytes]] = ()) -> dict:
        decision = await self.gate.check(donor_id, roles=["donor"])
        donor = decision.user

        missing = missing_fields(fields)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)
        expiry = parse_dt(fields.get("expiry_time"))
        if expiry is None:
            raise ValidationError("expiry_time is not a valid date/time", fields=["expiry_time"])

        image_urls = [u for u in (fields.get("image_urls") or []) if u]
        if len(image_urls) + len(uploads) > self.max_images:
            raise ValidationError(f"You can only upload up to {self.max_images} images.",
                                  fields=["image_urls"])

        failed: List[str] = []
        if uploads:
            if self.objects is None:
                raise ValidationError("Image uploads are not configured", fields=["images"])
            try:
                image_urls += await self.objects.upload_many(donor_id, uploads)
            except PartialUploadError as ex:
                logger.warning("donation by %s: %s, continuing with %d image(s)",
                               donor_id, ex.message, len(ex.succeeded))
                image_urls += ex.succeeded
                failed = ex.failed

        now = utcnow()
        doc = {
            "donor_id": donor_id,
            "donor_name": donor.get("display_name") or "",
            "donor_phone": donor.get("phone"),
            "title": fields["title"].strip(),
            "description": (fields.get("description") or "").strip(),
            "food_type": fields["food_type"].strip(),
            "quantity": str(fields["quantity"]).strip(),
            "expiry_time": expiry,
            "location": _location(fields.get("location")),
            "image_urls": image_urls,
            "contact_phone": fields["contact_phone"].strip(),
            "country_code": fields.get("country_code") or "",
            "status": "pending",
            "version": 1,
            "history": [history_entry(donor_id, None, "pending", "created")],
            "created_at": now,
            "updated_at": now,
        }
        donation_id = await self.store.create("donations", doc)
        logger.info("donation %s created by %s", donation_id, donor_id)
        return {"id": donation_id, "image_urls": image_urls, "failed_uploads": failed}

    async def update_donation(self, donation_id: str, donor_id: str, partial: Dict[str, Any]) -> dict:
        await self.gate.check(donor_id, roles=["donor"])
        doc = await self.get(donation_id)
        if doc["donor_id"] != donor_id:
            raise AccessDeniedError("Only the donor can edit this donation")
        if doc["status"] != "pending":
            raise IllegalStateError("This donation is no longer available for editing")

        unknown = sorted(set(partial) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}", fields=unknown)

        patch: Dict[str, Any] = {}
        for key, value in partial.items():
            if key == "location":
                patch[key] = _location(value)
            elif key == "expiry_time":
                patch[key] = parse_dt(value)
                if patch[key] is None:
                    raise ValidationError("expiry_time is not a valid date/time", fields=[key])
            elif isinstance(value, str):
                patch[key] = value.strip()
            else:
                patch[key] = value
        merged = {**doc, **patch}
        missing = missing_fields(merged)
        if missing:
            raise ValidationError(f"Required fields cannot be blank: {', '.join(missing)}",
                                  fields=missing)
        if len(merged.get("image_urls") or []) > self.max_images:
            raise ValidationError(f"You can only upload up to {self.max_images} images.",
                                  fields=["image_urls"])

        patch["updated_at"] = utcnow()
        try:
            return await self.store.update(
                "donations", donation_id, patch, inc={"version": 1},
                precondition={"status": "pending"},
            )
        except PreconditionFailed:
            raise IllegalStateError("This donation is no longer available for editing")

    async def delete_donation(self, donation_id: str, donor_id: str) -> None:
        await self.gate.check(donor_id, roles=["donor"])
        doc = await self.get(donation_id)
        if doc["donor_id"] != donor_id:
            raise AccessDeniedError("Only the donor can delete this donation")
        try:
            await self.store.delete("donations", donation_id, precondition={"status": "pending"})
        except PreconditionFailed:
            raise IllegalStateError("Only pending donations can be deleted")
        except EntityNotFound:
            raise NotFoundError("Donation not found")
        logger.info("donation %s deleted by %s", donation_id, donor_id)

    # ---------- status ----------
    def _authorize_status(self, doc: dict, dst: str, actor: dict) -> None:
        uid = actor["id"]
        is_donor = doc["donor_id"] == uid
        is_acceptor = doc.get("accepted_by") == uid
        if dst == "completed" and not is_acceptor:
            raise AccessDeniedError("Only the accepting NGO can complete this donation")
        if dst == "cancelled":
            if doc["status"] == "pending" and not is_donor:
                raise AccessDeniedError("Only the donor can cancel a pending donation")
            if doc["status"] == "accepted" and not (is_donor or is_acceptor):
                raise AccessDeniedError("Only the donor or the accepting NGO can cancel")

    async def set_status(self, donation_id: str, new_status: str,
                         actor_id: Optional[str] = None, note: Optional[str] = None) -> dict:
        if new_status not in DONATION_STATES:
            raise ValidationError(f"Invalid status '{new_status}'", fields=["status"])
        actor = (await self.gate.check(actor_id)).user if actor_id else None

        doc = await self.get(donation_id)
        src = doc["status"]
        if src in TERMINAL_DONATION_STATES:
            raise IllegalTransitionError(f"Donation is already {src}")
        if src == "pending" and new_status == "accepted":
            raise IllegalTransitionError("Donations are accepted through the accept operation")
        if not is_legal(src, new_status):
            raise IllegalTransitionError(f"Cannot move a donation from {src} to {new_status}")
        if actor is not None:
            self._authorize_status(doc, new_status, actor)

        try:
            updated = await self.store.update(
                "donations", donation_id,
                {"status": new_status, "updated_at": utcnow()},
                inc={"version": 1},
                push={"history": history_entry(actor_id, src, new_status, note)},
                precondition={"status": src},
            )
        except PreconditionFailed as ex:
            now = (ex.current or {}).get("status")
            raise IllegalTransitionError(f"Donation changed concurrently (now {now})")
        logger.info("donation %s: %s -> %s by %s", donation_id, src, new_status, actor_id)
        await self._announce_status(updated, src, actor_id)
        return updated

    async def _announce_status(self, doc: dict, src: str, actor_id: Optional[str]) -> None:
        title = doc.get("title", "Donation")
        if doc["status"] == "completed":
            await self.notifier.notify(doc["donor_id"], "Donation completed",
                                       f"'{title}' has been received. Thank you!", "success")
            await self.notifier.notify(doc.get("volunteer_id"), "Delivery completed",
                                       f"'{title}' was confirmed by the NGO.", "success")
        elif doc["status"] == "cancelled":
            targets = {doc["donor_id"], doc.get("accepted_by"), doc.get("volunteer_id")} - {actor_id, None}
            for uid in targets:
                await self.notifier.notify(uid, "Donation cancelled",
                                           f"'{title}' was cancelled.", "warning")

    async def complete_donation(self, donation_id: str, ngo_id: str) -> dict:
        return await self.set_status(donation_id, "completed", actor_id=ngo_id)

    async def cancel_donation(self, donation_id: str, actor_id: str) -> dict:
        return await self.set_status(donation_id, "cancelled", actor_id=actor_id)

    # ---------- delivery progress (assigned volunteer) ----------
    async def advance_delivery(self, donation_id: str, volunteer_id: str, dst: str) -> dict:
        await self.gate.check(volunteer_id, roles=["volunteer"])
        doc = await self.get(donation_id)
        src = delivery_state(doc)
        if doc["status"] != "accepted":
            raise IllegalStateError("This donation is no longer available")
        if doc.get("volunteer_id") != volunteer_id:
            raise AccessDeniedError("Only the assigned volunteer can update this delivery")
        if not is_legal_delivery(src, dst) or dst in ("available_for_pickup", "assigned"):
            raise IllegalTransitionError(f"Cannot move delivery from {src} to {dst}")

        try:
            updated = await self.store.update(
                "donations", donation_id,
                {"delivery_status": dst, "updated_at": utcnow()},
                inc={"version": 1},
                push={"history": history_entry(volunteer_id, src, dst)},
                precondition={"status": "accepted", "delivery_status": src,
                              "volunteer_id": volunteer_id},
            )
        except PreconditionFailed:
            raise IllegalStateError("This delivery changed; refresh and try again")
        logger.info("donation %s delivery: %s -> %s by %s", donation_id, src, dst, volunteer_id)

        label = dst.replace("_", " ")
        await self.notifier.notify(updated.get("accepted_by"), f"Donation {label}",
                                   f"{updated.get('volunteer_name') or 'Volunteer'} marked "
                                   f"'{updated.get('title')}' as {label}.", "info")
        return updated

    async def mark_picked_up(self, donation_id: str, volunteer_id: str) -> dict:
        return await self.advance_delivery(donation_id, volunteer_id, "picked_up")

    async def mark_delivered(self, donation_id: str, volunteer_id: str) -> dict:
        return await self.advance_delivery(donation_id, volunteer_id, "delivered")

    # ---------- queries ----------
    async def donor_donations(self, donor_id: str) -> List[dict]:
        return await self.store.find("donations", {"donor_id": donor_id}, sort=[("created_at", -1)])

    async def available_donations(self) -> List[dict]:
        return await self.store.find("donations", {"status": "pending"}, sort=[("created_at", -1)])

    async def ngo_donations(self, ngo_id: str) -> List[dict]:
        return await self.store.find("donations", {"accepted_by": ngo_id}, sort=[("updated_at", -1)])

    async def available_pickups(self) -> List[dict]:
        return await self.store.find(
            "donations", {"status": "accepted", "delivery_status": "available_for_pickup"},
            sort=[("updated_at", -1)],
        )

    async def volunteer_deliveries(self, volunteer_id: str) -> List[dict]:
        docs = await self.store.find(
            "donations", {"volunteer_id": volunteer_id, "status": "accepted"},
            sort=[("updated_at", -1)],
        )
        # delivered ones sink to the bottom
        return sorted(docs, key=lambda d: d.get("delivery_status") == "delivered")
