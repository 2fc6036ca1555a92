# foodshare/services/accounts.py
import logging
from typing import Any, Dict, Optional, Tuple

from foodshare.core.clock import utcnow
from foodshare.core.errors import (
    AuthError, DuplicateAccountError, NotFoundError, ValidationError,
)
from foodshare.core.security import create_verify_token, decode_token, hash_password, verify_password
from foodshare.repos.base import EntityStore, new_id
from foodshare.services.moderation import ModerationGate

logger = logging.getLogger(__name__)

ROLES = {"donor", "ngo", "volunteer"}
PROFILE_FIELDS = {"display_name", "phone", "address", "organization_name", "bio", "location", "photo_url"}
PUBLIC_FIELDS = ("id", "display_name", "role", "organization_name", "photo_url", "bio", "created_at")


def _email_key(email: str) -> str:
    return (email or "").strip().lower()


class AccountService:
    def __init__(self, store: EntityStore, gate: ModerationGate):
        self.store = store
        self.gate = gate

    async def register(self, email: str, password: str, display_name: str, role: str,
                       phone: Optional[str] = None, organization_name: Optional[str] = None,
                       address: Optional[str] = None) -> Tuple[dict, str]:
        key = _email_key(email)
        if role not in ROLES:
            raise ValidationError(f"Role must be one of {sorted(ROLES)}", fields=["role"])
        if len(password or "") < 6:
            raise ValidationError("Password must be at least 6 characters", fields=["password"])
        if not (display_name or "").strip():
            raise ValidationError("Display name is required", fields=["display_name"])
        if role == "ngo" and not (organization_name or "").strip():
            raise ValidationError("Organization name is required for NGOs", fields=["organization_name"])

        uid = new_id()
        _, created = await self.store.create_if_absent("emails", key, {"uid": uid})
        if not created:
            raise DuplicateAccountError("Email already registered")

        user = {
            "email": key,
            "password_hash": hash_password(password),
            "display_name": display_name.strip(),
            "role": role,
            "phone": phone or None,
            "organization_name": organization_name or None,
            "address": address or None,
            "account_status": "active",
            "warning_count": 0,
            "email_verified": False,
            "is_admin": False,
            "created_at": utcnow(),
        }
        try:
            await self.store.create("users", user, entity_id=uid)
        except Exception:
            await self.store.delete("emails", key)
            raise
        user["id"] = uid
        logger.info("registered %s as %s", uid, role)
        return user, create_verify_token(uid, key)

    async def authenticate(self, email: str, password: str) -> dict:
        claim = await self.store.get("emails", _email_key(email))
        user = await self.store.get("users", claim["uid"]) if claim else None
        if not user or not verify_password(password, user.get("password_hash", "")):
            raise AuthError("Invalid credentials")
        return user

    async def verify_email(self, token: str) -> dict:
        data = decode_token(token, purpose="verify_email")
        user = await self.store.get("users", data["sub"])
        if not user or user.get("email") != data.get("email"):
            raise AuthError("Invalid token")
        if user.get("email_verified"):
            return user
        return await self.store.update("users", user["id"], {"email_verified": True})

    async def get_user(self, uid: str) -> dict:
        user = await self.store.get("users", uid)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def public_profile(self, uid: str) -> dict:
        user = await self.get_user(uid)
        return {k: user.get(k) for k in PUBLIC_FIELDS}

    async def update_profile(self, uid: str, data: Dict[str, Any]) -> dict:
        await self.gate.check(uid)
        unknown = sorted(set(data) - PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}", fields=unknown)
        if "display_name" in data and not (data["display_name"] or "").strip():
            raise ValidationError("Display name is required", fields=["display_name"])
        patch = {k: (v.strip() if isinstance(v, str) else v) for k, v in data.items()}
        if not patch:
            return await self.get_user(uid)
        patch["updated_at"] = utcnow()
        return await self.store.update("users", uid, patch)

    async def record_device(self, uid: str, ip: Optional[str], user_agent: Optional[str]) -> None:
        try:
            await self.store.update("users", uid, {"ip_address": ip, "user_agent": user_agent})
        except Exception:
            logger.warning("device info for %s not recorded", uid, exc_info=True)

    async def stats(self, uid: str) -> dict:
        user = await self.get_user(uid)
        role = user.get("role")
        if role == "donor":
            return {
                "total_donations": await self.store.count("donations", {"donor_id": uid}),
                "completed_donations": await self.store.count(
                    "donations", {"donor_id": uid, "status": "completed"}),
            }
        if role == "ngo":
            return {
                "accepted_donations": await self.store.count("donations", {"accepted_by": uid}),
                "completed_donations": await self.store.count(
                    "donations", {"accepted_by": uid, "status": "completed"}),
            }
        return {
            "deliveries": await self.store.count("donations", {"volunteer_id": uid}),
            "delivered": await self.store.count(
                "donations", {"volunteer_id": uid, "delivery_status": "delivered"}),
        }

    async def list_users(self, role: Optional[str] = None) -> list:
        where = {"role": role} if role else None
        users = await self.store.find("users", where, sort=[("created_at", -1)])
        for u in users:
            u.pop("password_hash", None)
        return users
