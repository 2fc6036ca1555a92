# foodshare/services/moderation.py
"""
Moderation / access gate.

Account states: active, suspended(until), banned. The stored state is never
trusted on its own: every check recomputes the effective state against the
current time, so a suspension whose ``suspended_until`` has passed lets the
caller through and reports ``suspension_expired`` for lazy cleanup.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from foodshare.core.clock import as_aware, utcnow
from foodshare.core.config import settings
from foodshare.core.errors import (
    AccessDeniedError, IllegalTransitionError, NotFoundError, ValidationError,
)
from foodshare.core.states import is_legal_account
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass
class AccessDecision:
    user: dict
    status: str
    suspension_expired: bool = False

    @property
    def user_id(self) -> str:
        return self.user["id"]


class ModerationGate:
    def __init__(self, store: EntityStore, notifier: Optional[Notifier] = None,
                 clock: Callable[[], datetime] = utcnow,
                 require_verified: Optional[bool] = None):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.require_verified = (
            settings.require_verified_email if require_verified is None else require_verified
        )

    def effective_status(self, user: dict) -> tuple[str, bool]:
        """(effective status, suspension_expired)"""
        status = user.get("account_status") or "active"
        if status != "suspended":
            return status, False
        until = as_aware(user.get("suspended_until"))
        if until is not None and until <= self.clock():
            return "active", True
        return "suspended", False

    async def check(self, user_id: Optional[str], roles: Optional[Iterable[str]] = None) -> AccessDecision:
        if not user_id:
            raise AccessDeniedError("Not signed in")
        user = await self.store.get("users", user_id)
        if not user:
            raise AccessDeniedError("Unknown account")

        status, expired = self.effective_status(user)
        if status == "banned":
            raise AccessDeniedError("Account is banned")
        if status == "suspended":
            until = as_aware(user.get("suspended_until"))
            when = until.isoformat() if until else "further notice"
            raise AccessDeniedError(f"Account is suspended until {when}")
        if self.require_verified and not user.get("email_verified"):
            raise AccessDeniedError("Email address is not verified")
        if roles is not None and user.get("role") not in set(roles):
            raise AccessDeniedError(f"Action not available to role '{user.get('role')}'")
        if expired:
            logger.info("suspension of %s has expired", user_id)
        return AccessDecision(user=user, status=status, suspension_expired=expired)

    async def clear_expired_suspension(self, user_id: str) -> bool:
        """Flip an elapsed suspension back to active. Safe to call from many requests at once."""
        user = await self.store.get("users", user_id)
        if not user:
            return False
        status, expired = self.effective_status(user)
        if not expired:
            return False
        try:
            await self.store.update(
                "users", user_id, {"account_status": "active"},
                unset=["suspended_until"],
                precondition={"account_status": "suspended",
                              "suspended_until": user.get("suspended_until")},
            )
        except PreconditionFailed:
            return False
        logger.info("suspension of %s cleared", user_id)
        return True

    # ---------- admin side ----------
    async def require_admin(self, admin_id: Optional[str]) -> dict:
        admin = await self.store.get("users", admin_id) if admin_id else None
        if not admin or not admin.get("is_admin"):
            raise AccessDeniedError("Admins only")
        return admin

    async def _load(self, user_id: str) -> dict:
        user = await self.store.get("users", user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _transition(self, admin_id: str, user_id: str, dst: str, patch: dict,
                          unset=None, inc=None) -> dict:
        await self.require_admin(admin_id)
        user = await self._load(user_id)
        stored = user.get("account_status")
        src, _ = self.effective_status(user)
        if not is_legal_account(src, dst):
            raise IllegalTransitionError(f"Account cannot go from {src} to {dst}")
        try:
            updated = await self.store.update(
                "users", user_id, {"account_status": dst, **patch},
                unset=unset, inc=inc,
                precondition={"account_status": stored},
            )
        except PreconditionFailed as ex:
            now = (ex.current or {}).get("account_status") or "active"
            raise IllegalTransitionError(f"Account changed concurrently (now {now})")
        logger.info("account %s: %s -> %s by admin %s", user_id, src, dst, admin_id)
        return updated

    async def suspend(self, admin_id: str, user_id: str,
                      until: Optional[datetime] = None, days: Optional[int] = None) -> dict:
        if until is None:
            if days is None or int(days) <= 0:
                raise ValidationError("Suspension needs a positive number of days or an end time",
                                      fields=["days"])
            until = self.clock() + timedelta(days=int(days))
        until = as_aware(until)
        if until <= self.clock():
            raise ValidationError("Suspension end must be in the future", fields=["until"])
        user = await self._transition(admin_id, user_id, "suspended", {"suspended_until": until})
        if self.notifier:
            await self.notifier.notify(user_id, "Account suspended",
                                       f"Your account is suspended until {until.isoformat()}.",
                                       "warning")
        return user

    async def ban(self, admin_id: str, user_id: str) -> dict:
        user = await self._transition(admin_id, user_id, "banned", {}, unset=["suspended_until"])
        if self.notifier:
            await self.notifier.notify(user_id, "Account banned",
                                       "Your account has been banned.", "error")
        return user

    async def reinstate(self, admin_id: str, user_id: str) -> dict:
        await self.require_admin(admin_id)
        user = await self._load(user_id)
        if (user.get("account_status") or "active") != "suspended":
            raise IllegalTransitionError("Only suspended accounts can be reinstated")
        try:
            updated = await self.store.update(
                "users", user_id, {"account_status": "active", "warning_count": 0},
                unset=["suspended_until"],
                precondition={"account_status": "suspended"},
            )
        except PreconditionFailed:
            raise IllegalTransitionError("Account changed concurrently")
        logger.info("account %s reinstated by admin %s", user_id, admin_id)
        if self.notifier:
            await self.notifier.notify(user_id, "Account reinstated",
                                       "Your account is active again.", "success")
        return updated

    async def warn(self, admin_id: str, user_id: str, reason: str = "") -> int:
        await self.require_admin(admin_id)
        try:
            updated = await self.store.update("users", user_id, inc={"warning_count": 1})
        except EntityNotFound:
            raise NotFoundError("User not found")
        count = int(updated.get("warning_count") or 0)
        if self.notifier:
            await self.notifier.notify(user_id, "Warning",
                                       reason or f"You have received a warning (total: {count}).",
                                       "warning")
        return count
