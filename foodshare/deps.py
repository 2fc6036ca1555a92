# foodshare/deps.py
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, Response, WebSocket
from fastapi.security import OAuth2PasswordBearer

from foodshare.core.config import settings
from foodshare.core.errors import AuthError
from foodshare.core.policy import roles_to_scopes
from foodshare.core.security import decode_token
from foodshare.db import make_store
from foodshare.repos.base import EntityStore
from foodshare.services.accounts import AccountService
from foodshare.services.ai import AIService
from foodshare.services.captcha import TurnstileVerifier
from foodshare.services.chat import ChatCoordinator
from foodshare.services.complaints import ComplaintService
from foodshare.services.inventory import InventoryService
from foodshare.services.lifecycle import DonationLifecycle
from foodshare.services.matching import MatchingService
from foodshare.services.moderation import ModerationGate
from foodshare.services.notifications import Notifier
from foodshare.services.realtime import SubscriptionHub
from foodshare.services.recipes import RecipeBook
from foodshare.services.storage import LocalObjectStore

load_dotenv()


class Services:
    """Everything the routers need, wired around one Entity Store."""

    def __init__(self, store: EntityStore, objects: Optional[LocalObjectStore] = None,
                 ai: Optional[AIService] = None, captcha: Optional[TurnstileVerifier] = None):
        self.store = store
        self.objects = objects or LocalObjectStore(settings.upload_dir, settings.public_base_url)
        self.notifier = Notifier(store)
        self.gate = ModerationGate(store, self.notifier)
        self.accounts = AccountService(store, self.gate)
        self.lifecycle = DonationLifecycle(store, self.gate, self.notifier, self.objects)
        self.matching = MatchingService(store, self.gate, self.notifier)
        self.chats = ChatCoordinator(store, self.gate, self.notifier)
        self.complaints = ComplaintService(store, self.gate)
        self.inventory = InventoryService(store, self.gate)
        self.recipes = RecipeBook(store, self.gate)
        self.ai = ai or AIService()
        self.captcha = captcha or TurnstileVerifier()
        self.hub = SubscriptionHub(store)

    async def close(self) -> None:
        await self.hub.close()
        await self.store.close()


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services(make_store())
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def _load_user(token: str, services: Services) -> dict:
    data = decode_token(token)
    user = await services.store.get("users", data["sub"])
    if not user:
        raise AuthError("User not found")
    return user


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme),
                           services: Services = Depends(get_services)) -> dict:
    user = await _load_user(token, services)
    request.state.user_id = user["id"]
    return user


async def gated_user(response: Response, user=Depends(get_current_user),
                     services: Services = Depends(get_services)) -> dict:
    """Current user, re-checked against the moderation gate on this request."""
    decision = await services.gate.check(user["id"])
    if decision.suspension_expired:
        await services.gate.clear_expired_suspension(user["id"])
        response.headers["X-Suspension-Expired"] = "true"
    return decision.user


def require_scopes(required: List[str]):
    async def checker(user=Depends(gated_user)):
        user_scopes = roles_to_scopes([user.get("role")])
        if not set(required).issubset(set(user_scopes)):
            raise HTTPException(status_code=403, detail="Not enough permissions")
        return user
    return checker


async def require_admin(user=Depends(get_current_user),
                        services: Services = Depends(get_services)) -> dict:
    return await services.gate.require_admin(user["id"])


async def websocket_user(websocket: WebSocket, services: Services) -> Optional[dict]:
    token = websocket.query_params.get("token")
    if not token:
        return None
    try:
        return await _load_user(token, services)
    except AuthError:
        return None
