# tests/conftest.py
from datetime import timedelta

import pytest
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager

from foodshare.core.clock import utcnow
from foodshare.core.config import Settings
from foodshare.core.security import create_access_token
from foodshare.deps import Services, set_services
from foodshare.main import app
from foodshare.repos.base import new_id
from foodshare.repos.inmemory import InMemoryEntityStore
from foodshare.services.ai import AIService
from foodshare.services.captcha import TurnstileVerifier
from foodshare.services.storage import LocalObjectStore

# no provider keys, no turnstile secret: nothing leaves the process
OFFLINE = Settings(_env_file=None, openrouter_api_key=None, groq_api_key=None,
                   turnstile_secret_key=None)


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def services(store, tmp_path):
    return Services(
        store,
        objects=LocalObjectStore(str(tmp_path / "uploads"), "http://test"),
        ai=AIService(cfg=OFFLINE),
        captcha=TurnstileVerifier(cfg=OFFLINE),
    )


@pytest.fixture
async def test_client(services):
    set_services(services)
    async with LifespanManager(app):
        transport = ASGITransport(app=app, raise_app_exceptions=True)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    set_services(None)


@pytest.fixture
def make_user(services):
    async def _make(role="donor", name=None, **extra):
        user, _ = await services.accounts.register(
            f"{role}-{new_id()}@example.com", "secret123", name or f"{role.title()} User", role,
            phone="+91 9999999999",
            organization_name="Helping Hands" if role == "ngo" else None,
            address="1 Relief Rd" if role == "ngo" else None,
        )
        if extra:
            user = await services.store.update("users", user["id"], extra)
        return user
    return _make


@pytest.fixture
def make_admin(make_user):
    async def _make():
        return await make_user("volunteer", name="Admin", is_admin=True)
    return _make


def auth(user: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user['id'], user['role'])}"}


def donation_fields(**overrides) -> dict:
    tomorrow = (utcnow() + timedelta(days=1)).replace(hour=18, minute=0, second=0, microsecond=0)
    fields = {
        "title": "Lunch",
        "food_type": "Cooked Food",
        "quantity": "10 servings",
        "expiry_time": tomorrow.isoformat(),
        "location": {"address": "12 Main St"},
        "contact_phone": "+91 9999999999",
    }
    fields.update(overrides)
    return fields
