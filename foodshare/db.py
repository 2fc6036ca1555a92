# foodshare/db.py
from functools import lru_cache

from motor.motor_asyncio import AsyncIOMotorClient

from foodshare.core.config import settings
from foodshare.repos.base import EntityStore


@lru_cache(maxsize=1)
def get_client() -> AsyncIOMotorClient:
    # Cached to play nicely with uvicorn --reload
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True, uuidRepresentation="standard")


def get_db():
    return get_client()[settings.mongo_db]


def make_store() -> EntityStore:
    """MongoDB when ``USE_MONGO`` is set, otherwise the process-local store."""
    if settings.use_mongo:
        from foodshare.repos.mongo import MongoEntityStore
        return MongoEntityStore(get_db())
    from foodshare.repos.inmemory import InMemoryEntityStore
    return InMemoryEntityStore()
