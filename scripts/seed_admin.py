# scripts/seed_admin.py
"""
Grant admin rights to an existing account, or create one.

    python scripts/seed_admin.py admin@foodshare.local secret123

Admin rights live in the stored ``is_admin`` flag; nothing in the API sets it.
"""
import asyncio
import logging
import sys

from foodshare.db import make_store
from foodshare.services.accounts import AccountService
from foodshare.services.moderation import ModerationGate

logger = logging.getLogger("seed_admin")


async def main(email: str, password: str):
    store = make_store()
    try:
        claim = await store.get("emails", email.strip().lower())
        if claim:
            uid = claim["uid"]
        else:
            accounts = AccountService(store, ModerationGate(store))
            user, _ = await accounts.register(email, password, "Administrator", "volunteer")
            uid = user["id"]
        await store.update("users", uid, {"is_admin": True, "email_verified": True})
        logger.info("admin seeded: %s (%s)", email, uid)
    finally:
        await store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) != 3:
        sys.exit("usage: seed_admin.py EMAIL PASSWORD")
    asyncio.run(main(sys.argv[1], sys.argv[2]))
