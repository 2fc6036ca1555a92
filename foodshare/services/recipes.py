# foodshare/services/recipes.py
from typing import List

from foodshare.core.clock import utcnow
from foodshare.core.errors import NotFoundError, ValidationError
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.ai import normalize_recipes
from foodshare.services.moderation import ModerationGate


class RecipeBook:
    """Recipes a user kept from the suggestions."""

    def __init__(self, store: EntityStore, gate: ModerationGate):
        self.store = store
        self.gate = gate

    async def save(self, user_id: str, recipe: dict) -> dict:
        await self.gate.check(user_id)
        cleaned = normalize_recipes([recipe])
        if not cleaned:
            raise ValidationError("A recipe needs a title", fields=["title"])
        doc = {**cleaned[0], "owner_id": user_id, "saved_at": utcnow()}
        doc["id"] = await self.store.create("saved_recipes", doc)
        return doc

    async def list(self, user_id: str) -> List[dict]:
        return await self.store.find("saved_recipes", {"owner_id": user_id}, sort=[("saved_at", -1)])

    async def delete(self, user_id: str, recipe_id: str) -> None:
        try:
            await self.store.delete("saved_recipes", recipe_id, precondition={"owner_id": user_id})
        except (EntityNotFound, PreconditionFailed):
            raise NotFoundError("Recipe not found")
