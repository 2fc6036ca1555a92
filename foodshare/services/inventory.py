# foodshare/services/inventory.py
import logging
import re
from datetime import timedelta
from typing import Any, Dict, List

from foodshare.core.clock import parse_dt, utcnow
from foodshare.core.config import settings
from foodshare.core.errors import NotFoundError, ValidationError
from foodshare.repos.base import EntityNotFound, EntityStore, PreconditionFailed
from foodshare.services.moderation import ModerationGate

logger = logging.getLogger(__name__)

UNITS = {"kg", "lbs", "items", "liters", "boxes"}
FIELDS = {"name", "quantity", "unit", "category", "expiry_date", "low_stock_threshold"}

_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def is_low_stock(item: dict) -> bool:
    m = _NUMBER.match(str(item.get("quantity") or ""))
    if not m:
        return False
    return float(m.group(1)) <= float(item.get("low_stock_threshold") or 0)


class InventoryService:
    def __init__(self, store: EntityStore, gate: ModerationGate):
        self.store = store
        self.gate = gate

    def _clean(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        unknown = sorted(set(data) - FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}", fields=unknown)
        out: Dict[str, Any] = {}
        for key in ("name", "quantity"):
            if key in data or not partial:
                value = str(data.get(key) or "").strip()
                if not value:
                    raise ValidationError("Name and Quantity are required", fields=[key])
                out[key] = value
        if "unit" in data or not partial:
            unit = data.get("unit") or "kg"
            if unit not in UNITS:
                raise ValidationError(f"Unit must be one of {sorted(UNITS)}", fields=["unit"])
            out["unit"] = unit
        if "category" in data or not partial:
            out["category"] = (data.get("category") or "Other").strip()
        if "low_stock_threshold" in data or not partial:
            threshold = data.get("low_stock_threshold")
            out["low_stock_threshold"] = 5 if threshold is None else threshold
            if out["low_stock_threshold"] < 0:
                raise ValidationError("Threshold cannot be negative", fields=["low_stock_threshold"])
        if data.get("expiry_date") is not None:
            out["expiry_date"] = parse_dt(data["expiry_date"])
            if out["expiry_date"] is None:
                raise ValidationError("expiry_date is not a valid date", fields=["expiry_date"])
        elif not partial:
            out["expiry_date"] = utcnow() + timedelta(days=settings.inventory_default_shelf_days)
        return out

    async def list_items(self, owner_id: str) -> List[dict]:
        items = await self.store.find("inventory", {"owner_id": owner_id}, sort=[("name", 1)])
        for it in items:
            it["low_stock"] = is_low_stock(it)
        return items

    async def add_item(self, owner_id: str, data: Dict[str, Any]) -> dict:
        await self.gate.check(owner_id, roles=["ngo"])
        doc = {**self._clean(data, partial=False), "owner_id": owner_id, "last_updated": utcnow()}
        doc["id"] = await self.store.create("inventory", doc)
        doc["low_stock"] = is_low_stock(doc)
        logger.info("inventory item %s added by %s", doc["id"], owner_id)
        return doc

    async def update_item(self, owner_id: str, item_id: str, data: Dict[str, Any]) -> dict:
        await self.gate.check(owner_id, roles=["ngo"])
        patch = self._clean(data, partial=True)
        patch["last_updated"] = utcnow()
        try:
            doc = await self.store.update("inventory", item_id, patch,
                                          precondition={"owner_id": owner_id})
        except (EntityNotFound, PreconditionFailed):
            raise NotFoundError("Item not found")
        doc["low_stock"] = is_low_stock(doc)
        return doc

    async def delete_item(self, owner_id: str, item_id: str) -> None:
        await self.gate.check(owner_id, roles=["ngo"])
        try:
            await self.store.delete("inventory", item_id, precondition={"owner_id": owner_id})
        except (EntityNotFound, PreconditionFailed):
            raise NotFoundError("Item not found")

    async def get_item(self, owner_id: str, item_id: str) -> dict:
        item = await self.store.get("inventory", item_id)
        if not item or item.get("owner_id") != owner_id:
            raise NotFoundError("Item not found")
        item["low_stock"] = is_low_stock(item)
        return item
