# foodshare/services/ai.py
"""
Food image analysis and "zero waste" recipe suggestions.

Providers are tried in order (OpenRouter, then Groq). These are external and
unreliable, so callers never see their failures: analysis falls back to a
fixed "verify manually" answer and recipes fall back to an empty list.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from foodshare.core.config import Settings, settings as default_settings
from foodshare.core.errors import UpstreamUnavailableError, ValidationError

logger = logging.getLogger(__name__)

FALLBACK_ANALYSIS = {
    "freshness_score": 85,
    "is_edible": True,
    "tags": ["AI_FALLBACK", "Manual Verify"],
    "safety_notes": "AI Service unavailable. Please verify manually.",
    "estimated_shelf_life": "Unknown",
}

ANALYSIS_PROMPT = """
Analyze this food image for donation safety.
Provide a JSON response with:
{
  "freshnessScore": number (0-100),
  "isEdible": boolean,
  "tags": string[] (e.g., "cooked", "raw", "fruits", "packaged"),
  "safetyNotes": string (short observation),
  "estimatedShelfLife": string (e.g., "24 hours")
}
Be conservative. If unsafe, isEdible=false.
"""

RECIPE_PROMPT = """
Suggest 3 creative "Zero Waste" recipes using: {ingredients}.
Return JSON array of objects:
{{
  "title": string,
  "description": string,
  "difficulty": string,
  "time": string,
  "ingredients": string[],
  "instructions": string[]
}}
"""


def fallback_analysis() -> dict:
    return {**FALLBACK_ANALYSIS, "tags": list(FALLBACK_ANALYSIS["tags"])}


def strip_fences(content: str) -> str:
    if not isinstance(content, str):
        raise ValueError("provider reply has no text content")
    return content.replace("```json", "").replace("```", "").strip()


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default


def _score(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"freshnessScore is not a number: {value!r}")
    try:
        return max(0, min(100, int(float(value))))
    except OverflowError as ex:
        raise ValueError(f"freshnessScore out of range: {value!r}") from ex


def _str_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValueError(f"{name} is not a list")
    return [str(i) for i in value]


def normalize_analysis(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("analysis is not an object")
    score = _pick(data, "freshnessScore", "freshness_score")
    edible = _pick(data, "isEdible", "is_edible")
    if score is None or edible is None:
        raise ValueError("analysis is missing freshnessScore/isEdible")
    tags = _pick(data, "tags", default=[])
    return {
        "freshness_score": _score(score),
        "is_edible": bool(edible),
        "tags": [str(t) for t in tags] if isinstance(tags, list) else [],
        "safety_notes": str(_pick(data, "safetyNotes", "safety_notes", default="")),
        "estimated_shelf_life": str(_pick(data, "estimatedShelfLife", "estimated_shelf_life",
                                          default="Unknown")),
    }


def normalize_recipes(data: Any) -> List[dict]:
    if isinstance(data, dict):
        data = data.get("recipes", [])
    if not isinstance(data, list):
        raise ValueError("recipes are not a list")
    out = []
    for r in data:
        if not isinstance(r, dict) or not r.get("title"):
            continue
        out.append({
            "title": str(r["title"]),
            "description": str(r.get("description") or ""),
            "difficulty": str(r.get("difficulty") or ""),
            "time": str(r.get("time") or ""),
            "ingredients": _str_list(r.get("ingredients"), "ingredients"),
            "instructions": _str_list(r.get("instructions"), "instructions"),
        })
    return out


class AIService:
    def __init__(self, cfg: Optional[Settings] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.cfg = cfg or default_settings
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.cfg.ai_timeout_s, connect=5.0)
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    async def _chat(self, provider: str, url: str, key: Optional[str], model: str,
                    messages: list, max_tokens: Optional[int] = None) -> str:
        if not key:
            raise UpstreamUnavailableError(f"{provider} key missing")
        body: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }
        if max_tokens:
            body["max_tokens"] = max_tokens
        headers = {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}
        if provider == "openrouter":
            headers["HTTP-Referer"] = self.cfg.app_url
            headers["X-Title"] = self.cfg.app_title
        try:
            async with self._client() as client:
                r = await client.post(url, json=body, headers=headers)
                r.raise_for_status()
                return r.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as ex:
            raise UpstreamUnavailableError(f"{provider} ({model}) failed: {ex}") from ex

    def _providers(self, vision: bool):
        c = self.cfg
        yield ("openrouter", c.openrouter_url, c.openrouter_api_key, c.openrouter_vision_model, None)
        yield ("groq", c.groq_url, c.groq_api_key,
               c.groq_vision_model if vision else c.groq_text_model, 500)

    async def analyze_image(self, image_base64: str) -> dict:
        image = (image_base64 or "").strip()
        if not image:
            raise ValidationError("An image is required", fields=["image_base64"])
        if not image.startswith("data:"):
            image = f"data:image/jpeg;base64,{image}"
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": ANALYSIS_PROMPT},
                {"type": "image_url", "image_url": {"url": image}},
            ],
        }]
        for provider, url, key, model, max_tokens in self._providers(vision=True):
            try:
                content = await self._chat(provider, url, key, model, messages, max_tokens)
                return normalize_analysis(json.loads(strip_fences(content)))
            except (UpstreamUnavailableError, TypeError, ValueError) as ex:
                logger.warning("image analysis via %s failed: %s", provider, ex)
        return fallback_analysis()

    async def suggest_recipes(self, ingredients: List[str]) -> List[dict]:
        items = [i.strip() for i in ingredients or [] if i and i.strip()]
        if not items:
            raise ValidationError("Add at least one ingredient", fields=["ingredients"])
        messages = [{"role": "user", "content": RECIPE_PROMPT.format(ingredients=", ".join(items))}]
        for provider, url, key, model, max_tokens in self._providers(vision=False):
            try:
                content = await self._chat(provider, url, key, model, messages, max_tokens)
                return normalize_recipes(json.loads(strip_fences(content)))
            except (UpstreamUnavailableError, TypeError, ValueError) as ex:
                logger.warning("recipe suggestions via %s failed: %s", provider, ex)
        return []
