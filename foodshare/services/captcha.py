# foodshare/services/captcha.py
import logging
from typing import Optional, Tuple

import httpx

from foodshare.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class TurnstileVerifier:
    """Server side of the CAPTCHA challenge: forwards the token with the secret."""

    def __init__(self, cfg: Optional[Settings] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.cfg = cfg or default_settings
        self.transport = transport

    async def verify(self, token: Optional[str], remote_ip: Optional[str]) -> Tuple[int, dict]:
        """Returns (http status, body) for the verify endpoint."""
        if not token:
            return 400, {"success": False, "message": "Token is required"}

        secret = self.cfg.turnstile_secret_key
        if not secret:
            logger.error("TURNSTILE_SECRET_KEY is not defined")
            return 500, {"success": False, "message": "Server configuration error"}

        form = {"secret": secret, "response": token, "remoteip": remote_ip or ""}
        try:
            timeout = httpx.Timeout(10.0, connect=5.0)
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                r = await client.post(self.cfg.turnstile_verify_url, data=form)
                outcome = r.json()
        except (httpx.HTTPError, ValueError):
            logger.exception("turnstile verification error")
            return 500, {"success": False, "message": "Internal server error during verification"}

        if outcome.get("success"):
            return 200, {"success": True, "message": "Token verified successfully"}
        errors = outcome.get("error-codes") or []
        logger.warning("turnstile verification failed: %s", errors)
        return 403, {"success": False, "message": "Verification failed", "errors": errors}
