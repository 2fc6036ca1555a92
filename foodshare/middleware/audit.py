# foodshare/middleware/audit.py
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from foodshare.deps import get_services

logger = logging.getLogger(__name__)


class AuditMiddleware(BaseHTTPMiddleware):
    """Writes one audit row per HTTP request; never fails the request."""

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        entry = {
            "ts": time.time(),
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "user_id": getattr(request.state, "user_id", None),
            "ip": request.client.host if request.client else None,
            "ua": request.headers.get("user-agent"),
            "latency_ms": int((time.time() - start) * 1000),
        }
        try:
            await get_services().store.create("audit", entry)
        except Exception:
            logger.warning("audit entry for %s %s dropped", request.method, request.url.path,
                           exc_info=True)
        return response
