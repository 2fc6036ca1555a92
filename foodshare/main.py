# foodshare/main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from foodshare.core.config import settings
from foodshare.core.errors import FoodShareError, PartialUploadError, ValidationError
from foodshare.deps import get_services, set_services
from foodshare.middleware.audit import AuditMiddleware
from foodshare.repos.mongo import MongoEntityStore
from foodshare.routers import (
    admin, ai, auth, captcha, chats, complaints, deliveries, donations, inventory,
    notifications, uploads, users,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

os.makedirs(settings.upload_dir, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = get_services()
    if isinstance(services.store, MongoEntityStore):
        await services.store.ensure_indexes()
    logger.info("FoodShare API up (%s store)", type(services.store).__name__)
    yield
    await services.close()
    set_services(None)


app = FastAPI(lifespan=lifespan, title="FoodShare API")


@app.exception_handler(FoodShareError)
async def foodshare_error_handler(request: Request, exc: FoodShareError):
    body = {"detail": exc.message, "code": exc.code, "refresh": exc.refresh}
    if isinstance(exc, ValidationError):
        body["fields"] = exc.fields
    if isinstance(exc, PartialUploadError):
        body["urls"] = exc.succeeded
        body["failed"] = exc.failed
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(body, status_code=exc.status_code)


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Suspension-Expired"],
)
app.add_middleware(AuditMiddleware)

# ---------------- Include routers ----------------
app.include_router(auth.router)           # /api/auth
app.include_router(users.router)          # /api/users
app.include_router(donations.router)      # /api/donations
app.include_router(deliveries.router)     # /api/deliveries
app.include_router(chats.router)          # /api/chats
app.include_router(notifications.router)  # /api/notifications
app.include_router(complaints.router)     # /api/complaints
app.include_router(admin.router)          # /api/admin
app.include_router(inventory.router)      # /api/inventory
app.include_router(ai.router)             # /api/ai
app.include_router(uploads.router)        # /api/uploads
app.include_router(captcha.router)        # /api/verify-turnstile

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


# Health
@app.get("/health")
def health():
    return {"ok": True}
