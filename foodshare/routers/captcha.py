# foodshare/routers/captcha.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from foodshare.deps import Services, get_services
from foodshare.schemas import CaptchaIn

router = APIRouter(prefix="/api", tags=["captcha"])


@router.post("/verify-turnstile")
async def verify_turnstile(request: Request, body: Optional[CaptchaIn] = None,
                           services: Services = Depends(get_services)):
    # Cloudflare sets the real client address when proxied
    ip = request.headers.get("cf-connecting-ip") or (request.client.host if request.client else None)
    status, payload = await services.captcha.verify(body.token if body else None, ip)
    return JSONResponse(payload, status_code=status)


@router.api_route("/verify-turnstile", methods=["GET", "PUT", "PATCH", "DELETE"],
                  include_in_schema=False)
async def verify_turnstile_wrong_method():
    return JSONResponse({"success": False, "message": "Method not allowed"}, status_code=405,
                        headers={"Allow": "POST"})
