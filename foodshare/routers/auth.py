# foodshare/routers/auth.py
from fastapi import APIRouter, Depends, Form

from foodshare.core.security import create_access_token
from foodshare.deps import Services, get_current_user, get_services
from foodshare.routers.serializers import user_out
from foodshare.schemas import RegisterIn, TokenOut, VerifyEmailIn

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(body: RegisterIn, services: Services = Depends(get_services)):
    user, verify_token = await services.accounts.register(
        body.email, body.password, body.display_name, body.role,
        phone=body.phone, organization_name=body.organization_name, address=body.address,
    )
    return {
        "user": user_out(user),
        "access_token": create_access_token(user["id"], user["role"]),
        "token_type": "bearer",
        # mailed by the frontend; returned so the address can be confirmed
        "verify_token": verify_token,
    }


@router.post("/login", response_model=TokenOut)
async def login(email: str = Form(...), password: str = Form(...),
                services: Services = Depends(get_services)):
    user = await services.accounts.authenticate(email, password)
    return {
        "access_token": create_access_token(user["id"], user["role"]),
        "token_type": "bearer",
        "role": user["role"],
        "user_id": user["id"],
    }


@router.post("/verify-email")
async def verify_email(body: VerifyEmailIn, services: Services = Depends(get_services)):
    user = await services.accounts.verify_email(body.token)
    return {"ok": True, "email_verified": user.get("email_verified", False)}


@router.get("/me")
async def me(user=Depends(get_current_user)):
    return user_out(user)
