# foodshare/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.hash import pbkdf2_sha256 as hasher

from foodshare.core.config import settings
from foodshare.core.errors import AuthError


def hash_password(password: str) -> str:
    return hasher.hash(password or "")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return hasher.verify(password or "", hashed or "")
    except ValueError:
        # empty/legacy/invalid hash formats
        return False


def create_token(data: Dict[str, Any], minutes: Optional[int] = None) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + timedelta(minutes=minutes or settings.access_ttl_min)})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_token(token: str, purpose: str = "access") -> Dict[str, Any]:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except JWTError:
        raise AuthError("Invalid or expired token")
    if data.get("purpose", "access") != purpose or not data.get("sub"):
        raise AuthError("Invalid token")
    return data


def create_access_token(uid: str, role: str) -> str:
    return create_token({"sub": uid, "role": role, "purpose": "access"})


def create_verify_token(uid: str, email: str) -> str:
    return create_token({"sub": uid, "email": email, "purpose": "verify_email"},
                        minutes=settings.verify_ttl_min)
