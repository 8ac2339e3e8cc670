from dataclasses import dataclass
from typing import Optional

import requests
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AuthError
from .settings import settings

security = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None


def verify_token(token: str) -> Optional[AuthUser]:
    """Ask Supabase Auth who owns the token. None when it is rejected."""
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise AuthError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY", code="auth_unavailable")
    try:
        r = requests.get(
            f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/user",
            headers={
                "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
                "Authorization": f"Bearer {token}",
            },
            timeout=10,
        )
    except requests.RequestException:
        return None
    if not r.ok:
        return None
    data = r.json() or {}
    if not data.get("id"):
        return None
    return AuthUser(id=data["id"], email=data.get("email"))


def require_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> AuthUser:
    if creds is None or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise AuthError(code="missing_bearer")
    user = verify_token(creds.credentials)
    if user is None:
        raise AuthError(code="invalid_token")
    return user
