from fastapi import Request
from fastapi.security.utils import get_authorization_scheme_param
from jose import jwt, JWTError
from pydantic import BaseModel
from supportdesk.core.config import settings

class AuthUser(BaseModel):
    id: str
    email: str = ""
    user_metadata: dict = {}

    @property
    def display_name(self) -> str | None:
        name = str(self.user_metadata.get("name") or "").strip()
        if name:
            return name
        local = self.email.split("@")[0].strip() if self.email else ""
        return local or None

class Principal(AuthUser):
    role: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role == "staff"

def decode_token(token: str) -> dict:
    """Verify an auth-service access token. Raises JWTError on any failure."""
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALG],
        audience=settings.REQUIRED_AUDIENCE,
        options={"verify_aud": settings.REQUIRED_AUDIENCE is not None},
    )

def user_from_claims(claims: dict) -> AuthUser | None:
    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        return None
    meta = claims.get("user_metadata") or {}
    if not isinstance(meta, dict):
        meta = {}
    return AuthUser(id=user_id, email=str(claims.get("email") or "").strip(), user_metadata=meta)

def user_from_token(token: str | None) -> AuthUser | None:
    if not token:
        return None
    try:
        claims = decode_token(token)
    except JWTError:
        return None
    return user_from_claims(claims)

def token_from_request(request: Request) -> str | None:
    scheme, param = get_authorization_scheme_param(request.headers.get("authorization"))
    if scheme.lower() == "bearer" and param:
        return param
    return request.cookies.get(settings.ACCESS_TOKEN_COOKIE) or None
