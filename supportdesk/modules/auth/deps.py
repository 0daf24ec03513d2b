from fastapi import Depends, HTTPException, Request, status

from supportdesk.core import db
from supportdesk.core.redis import redis_manager
from supportdesk.core.security import AuthUser, Principal, token_from_request
from supportdesk.modules.auth.roles import RoleResolver, is_staff
from supportdesk.modules.auth.session import SessionContext

def get_session_context(request: Request) -> SessionContext:
    return request.app.state.session_context

def get_role_resolver() -> RoleResolver:
    return RoleResolver(db.SessionLocal, cache=redis_manager)

async def get_current_user(request: Request, sessions: SessionContext = Depends(get_session_context)) -> AuthUser | None:
    return await sessions.get_current_user(token_from_request(request))

async def get_principal(
    user: AuthUser | None = Depends(get_current_user),
    roles: RoleResolver = Depends(get_role_resolver),
) -> Principal:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    role = await roles.get_role(user.id)
    return Principal(**user.model_dump(), role=role)

def require_staff(principal: Principal = Depends(get_principal)) -> Principal:
    if not is_staff(principal.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return principal
