from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.core.db import get_session
from supportdesk.core.security import Principal
from supportdesk.modules.auth.deps import get_principal
from supportdesk.modules.users.schemas import UserOut, UserUpdate
from supportdesk.modules.users.service import UserService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> UserService:
    return UserService(session)

@router.get("/users/me", response_model=UserOut)
async def read_me(principal: Principal = Depends(get_principal), service: UserService = Depends(svc)):
    obj = await service.get(principal.id)
    if not obj:
        raise HTTPException(status_code=404, detail="Profile not found")
    return obj

@router.patch("/users/me", response_model=UserOut)
async def update_me(payload: UserUpdate, principal: Principal = Depends(get_principal), service: UserService = Depends(svc)):
    obj = await service.update_me(principal.id, payload)
    if not obj:
        raise HTTPException(status_code=404, detail="Profile not found")
    return obj
