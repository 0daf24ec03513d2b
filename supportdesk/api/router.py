from fastapi import APIRouter
from supportdesk.modules.users.router import router as users_router
from supportdesk.modules.tickets.router import router as tickets_router
from supportdesk.modules.automation.router import router as automation_router
from supportdesk.modules.realtime.router import router as realtime_router

api_router = APIRouter()
api_router.include_router(users_router, tags=["users"])
api_router.include_router(tickets_router, tags=["tickets"])
api_router.include_router(automation_router, tags=["automation"])
api_router.include_router(realtime_router, tags=["realtime"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
