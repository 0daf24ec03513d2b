from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.core.db import get_session
from supportdesk.core.security import Principal
from supportdesk.modules.auth.deps import get_principal, require_staff
from supportdesk.modules.automation.bridge import WebhookBridge
from supportdesk.modules.tickets.schemas import (
    TicketCreate, TicketUpdate, TicketOut,
    TicketMessageCreate, TicketMessageOut,
)
from supportdesk.modules.tickets.service import TicketService, TicketAccessDenied

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> TicketService:
    return TicketService(session)

def get_webhook_bridge(request: Request) -> WebhookBridge:
    return request.app.state.webhook_bridge

def _denied(e: TicketAccessDenied) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

# ---- Tickets ----

@router.post("/tickets", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    service: TicketService = Depends(svc),
    bridge: WebhookBridge = Depends(get_webhook_bridge),
):
    try:
        obj = await service.create_ticket(principal, payload)
    except TicketAccessDenied as e:
        raise _denied(e)
    out = TicketOut.model_validate(obj)
    background_tasks.add_task(bridge.notify, "ticket.created", out.model_dump(mode="json"))
    return out

@router.get("/tickets", response_model=list[TicketOut])
async def list_my_tickets(
    principal: Principal = Depends(get_principal),
    service: TicketService = Depends(svc),
):
    return await service.list_for_owner(principal)

@router.get("/tickets/queue", response_model=list[TicketOut])
async def list_staff_queue(
    principal: Principal = Depends(require_staff),
    service: TicketService = Depends(svc),
):
    return await service.list_staff_queue()

@router.get("/tickets/{ticket_id}", response_model=TicketOut)
async def get_ticket(
    ticket_id: int,
    principal: Principal = Depends(get_principal),
    service: TicketService = Depends(svc),
):
    try:
        obj = await service.get_ticket(principal, ticket_id)
    except TicketAccessDenied as e:
        raise _denied(e)
    if not obj:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return obj

@router.patch("/tickets/{ticket_id}", response_model=TicketOut)
async def update_ticket(
    ticket_id: int,
    payload: TicketUpdate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_staff),
    service: TicketService = Depends(svc),
    bridge: WebhookBridge = Depends(get_webhook_bridge),
):
    obj = await service.update_ticket(ticket_id, payload)
    if not obj:
        raise HTTPException(status_code=404, detail="Ticket not found")
    out = TicketOut.model_validate(obj)
    background_tasks.add_task(bridge.notify, "ticket.updated", out.model_dump(mode="json"))
    return out

# ---- Messages ----

@router.post("/tickets/{ticket_id}/messages", response_model=TicketMessageOut, status_code=status.HTTP_201_CREATED)
async def add_message(
    ticket_id: int,
    payload: TicketMessageCreate,
    principal: Principal = Depends(get_principal),
    service: TicketService = Depends(svc),
):
    try:
        obj = await service.add_message(principal, ticket_id, payload)
    except TicketAccessDenied as e:
        raise _denied(e)
    if not obj:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return obj

@router.get("/tickets/{ticket_id}/messages", response_model=list[TicketMessageOut])
async def list_messages(
    ticket_id: int,
    principal: Principal = Depends(get_principal),
    service: TicketService = Depends(svc),
):
    try:
        items = await service.list_messages(principal, ticket_id)
    except TicketAccessDenied as e:
        raise _denied(e)
    if items is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return items
