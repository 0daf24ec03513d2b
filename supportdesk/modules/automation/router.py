import logging
import secrets
from json import JSONDecodeError

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core.config import settings
from supportdesk.core.db import get_session
from supportdesk.modules.automation.schemas import (
    ChatConfigOut, CHAT_TITLE, CHAT_SUBTITLE, CHAT_INITIAL_MESSAGES
)
from supportdesk.modules.tickets.schemas import TicketOut
from supportdesk.modules.tickets.service import TicketService

router = APIRouter()
logger = logging.getLogger(__name__)

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})

def _ticket_id(value) -> int | None:
    # positive ints or digit strings; bools and floats are rejected
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        value = value.strip()
        if value.isascii() and value.isdigit():
            return int(value) or None
    return None

@router.post("/webhooks/n8n", status_code=status.HTTP_200_OK)
async def handle_ticket_update(request: Request, db: AsyncSession = Depends(get_session)):
    """
    Called by n8n (HTTP Request node) to push enrichment back onto a ticket:
    urgency, category, AI suggestions and the like.
    Body: {"event": str, "ticketId": str | int, "updates": {...}}
    """
    if settings.N8N_WEBHOOK_SECRET:
        supplied = request.headers.get("x-webhook-secret") or ""
        if not secrets.compare_digest(supplied, settings.N8N_WEBHOOK_SECRET):
            logger.warning("Rejected n8n webhook call with a bad shared secret")
            return _error(status.HTTP_401_UNAUTHORIZED, "Invalid webhook secret")

    try:
        body = await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")
    if not isinstance(body, dict):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    event = body.get("event")
    ticket_id = body.get("ticketId")
    updates = body.get("updates")
    if not ticket_id or updates is None or not isinstance(updates, dict):
        return _error(status.HTTP_400_BAD_REQUEST, "Missing ticketId or updates")
    ticket_pk = _ticket_id(ticket_id)
    if ticket_pk is None:
        logger.warning(f"n8n update with malformed ticketId {ticket_id!r} ({event})")
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid ticketId")

    try:
        obj = await TicketService(db).apply_automation_update(ticket_pk, updates)
    except Exception as e:
        await db.rollback()
        logger.error(f"Error updating ticket {ticket_id} from n8n ({event}): {e}", exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update ticket")
    if obj is None:
        logger.error(f"n8n update for unknown ticket {ticket_id} ({event})")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update ticket")

    logger.info(f"Ticket #{obj.id} updated by n8n ({event}): {sorted(updates)}")
    return {"success": True, "ticket": TicketOut.model_validate(obj).model_dump(mode="json")}

@router.get("/automation/chat-config", response_model=ChatConfigOut)
async def chat_config():
    if not settings.N8N_CHAT_WEBHOOK_URL:
        return ChatConfigOut(enabled=False)
    return ChatConfigOut(
        enabled=True,
        webhook_url=settings.N8N_CHAT_WEBHOOK_URL,
        title=CHAT_TITLE,
        subtitle=CHAT_SUBTITLE,
        initial_messages=CHAT_INITIAL_MESSAGES,
    )
