import asyncio
import json
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from supportdesk.core import db
from supportdesk.core.security import Principal
from supportdesk.modules.auth.deps import get_principal
from supportdesk.modules.events.repository import TicketEventRepository

router = APIRouter()
log = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0

def format_event(ev) -> str:
    data = json.dumps({
        "id": ev.id,
        "type": ev.event_type,
        "ticket_id": ev.ticket_id,
        "occurred_at": ev.occurred_at.isoformat() if ev.occurred_at else None,
    }, separators=(",", ":"))
    return f"id: {ev.id}\nevent: ticket\ndata: {data}\n\n"

async def event_stream(principal: Principal, after: int | None, *, poll_interval: float = POLL_INTERVAL_SECONDS, max_polls: int | None = None):
    """Poll the ticket change log and yield server-sent events the caller may see.

    Any poll failure ends the stream; clients fall back to manual refresh.
    """
    owner_id = None if principal.is_staff else principal.id
    polls = 0
    try:
        last_seen = after
        while max_polls is None or polls < max_polls:
            polls += 1
            async with db.SessionLocal() as s:
                repo = TicketEventRepository(s)
                if last_seen is None:
                    last_seen = await repo.latest_id()
                rows = await repo.list_after(last_seen, owner_id=owner_id)
            for r in rows:
                last_seen = r.id
                yield format_event(r)
            if max_polls is None or polls < max_polls:
                await asyncio.sleep(poll_interval)
    except Exception:
        log.warning(f"Realtime feed for {principal.id} stopped; clients fall back to manual refresh", exc_info=True)

@router.get("/realtime/tickets")
async def realtime_tickets(after: int | None = None, principal: Principal = Depends(get_principal)):
    return StreamingResponse(event_stream(principal, after), media_type="text/event-stream")
