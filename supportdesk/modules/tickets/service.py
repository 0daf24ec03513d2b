import logging
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.core.base import utcnow
from supportdesk.core.security import Principal
from supportdesk.modules.events.repository import TicketEventRepository
from supportdesk.modules.tickets.models import (
    Ticket, TicketMessage, DEFAULT_CATEGORY, DEFAULT_URGENCY, DEFAULT_STATUS, OPEN_STATUSES
)
from supportdesk.modules.tickets.repository import TicketRepository, TicketMessageRepository
from supportdesk.modules.tickets.schemas import TicketCreate, TicketUpdate, TicketMessageCreate, TicketMessageOut
from supportdesk.modules.users.repository import UserRepository

log = logging.getLogger(__name__)

URGENCY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}

class TicketAccessDenied(Exception):
    pass

def staff_queue_key(ticket: Ticket) -> tuple[int, int]:
    # unknown or missing urgency ranks as medium
    rank = URGENCY_RANK.get(ticket.urgency or DEFAULT_URGENCY, URGENCY_RANK[DEFAULT_URGENCY])
    return (-rank, -int(ticket.id))

def sort_staff_queue(tickets: Sequence[Ticket]) -> list[Ticket]:
    """Highest urgency first; newest (highest id) first within an urgency."""
    return sorted(tickets, key=staff_queue_key)

def owns(principal: Principal, ticket: Ticket) -> bool:
    if ticket.userid is not None:
        return ticket.userid == principal.id
    return bool(ticket.email and principal.email) and ticket.email.lower() == principal.email.lower()

def can_view(principal: Principal, ticket: Ticket) -> bool:
    return principal.is_staff or owns(principal, ticket)

class TicketService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.tickets = TicketRepository(session)
        self.messages = TicketMessageRepository(session)
        self.users = UserRepository(session)
        self.events = TicketEventRepository(session)

    # ---- Tickets ----
    async def create_ticket(self, principal: Principal, payload: TicketCreate) -> Ticket:
        if payload.userid and payload.userid != principal.id:
            log.warning(f"User {principal.id} tried to file a ticket as {payload.userid}")
            raise TicketAccessDenied("Tickets can only be filed for yourself")
        obj = await self.tickets.create(
            userid=principal.id,
            email=principal.email or None,
            operating_system=payload.operating_system,
            issue_description=payload.description,
            department=payload.department,
            category=DEFAULT_CATEGORY,
            urgency=DEFAULT_URGENCY,
            status=DEFAULT_STATUS,
        )
        await self.events.record(ticket_id=obj.id, owner_id=obj.userid, event_type="ticket.created")
        await self.session.commit()
        log.info(f"Ticket #{obj.id} created by {principal.id}")
        return obj

    async def get_ticket(self, principal: Principal, ticket_id: int) -> Ticket | None:
        obj = await self.tickets.get(ticket_id)
        if obj is None:
            return None
        if not can_view(principal, obj):
            raise TicketAccessDenied("You do not have permission to view this ticket")
        return obj

    async def list_for_owner(self, principal: Principal) -> Sequence[Ticket]:
        return await self.tickets.list_for_owner(principal.id, principal.email)

    async def list_staff_queue(self) -> list[Ticket]:
        return sort_staff_queue(await self.tickets.list_open_not_owned_by_staff())

    async def update_ticket(self, ticket_id: int, payload: TicketUpdate) -> Ticket | None:
        data = payload.model_dump(exclude_unset=True)
        if "assigned_to" in data and not (data["assigned_to"] or "").strip():
            data["assigned_to"] = None
        obj = await self.tickets.get(ticket_id)
        if not obj:
            return None
        if data.get("status") == "resolved" and obj.status != "resolved":
            data["resolved_at"] = utcnow()
        elif data.get("status") in OPEN_STATUSES:
            data["resolved_at"] = None
        obj = await self.tickets.update_fields(ticket_id, **data)
        await self.events.record(ticket_id=obj.id, owner_id=obj.userid, event_type="ticket.updated")
        await self.session.commit()
        log.info(f"Ticket #{obj.id} updated: {sorted(data)}")
        return obj

    async def apply_automation_update(self, ticket_id: int, updates: dict) -> Ticket | None:
        obj = await self.tickets.apply_updates(ticket_id, updates)
        if not obj:
            return None
        await self.events.record(ticket_id=obj.id, owner_id=obj.userid, event_type="ticket.updated")
        await self.session.commit()
        return obj

    # ---- Messages ----
    async def add_message(self, principal: Principal, ticket_id: int, payload: TicketMessageCreate) -> TicketMessageOut | None:
        t = await self.get_ticket(principal, ticket_id)
        if not t:
            return None
        obj = await self.messages.create(ticket_id, principal.id, payload.message)
        await self.events.record(ticket_id=t.id, owner_id=t.userid, event_type="message.created")
        await self.session.commit()
        return (await self._with_authors([obj]))[0]

    async def list_messages(self, principal: Principal, ticket_id: int) -> list[TicketMessageOut] | None:
        t = await self.get_ticket(principal, ticket_id)
        if not t:
            return None
        return await self._with_authors(await self.messages.list_for_ticket(ticket_id))

    async def _with_authors(self, messages: Sequence[TicketMessage]) -> list[TicketMessageOut]:
        authors = {u.id: u for u in await self.users.get_many(m.user_id for m in messages)}
        out = []
        for m in messages:
            author = authors.get(m.user_id)
            email = author.email if author else None
            name = (author.name if author else None) or (email.split("@")[0] if email else None) or "Unknown User"
            out.append(TicketMessageOut(
                id=m.id, ticket_id=m.ticket_id, user_id=m.user_id, message=m.message,
                created_at=m.created_at, user_email=email, user_name=name,
            ))
        return out
