from datetime import datetime
from typing import Any, Sequence
from sqlalchemy import select, and_, or_, func, TIMESTAMP
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.core.base import utcnow
from supportdesk.modules.tickets.models import Ticket, TicketMessage, OPEN_STATUSES
from supportdesk.modules.users.models import User, ROLE_STAFF

# columns the automation backend may not overwrite
IMMUTABLE_COLUMNS = {"id", "created_at"}

class UnknownTicketField(ValueError):
    pass

def _coerce(column_name: str, value: Any) -> Any:
    column = Ticket.__table__.columns[column_name]
    if isinstance(column.type, TIMESTAMP) and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value

class TicketRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Ticket:
        obj = Ticket(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, ticket_id: int) -> Ticket | None:
        res = await self.session.execute(select(Ticket).where(Ticket.id == ticket_id))
        return res.scalar_one_or_none()

    async def list_for_owner(self, owner_id: str, email: str | None = None) -> Sequence[Ticket]:
        owned = Ticket.userid == owner_id
        if email:
            owned = or_(owned, and_(Ticket.userid.is_(None), func.lower(Ticket.email) == email.lower()))
        q = select(Ticket).where(owned).order_by(Ticket.id.desc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_open_not_owned_by_staff(self) -> Sequence[Ticket]:
        # tickets without a profile row (or without an owner) count as non-staff
        q = (
            select(Ticket)
            .outerjoin(User, User.id == Ticket.userid)
            .where(or_(User.role.is_(None), User.role != ROLE_STAFF))
            .where(or_(Ticket.status.is_(None), Ticket.status.in_(OPEN_STATUSES)))
        )
        res = await self.session.execute(q)
        return res.scalars().all()

    async def update_fields(self, ticket_id: int, **data) -> Ticket | None:
        obj = await self.get(ticket_id)
        if not obj:
            return None
        for k, v in data.items():
            setattr(obj, k, v)
        obj.updated_at = utcnow()
        await self.session.flush()
        return obj

    async def apply_updates(self, ticket_id: int, updates: dict) -> Ticket | None:
        """Write arbitrary column updates pushed by the automation backend."""
        columns = set(Ticket.__table__.columns.keys())
        unknown = [k for k in updates if k not in columns or k in IMMUTABLE_COLUMNS]
        if unknown:
            raise UnknownTicketField(f"Cannot update ticket fields: {', '.join(sorted(unknown))}")
        data = {k: _coerce(k, v) for k, v in updates.items()}
        return await self.update_fields(ticket_id, **data)

class TicketMessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ticket_id: int, user_id: str, message: str) -> TicketMessage:
        obj = TicketMessage(ticket_id=ticket_id, user_id=user_id, message=message)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_for_ticket(self, ticket_id: int) -> Sequence[TicketMessage]:
        q = select(TicketMessage).where(
            TicketMessage.ticket_id == ticket_id,
        ).order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc())
        res = await self.session.execute(q)
        return res.scalars().all()
