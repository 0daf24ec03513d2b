from typing import Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.modules.events.models import TicketEvent

class TicketEventRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, *, ticket_id: int, owner_id: str | None, event_type: str) -> TicketEvent:
        obj = TicketEvent(ticket_id=ticket_id, owner_id=owner_id, event_type=event_type)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_after(self, after_id: int, *, owner_id: str | None = None, limit: int = 100) -> Sequence[TicketEvent]:
        """Events newer than ``after_id``; restricted to one owner's tickets when ``owner_id`` is given."""
        q = select(TicketEvent).where(TicketEvent.id > after_id)
        if owner_id is not None:
            q = q.where(TicketEvent.owner_id == owner_id)
        q = q.order_by(TicketEvent.id.asc()).limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def latest_id(self) -> int:
        res = await self.session.execute(select(TicketEvent.id).order_by(TicketEvent.id.desc()).limit(1))
        return res.scalar_one_or_none() or 0
