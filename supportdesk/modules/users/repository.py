from typing import Iterable, Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.modules.users.models import User

class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> User | None:
        res = await self.session.execute(select(User).where(User.id == user_id))
        return res.scalar_one_or_none()

    async def get_role(self, user_id: str) -> str | None:
        res = await self.session.execute(select(User.role).where(User.id == user_id))
        return res.scalar_one_or_none()

    async def get_many(self, user_ids: Iterable[str]) -> Sequence[User]:
        ids = {u for u in user_ids if u}
        if not ids:
            return []
        res = await self.session.execute(select(User).where(User.id.in_(ids)))
        return res.scalars().all()

    async def create(self, **data) -> User:
        obj = User(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update_fields(self, user_id: str, **data) -> User | None:
        obj = await self.get(user_id)
        if not obj:
            return None
        for k, v in data.items():
            setattr(obj, k, v)
        await self.session.flush()
        return obj
