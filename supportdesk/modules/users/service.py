import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from supportdesk.core.security import AuthUser
from supportdesk.modules.users.models import User, ROLE_USER
from supportdesk.modules.users.repository import UserRepository
from supportdesk.modules.users.schemas import UserUpdate

log = logging.getLogger(__name__)

DEFAULT_DEPARTMENT = "student"

class UserService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)

    async def provision(self, user: AuthUser, name: str | None = None) -> tuple[User, bool]:
        """Return the profile for ``user``, creating it on first sign-in."""
        existing = await self.users.get(user.id)
        if existing:
            return existing, False
        try:
            obj = await self.users.create(
                id=user.id,
                email=user.email,
                name=name or user.display_name,
                role=ROLE_USER,
                department=DEFAULT_DEPARTMENT,
            )
            await self.session.commit()
        except IntegrityError:
            # a concurrent sign-in created it first
            await self.session.rollback()
            existing = await self.users.get(user.id)
            if existing is None:
                raise
            return existing, False
        log.info(f"Provisioned profile for user {user.id}")
        return obj, True

    async def get(self, user_id: str) -> User | None:
        return await self.users.get(user_id)

    async def update_me(self, user_id: str, payload: UserUpdate) -> User | None:
        obj = await self.users.update_fields(user_id, **payload.model_dump(exclude_unset=True))
        if obj:
            await self.session.commit()
        return obj
