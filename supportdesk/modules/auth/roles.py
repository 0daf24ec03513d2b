import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core.config import settings
from supportdesk.core.redis import RedisManager
from supportdesk.core.security import AuthUser
from supportdesk.core.timeouts import bounded_wait
from supportdesk.modules.auth.session import SessionEvent
from supportdesk.modules.users.models import ROLES, ROLE_STAFF
from supportdesk.modules.users.repository import UserRepository

log = logging.getLogger(__name__)


def is_staff(role: str | None) -> bool:
    return role == ROLE_STAFF


class RoleResolver:
    """Looks up a user's role from the profile table.

    A missing profile row is normal (not provisioned yet) and resolves to
    ``None``, which callers treat as non-staff.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession], cache: RedisManager | None = None):
        self.session_factory = session_factory
        self.cache = cache

    async def get_role(self, user_id: str) -> str | None:
        if self.cache is not None and self.cache.enabled:
            try:
                cached = await self.cache.get_role(user_id)
                if cached in ROLES:
                    return cached
            except Exception:
                log.warning(f"Role cache read failed for {user_id}", exc_info=True)

        try:
            async with self.session_factory() as session:
                role = await UserRepository(session).get_role(user_id)
        except Exception:
            log.warning(f"Role lookup failed for {user_id}; treating as non-staff", exc_info=True)
            return None

        role = str(role or "").strip().lower() or None
        if role not in ROLES:
            if role is not None:
                log.warning(f"Ignoring unknown role {role!r} for {user_id}")
            return None

        if self.cache is not None and self.cache.enabled:
            try:
                await self.cache.set_role(user_id, role)
            except Exception:
                log.warning(f"Role cache write failed for {user_id}", exc_info=True)
        return role

    async def resolve_with_deadline(self, user_id: str, timeout: float | None = None) -> tuple[bool, str | None]:
        if timeout is None:
            timeout = settings.ROLE_LOOKUP_TIMEOUT_SECONDS
        resolved, role = await bounded_wait(self.get_role(user_id), timeout)
        if not resolved:
            log.info(f"Role lookup for {user_id} did not finish within {timeout}s")
        return resolved, role


def role_cache_listener(cache: RedisManager):
    """Session listener that drops cached roles when a user signs in or out."""
    async def listener(event: SessionEvent, user: AuthUser | None):
        if user is None or event not in (SessionEvent.SIGNED_IN, SessionEvent.SIGNED_OUT):
            return
        await cache.forget_role(user.id)
    return listener
