"""Auth-gated page shell.

Every screen runs the same state machine before it decides what to show:

    checking -> anonymous
             -> authenticated-unknown-role -> authenticated-user
                                           -> authenticated-staff

The session check and the role lookup each run under a bounded wait; when
the role lookup misses its deadline the page renders best-effort content
in ``authenticated-unknown-role`` instead of blocking. Data access is
still authorized per request by the API, so best-effort content never
widens what a caller can read.

Use it as an async context manager so pending lookups and the session
subscription are released when the page is done::

    async with AuthGate(sessions, roles, PagePolicy.STAFF_ONLY) as gate:
        outcome = await gate.resolve(token, "/staff")
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal
from urllib.parse import urlencode

from supportdesk.core.config import settings
from supportdesk.core.security import AuthUser
from supportdesk.core.timeouts import bounded_wait
from supportdesk.modules.auth.session import SessionEvent
from supportdesk.modules.users.models import ROLE_STAFF

log = logging.getLogger(__name__)

LOGIN_PATH = "/login"
HOME_PATH = "/"
STAFF_HOME_PATH = "/staff"


class GateState(str, Enum):
    CHECKING = "checking"
    ANONYMOUS = "anonymous"
    UNKNOWN_ROLE = "authenticated-unknown-role"
    USER = "authenticated-user"
    STAFF = "authenticated-staff"


class PagePolicy(str, Enum):
    PUBLIC = "public"          # anyone; staff are sent to their queue
    MEMBER = "member"          # any signed-in user
    STAFF_ONLY = "staff_only"  # staff; others go home


@dataclass
class GateOutcome:
    kind: Literal["loading", "redirect", "content"]
    state: GateState
    user: AuthUser | None = None
    role: str | None = None
    location: str | None = None


def login_redirect(requested_path: str) -> str:
    return f"{LOGIN_PATH}?{urlencode({'redirect': requested_path or HOME_PATH})}"


class AuthGate:
    def __init__(
        self,
        sessions,
        roles,
        policy: PagePolicy,
        *,
        session_timeout: float | None = None,
        role_timeout: float | None = None,
    ):
        self.sessions = sessions
        self.roles = roles
        self.policy = policy
        self.session_timeout = settings.SESSION_CHECK_TIMEOUT_SECONDS if session_timeout is None else session_timeout
        self.role_timeout = settings.ROLE_LOOKUP_TIMEOUT_SECONDS if role_timeout is None else role_timeout

        self.state = GateState.CHECKING
        self.user: AuthUser | None = None
        self.role: str | None = None
        self.requested_path = HOME_PATH
        self._redirect: str | None = None
        self._closed = False
        self._pending: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    async def __aenter__(self) -> "AuthGate":
        self._subscribe()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- Internal transitions; all are no-ops once closed ----
    def _subscribe(self):
        if self._unsubscribe is None and not self._closed:
            self._unsubscribe = self.sessions.subscribe(self._on_session_event)

    def _transition(self, state: GateState) -> bool:
        if self._closed:
            return False
        if state != self.state:
            log.debug(f"Gate {self.policy.value} {self.requested_path}: {self.state.value} -> {state.value}")
            self.state = state
        return True

    def _redirect_once(self, location: str):
        if self._closed or self._redirect is not None:
            return
        self._redirect = location

    def _spawn(self, aw) -> asyncio.Task:
        task = asyncio.ensure_future(aw)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _become_anonymous(self):
        if not self._transition(GateState.ANONYMOUS):
            return
        self.user = None
        self.role = None
        if self.policy != PagePolicy.PUBLIC:
            self._redirect_once(login_redirect(self.requested_path))

    def _apply_role(self, role: str | None):
        if self._closed:
            return
        self.role = role
        if role == ROLE_STAFF:
            self._transition(GateState.STAFF)
            if self.policy == PagePolicy.PUBLIC:
                self._redirect_once(STAFF_HOME_PATH)
        else:
            self._transition(GateState.USER)
            if self.policy == PagePolicy.STAFF_ONLY:
                self._redirect_once(HOME_PATH)

    async def _on_session_event(self, event: SessionEvent, user: AuthUser | None):
        if self._closed or event != SessionEvent.SIGNED_OUT or self.user is None:
            return
        if user is None or user.id != self.user.id:
            return
        for task in list(self._pending):
            task.cancel()
        self._become_anonymous()

    # ---- Public API ----
    async def resolve(self, access_token: str | None, requested_path: str = HOME_PATH) -> GateOutcome:
        self.requested_path = requested_path or HOME_PATH
        self._subscribe()

        resolved, user = await bounded_wait(self._spawn(self.sessions.get_current_user(access_token)), self.session_timeout)
        if self._closed:
            return self.outcome()
        if not resolved:
            log.warning(f"Session check timed out after {self.session_timeout}s; treating as signed out")
            user = None
        if user is None:
            self._become_anonymous()
            return self.outcome()

        self.user = user
        self._transition(GateState.UNKNOWN_ROLE)

        resolved, role = await bounded_wait(self._spawn(self.roles.get_role(user.id)), self.role_timeout)
        if self._closed or self.state != GateState.UNKNOWN_ROLE:
            return self.outcome()
        if not resolved:
            log.info(f"Role lookup for {user.id} timed out after {self.role_timeout}s; rendering best-effort content")
            return self.outcome()
        self._apply_role(role)
        return self.outcome()

    def outcome(self) -> GateOutcome:
        if self._redirect is not None:
            kind = "redirect"
        elif self.state == GateState.CHECKING:
            kind = "loading"
        else:
            kind = "content"
        return GateOutcome(kind=kind, state=self.state, user=self.user, role=self.role, location=self._redirect)

    async def close(self):
        if self._closed:
            return
        self._closed = True
        for task in list(self._pending):
            task.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
