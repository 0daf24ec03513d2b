# tests/test_auth_gate.py
import asyncio

from supportdesk.core.security import AuthUser
from supportdesk.core.timeouts import bounded_wait
from supportdesk.modules.auth.gate import AuthGate, GateState, PagePolicy, login_redirect
from supportdesk.modules.auth.session import SessionEvent

ALICE = AuthUser(id="u-a", email="a@uvm.edu")


class FakeSessions:
    def __init__(self, user=None, delay=0.0):
        self.user = user
        self.delay = delay
        self.listeners = []

    async def get_current_user(self, token):
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.user if token else None

    def subscribe(self, listener):
        self.listeners.append(listener)

        def unsubscribe():
            if listener in self.listeners:
                self.listeners.remove(listener)
        return unsubscribe

    async def publish(self, event, user):
        for listener in list(self.listeners):
            await listener(event, user)


class FakeRoles:
    def __init__(self, role=None, delay=0.0):
        self.role = role
        self.delay = delay
        self.calls = 0
        self.cancelled = False

    async def get_role(self, user_id):
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return self.role


def resolve(policy, *, user=ALICE, role=None, token="tok", path="/", session_delay=0.0, role_delay=0.0, role_timeout=1.0):
    sessions = FakeSessions(user, delay=session_delay)
    roles = FakeRoles(role, delay=role_delay)

    async def scenario():
        async with AuthGate(sessions, roles, policy, session_timeout=0.5, role_timeout=role_timeout) as gate:
            outcome = await gate.resolve(token, path)
        await asyncio.sleep(0.01)
        return outcome

    return asyncio.run(scenario()), sessions, roles


def test_login_redirect_carries_requested_path():
    assert login_redirect("/tickets") == "/login?redirect=%2Ftickets"
    assert login_redirect("") == "/login?redirect=%2F"


def test_anonymous_on_member_page_goes_to_login():
    outcome, _, roles = resolve(PagePolicy.MEMBER, token=None, path="/submit")
    assert outcome.kind == "redirect"
    assert outcome.state == GateState.ANONYMOUS
    assert outcome.location == "/login?redirect=%2Fsubmit"
    assert roles.calls == 0


def test_anonymous_on_public_page_sees_content():
    outcome, _, _ = resolve(PagePolicy.PUBLIC, token=None)
    assert outcome.kind == "content"
    assert outcome.state == GateState.ANONYMOUS
    assert outcome.user is None


def test_staff_on_public_page_goes_to_queue():
    outcome, _, _ = resolve(PagePolicy.PUBLIC, role="staff")
    assert outcome.kind == "redirect"
    assert outcome.state == GateState.STAFF
    assert outcome.location == "/staff"


def test_staff_on_staff_page_sees_content():
    outcome, _, _ = resolve(PagePolicy.STAFF_ONLY, role="staff", path="/staff")
    assert outcome.kind == "content"
    assert outcome.state == GateState.STAFF
    assert outcome.role == "staff"


def test_user_on_staff_page_goes_home():
    outcome, _, _ = resolve(PagePolicy.STAFF_ONLY, role="user", path="/staff")
    assert outcome.kind == "redirect"
    assert outcome.state == GateState.USER
    assert outcome.location == "/"


def test_missing_profile_counts_as_user():
    outcome, _, _ = resolve(PagePolicy.MEMBER, role=None, path="/tickets")
    assert outcome.kind == "content"
    assert outcome.state == GateState.USER
    assert outcome.user.id == "u-a"


def test_slow_role_lookup_renders_best_effort_content():
    outcome, _, roles = resolve(PagePolicy.STAFF_ONLY, role="staff", role_delay=5.0, role_timeout=0.05, path="/staff")
    assert outcome.kind == "content"
    assert outcome.state == GateState.UNKNOWN_ROLE
    assert outcome.role is None
    assert outcome.user.id == "u-a"
    assert roles.cancelled


def test_slow_session_check_counts_as_signed_out():
    sessions = FakeSessions(ALICE, delay=5.0)
    roles = FakeRoles("user")

    async def scenario():
        async with AuthGate(sessions, roles, PagePolicy.MEMBER, session_timeout=0.05) as gate:
            return await gate.resolve("tok", "/tickets")

    outcome = asyncio.run(scenario())
    assert outcome.kind == "redirect"
    assert outcome.state == GateState.ANONYMOUS
    assert outcome.location == "/login?redirect=%2Ftickets"
    assert roles.calls == 0


def test_sign_out_during_role_lookup_goes_to_login():
    sessions = FakeSessions(ALICE)
    roles = FakeRoles("user", delay=5.0)

    async def scenario():
        async with AuthGate(sessions, roles, PagePolicy.MEMBER, role_timeout=2.0) as gate:
            pending = asyncio.ensure_future(gate.resolve("tok", "/tickets"))
            await asyncio.sleep(0.05)
            assert gate.state == GateState.UNKNOWN_ROLE
            await sessions.publish(SessionEvent.SIGNED_OUT, ALICE)
            return await pending

    outcome = asyncio.run(scenario())
    assert outcome.state == GateState.ANONYMOUS
    assert outcome.kind == "redirect"
    assert outcome.location == "/login?redirect=%2Ftickets"
    assert roles.cancelled


def test_sign_out_of_another_user_is_ignored():
    sessions = FakeSessions(ALICE)
    roles = FakeRoles("user")

    async def scenario():
        async with AuthGate(sessions, roles, PagePolicy.MEMBER) as gate:
            await gate.resolve("tok", "/tickets")
            await sessions.publish(SessionEvent.SIGNED_OUT, AuthUser(id="u-b", email="b@uvm.edu"))
            return gate.outcome()

    outcome = asyncio.run(scenario())
    assert outcome.state == GateState.USER
    assert outcome.kind == "content"


def test_sign_out_without_a_user_is_ignored():
    sessions = FakeSessions(ALICE)
    roles = FakeRoles("user", delay=0.1)

    async def scenario():
        async with AuthGate(sessions, roles, PagePolicy.MEMBER, role_timeout=2.0) as gate:
            pending = asyncio.ensure_future(gate.resolve("tok", "/tickets"))
            await asyncio.sleep(0.02)
            await sessions.publish(SessionEvent.SIGNED_OUT, None)
            return await pending

    outcome = asyncio.run(scenario())
    assert outcome.state == GateState.USER
    assert outcome.kind == "content"
    assert outcome.user.id == "u-a"


def test_closed_gate_does_not_change_state():
    sessions = FakeSessions(ALICE)
    roles = FakeRoles("staff", delay=5.0)

    async def scenario():
        gate = AuthGate(sessions, roles, PagePolicy.PUBLIC, role_timeout=2.0)
        pending = asyncio.ensure_future(gate.resolve("tok", "/"))
        await asyncio.sleep(0.05)
        await gate.close()
        outcome = await pending
        await sessions.publish(SessionEvent.SIGNED_OUT, ALICE)
        return gate, outcome

    gate, outcome = asyncio.run(scenario())
    assert gate.closed
    assert roles.cancelled
    assert outcome.kind == "content"
    assert outcome.location is None
    assert gate.state == GateState.UNKNOWN_ROLE
    assert gate.role is None
    assert sessions.listeners == []


def test_context_manager_unsubscribes():
    outcome, sessions, _ = resolve(PagePolicy.MEMBER, role="user")
    assert outcome.state == GateState.USER
    assert sessions.listeners == []


def test_bounded_wait():
    async def value(delay, result):
        await asyncio.sleep(delay)
        return result

    assert asyncio.run(bounded_wait(value(0, 5), 1.0)) == (True, 5)

    async def too_slow():
        task = asyncio.ensure_future(value(5.0, 5))
        outcome = await bounded_wait(task, 0.05)
        await asyncio.sleep(0.01)
        return outcome, task.cancelled()

    outcome, cancelled = asyncio.run(too_slow())
    assert outcome == (False, None)
    assert cancelled
