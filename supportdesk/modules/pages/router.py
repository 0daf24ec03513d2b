from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from supportdesk.core.security import token_from_request
from supportdesk.modules.auth.deps import get_role_resolver, get_session_context
from supportdesk.modules.auth.gate import AuthGate, GateOutcome, PagePolicy
from supportdesk.modules.auth.roles import RoleResolver
from supportdesk.modules.auth.session import SessionContext

router = APIRouter()

async def run_gate(request: Request, policy: PagePolicy, sessions: SessionContext, roles: RoleResolver) -> GateOutcome:
    async with AuthGate(sessions, roles, policy) as gate:
        return await gate.resolve(token_from_request(request), request.url.path)

def render(page: str, outcome: GateOutcome, **extra):
    if outcome.kind == "redirect":
        return RedirectResponse(outcome.location, status_code=status.HTTP_303_SEE_OTHER)
    user = outcome.user
    return JSONResponse({
        "page": page,
        "state": outcome.state.value,
        "user": {"id": user.id, "email": user.email, "name": user.display_name} if user else None,
        "role": outcome.role,
        **extra,
    })

@router.get("/")
async def home(request: Request, sessions: SessionContext = Depends(get_session_context), roles: RoleResolver = Depends(get_role_resolver)):
    return render("home", await run_gate(request, PagePolicy.PUBLIC, sessions, roles))

@router.get("/login")
async def login_page(
    request: Request,
    redirect: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    sessions: SessionContext = Depends(get_session_context),
    roles: RoleResolver = Depends(get_role_resolver),
):
    outcome = await run_gate(request, PagePolicy.PUBLIC, sessions, roles)
    return render("login", outcome, redirect=redirect, error=error, error_description=error_description)

@router.get("/submit")
async def submit_page(request: Request, sessions: SessionContext = Depends(get_session_context), roles: RoleResolver = Depends(get_role_resolver)):
    return render("submit", await run_gate(request, PagePolicy.MEMBER, sessions, roles))

@router.get("/tickets")
async def tickets_page(request: Request, sessions: SessionContext = Depends(get_session_context), roles: RoleResolver = Depends(get_role_resolver)):
    return render("tickets", await run_gate(request, PagePolicy.MEMBER, sessions, roles))

@router.get("/tickets/{ticket_id}")
async def ticket_detail_page(ticket_id: int, request: Request, sessions: SessionContext = Depends(get_session_context), roles: RoleResolver = Depends(get_role_resolver)):
    return render("ticket", await run_gate(request, PagePolicy.MEMBER, sessions, roles), ticket_id=ticket_id)

@router.get("/staff")
async def staff_page(request: Request, sessions: SessionContext = Depends(get_session_context), roles: RoleResolver = Depends(get_role_resolver)):
    return render("staff", await run_gate(request, PagePolicy.STAFF_ONLY, sessions, roles))
