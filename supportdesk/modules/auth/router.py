import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core.config import settings
from supportdesk.core.db import get_session
from supportdesk.core.security import AuthUser, token_from_request, user_from_token
from supportdesk.modules.auth.deps import get_session_context
from supportdesk.modules.auth.schemas import LoginRequest, SignupRequest, SessionOut, SessionUserOut, SignupOut
from supportdesk.modules.auth.session import AuthServiceError, AuthSession, SessionContext, SessionEvent
from supportdesk.modules.users.service import UserService

router = APIRouter()
logger = logging.getLogger(__name__)

CODE_VERIFIER_COOKIE = "sd-code-verifier"

def _site_origin(request: Request) -> str:
    return (settings.SITE_URL or str(request.base_url)).rstrip("/")

def _login_error(request: Request, error: str, description: str) -> RedirectResponse:
    query = urlencode({"error": error, "error_description": description})
    return RedirectResponse(f"{_site_origin(request)}/login?{query}", status_code=status.HTTP_303_SEE_OTHER)

def _set_session_cookies(response: Response, session: AuthSession):
    secure = settings.ENV == "prod"
    response.set_cookie(
        settings.ACCESS_TOKEN_COOKIE, session.access_token,
        max_age=session.expires_in, httponly=True, samesite="lax", secure=secure,
    )
    if session.refresh_token:
        response.set_cookie(
            settings.REFRESH_TOKEN_COOKIE, session.refresh_token,
            httponly=True, samesite="lax", secure=secure,
        )

def _clear_session_cookies(response: Response):
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE)
    response.delete_cookie(settings.REFRESH_TOKEN_COOKIE)

async def _provision_quietly(db: AsyncSession, user: AuthUser, name: str | None = None):
    # sign-in must not fail because the profile row could not be written
    try:
        _, created = await UserService(db).provision(user, name=name)
        if created:
            logger.info(f"Created profile for {user.email or user.id}")
    except Exception:
        await db.rollback()
        logger.error(f"Error creating user profile for {user.id}", exc_info=True)

@router.get("/auth/callback")
async def auth_callback(
    request: Request,
    code: str | None = None,
    token_hash: str | None = None,
    type: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    sessions: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
):
    """
    Landing point for the identity provider. Exchanges a PKCE code (or an
    email-link token hash) for a session, provisions the profile on first
    login, then sends the browser to the site root.
    """
    logger.info(f"Auth callback called: code={'present' if code else 'missing'} error={error}")

    if error:
        logger.error(f"Auth error from provider: {error} {error_description}")
        return _login_error(request, error, error_description or "Authentication failed")

    if not code and not (token_hash and type):
        return _login_error(request, "no_code", "No authentication code provided")

    try:
        if code:
            session = await sessions.exchange_code_for_session(code, request.cookies.get(CODE_VERIFIER_COOKIE))
        else:
            session = await sessions.verify_otp(token_hash, type)
    except AuthServiceError as e:
        logger.error(f"Error exchanging code for session: {e.message}")
        return _login_error(request, "exchange_failed", e.message or "Failed to exchange code for session")
    except Exception as e:
        logger.error("Unexpected error in auth callback", exc_info=True)
        return _login_error(request, "unexpected_error", str(e) or "An unexpected error occurred")

    logger.info(f"User authenticated successfully: {session.user.email} ID: {session.user.id}")
    await _provision_quietly(db, session.user)
    await sessions.publish(SessionEvent.SIGNED_IN, session.user)

    response = RedirectResponse(f"{_site_origin(request)}/", status_code=status.HTTP_303_SEE_OTHER)
    _set_session_cookies(response, session)
    response.delete_cookie(CODE_VERIFIER_COOKIE)
    return response

@router.post("/auth/login", response_model=SessionOut)
async def login(
    payload: LoginRequest,
    response: Response,
    sessions: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
):
    if len(payload.password) < settings.MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")
    try:
        session = await sessions.sign_in_with_password(payload.email, payload.password)
    except AuthServiceError as e:
        logger.info(f"Sign-in failed for {payload.email}: {e.message}")
        raise HTTPException(status_code=401, detail=e.message or "Invalid email or password. Please try again.")

    await _provision_quietly(db, session.user)
    await sessions.publish(SessionEvent.SIGNED_IN, session.user)
    _set_session_cookies(response, session)
    return SessionOut(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        user=SessionUserOut(id=session.user.id, email=session.user.email),
    )

@router.post("/auth/signup", response_model=SignupOut, status_code=status.HTTP_201_CREATED)
async def signup(
    payload: SignupRequest,
    sessions: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_session),
):
    email = payload.email.strip().lower()
    if not email.endswith(f"@{settings.ALLOWED_SIGNUP_DOMAIN}"):
        raise HTTPException(status_code=400, detail=f"Please use a @{settings.ALLOWED_SIGNUP_DOMAIN} email address")
    if len(payload.password) < settings.MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")
    if payload.password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    name = (payload.name or "").strip() or email.split("@")[0]
    try:
        user = await sessions.sign_up(email, payload.password, name=name)
    except AuthServiceError as e:
        logger.info(f"Sign-up failed for {email}: {e.message}")
        raise HTTPException(status_code=400, detail=e.message or "Failed to create account. Please try again.")

    await _provision_quietly(db, user, name=name)
    return SignupOut(message="Account created successfully", user=SessionUserOut(id=user.id, email=user.email))

@router.post("/auth/logout")
async def logout(
    request: Request,
    response: Response,
    sessions: SessionContext = Depends(get_session_context),
):
    token = token_from_request(request)
    user = user_from_token(token)
    if token:
        try:
            await sessions.sign_out(token)
        except AuthServiceError as e:
            logger.warning(f"Remote sign-out failed: {e.message}")
    _clear_session_cookies(response)
    if user is not None:
        await sessions.publish(SessionEvent.SIGNED_OUT, user)
    return {"status": "signed_out"}
