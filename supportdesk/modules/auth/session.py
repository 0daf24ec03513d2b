"""Process-wide session context over the hosted auth service.

One ``SessionContext`` is created at application startup and torn down at
shutdown. It verifies access tokens, talks to the auth service's REST API
for sign-in flows, and fans session-change events out to subscribers
(auth gates, the role cache).
"""
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from supportdesk.core.security import AuthUser, user_from_token

log = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


SessionListener = Callable[[SessionEvent, AuthUser | None], Awaitable[None] | None]


class AuthServiceError(Exception):
    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str | None
    expires_in: int | None
    user: AuthUser


def _user_from_payload(data: dict) -> AuthUser:
    meta = data.get("user_metadata") or {}
    return AuthUser(
        id=str(data["id"]),
        email=str(data.get("email") or ""),
        user_metadata=meta if isinstance(meta, dict) else {},
    )


def _error_message(resp: httpx.Response) -> tuple[str, str | None]:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("error_description")
        or body.get("msg")
        or body.get("message")
        or body.get("error")
        or f"Auth service returned {resp.status_code}"
    )
    code = body.get("error_code") or body.get("code") or body.get("error")
    return str(message), (str(code) if code is not None else None)


class SessionContext:
    def __init__(
        self,
        base_url: str,
        anon_key: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._listeners: list[SessionListener] = []

    # ---- Lifecycle ----
    async def start(self):
        if self._client is None:
            headers = {"accept": "application/json"}
            if self.anon_key:
                headers["apikey"] = self.anon_key
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/auth/v1",
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        log.info("Session context started (auth service %s)", self.base_url)

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._listeners.clear()
        log.info("Session context closed")

    # ---- Current user ----
    async def get_current_user(self, access_token: str | None) -> AuthUser | None:
        try:
            return user_from_token(access_token)
        except Exception:
            log.warning("Session check failed; treating as signed out", exc_info=True)
            return None

    # ---- Subscriptions ----
    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    async def publish(self, event: SessionEvent, user: AuthUser | None):
        for listener in list(self._listeners):
            try:
                result = listener(event, user)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception(f"Session listener failed for {event.value}")

    # ---- Auth service calls ----
    async def _request(self, method: str, path: str, *, json: dict | None = None, params: dict | None = None, token: str | None = None) -> Any:
        if self._client is None:
            await self.start()
        headers = {"authorization": f"Bearer {token}"} if token else None
        try:
            resp = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise AuthServiceError(f"Auth service unreachable: {e}") from e
        if resp.status_code >= 400:
            message, code = _error_message(resp)
            raise AuthServiceError(message, status_code=resp.status_code, code=code)
        if not resp.content:
            return {}
        return resp.json()

    def _session_from_payload(self, data: dict) -> AuthSession:
        if not data.get("access_token") or not isinstance(data.get("user"), dict):
            raise AuthServiceError("Auth service response did not include a session")
        return AuthSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            user=_user_from_payload(data["user"]),
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self._request("POST", "/token", params={"grant_type": "password"}, json={"email": email, "password": password})
        return self._session_from_payload(data)

    async def sign_up(self, email: str, password: str, name: str | None = None) -> AuthUser:
        data = await self._request("POST", "/signup", json={"email": email, "password": password, "data": {"name": name} if name else {}})
        # with email confirmation on, the auth service answers with the bare user
        payload = data.get("user") if isinstance(data.get("user"), dict) else data
        if not payload.get("id"):
            raise AuthServiceError("Auth service response did not include a user")
        return _user_from_payload(payload)

    async def exchange_code_for_session(self, code: str, code_verifier: str | None = None) -> AuthSession:
        body = {"auth_code": code}
        if code_verifier:
            body["code_verifier"] = code_verifier
        data = await self._request("POST", "/token", params={"grant_type": "pkce"}, json=body)
        return self._session_from_payload(data)

    async def verify_otp(self, token_hash: str, otp_type: str) -> AuthSession:
        data = await self._request("POST", "/verify", json={"type": otp_type, "token_hash": token_hash})
        return self._session_from_payload(data)

    async def sign_out(self, access_token: str):
        await self._request("POST", "/logout", token=access_token)
