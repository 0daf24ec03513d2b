# tests/conftest.py
import asyncio
import json
import os
import time

os.environ["ENV"] = "local"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///./supportdesk-test.db"
os.environ["REDIS_URL"] = ""
os.environ["N8N_WEBHOOK_URL"] = ""
os.environ["N8N_WEBHOOK_SECRET"] = ""
os.environ["N8N_CHAT_WEBHOOK_URL"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.core import db
from supportdesk.core.config import settings
from supportdesk.main import app
from supportdesk.modules.auth.session import SessionContext
from supportdesk.modules.automation.bridge import WebhookBridge
from supportdesk.modules.users.models import User

N8N_URL = "http://n8n.test/webhook/tickets"


def make_token(user_id, email, name=None):
    claims = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
        "user_metadata": {"name": name} if name else {},
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def bearer(user_id, email):
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


class FakeAuthService:
    """In-memory stand-in for the hosted auth service's REST API."""

    def __init__(self):
        self.accounts = {}
        self.codes = {}
        self.requests = []

    def add_account(self, email, password, user_id, name=None):
        user = {"id": user_id, "email": email, "user_metadata": {"name": name} if name else {}}
        self.accounts[email] = (password, user)
        return user

    def session_for(self, user):
        return {
            "access_token": make_token(user["id"], user["email"]),
            "refresh_token": f"refresh-{user['id']}",
            "expires_in": 3600,
            "token_type": "bearer",
            "user": user,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path
        grant = request.url.params.get("grant_type")
        self.requests.append((path, grant, body))

        if path == "/auth/v1/token" and grant == "password":
            account = self.accounts.get(body.get("email"))
            if not account or account[0] != body.get("password"):
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})
            return httpx.Response(200, json=self.session_for(account[1]))
        if path == "/auth/v1/token" and grant == "pkce":
            user = self.codes.get(body.get("auth_code"))
            if user is None:
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "invalid flow state"})
            return httpx.Response(200, json=self.session_for(user))
        if path == "/auth/v1/signup":
            if body.get("email") in self.accounts:
                return httpx.Response(422, json={"code": 422, "msg": "User already registered"})
            name = (body.get("data") or {}).get("name")
            user = self.add_account(body["email"], body["password"], f"user-{len(self.accounts) + 1}", name)
            return httpx.Response(200, json=user)
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        return httpx.Response(404, json={"msg": "not found"})


@pytest.fixture
def database(tmp_path, monkeypatch):
    engine = db.build_engine(f"sqlite+aiosqlite:///{tmp_path / 'supportdesk.db'}")
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession))
    asyncio.run(db.init_models())
    yield db.SessionLocal
    asyncio.run(engine.dispose())


@pytest.fixture
def add_rows(database):
    async def _add(objs):
        async with database() as s:
            s.add_all(objs)
            await s.commit()

    def _add_rows(*objs):
        asyncio.run(_add(list(objs)))
        return objs
    return _add_rows


@pytest.fixture
def make_user(add_rows):
    """Create a profile row and return auth headers for it."""
    def _make(user_id, email, role="user", name=None):
        add_rows(User(id=user_id, email=email, role=role, name=name, department="student"))
        return bearer(user_id, email)
    return _make


@pytest.fixture
def auth_service():
    return FakeAuthService()


@pytest.fixture
def webhook_calls():
    return []


@pytest.fixture
def client(database, auth_service, webhook_calls):
    def record(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    with TestClient(app) as c:
        app.state.session_context = SessionContext(settings.AUTH_URL, transport=httpx.MockTransport(auth_service.handler))
        app.state.webhook_bridge = WebhookBridge(N8N_URL, transport=httpx.MockTransport(record))
        yield c


@pytest.fixture
def auth_headers():
    """Auth headers for a signed-in user that has no profile row."""
    return bearer
