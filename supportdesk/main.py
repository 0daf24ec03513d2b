import time
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from supportdesk.core.config import settings
from supportdesk.core.logging import setup_logging, request_id_ctx
from supportdesk.core.db import init_models
from supportdesk.core.redis import redis_manager
from supportdesk.api.router import api_router
from supportdesk.modules.auth.router import router as auth_router
from supportdesk.modules.auth.roles import role_cache_listener
from supportdesk.modules.auth.session import SessionContext
from supportdesk.modules.automation.bridge import WebhookBridge
from supportdesk.modules.pages.router import router as pages_router


setup_logging()
app = FastAPI(title=settings.APP_NAME)
logger = logging.getLogger(__name__)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    formatted_process_time = f"{process_time:.2f}ms"

    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {formatted_process_time}"
    )

    return response

# registered last so it runs first and the request log line carries the id
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    request_id_ctx.set(rid)
    response = await call_next(request)
    return response

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


@app.on_event("startup")
async def on_startup():
    await init_models()
    await redis_manager.connect()

    sessions = SessionContext(settings.AUTH_URL, settings.AUTH_ANON_KEY)
    await sessions.start()
    if redis_manager.enabled:
        sessions.subscribe(role_cache_listener(redis_manager))
    app.state.session_context = sessions

    app.state.webhook_bridge = WebhookBridge(settings.N8N_WEBHOOK_URL, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    if not settings.N8N_WEBHOOK_URL:
        logger.warning("N8N_WEBHOOK_URL is not set. Ticket notifications are disabled.")
    if not settings.N8N_WEBHOOK_SECRET:
        logger.warning("N8N_WEBHOOK_SECRET is not set. The inbound n8n webhook accepts unauthenticated calls.")

@app.on_event("shutdown")
async def on_shutdown():
    sessions = getattr(app.state, "session_context", None)
    if sessions:
        await sessions.close()
    await redis_manager.close()


app.include_router(auth_router, tags=["auth"])
app.include_router(api_router, prefix=settings.API_PREFIX)
app.include_router(pages_router, tags=["pages"])
