from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from .config import settings
from .base import Base

def build_engine(dsn: str):
    # aiosqlite connections are bound to the loop that opened them
    if dsn.startswith("sqlite"):
        return create_async_engine(dsn, poolclass=NullPool)
    return create_async_engine(dsn, pool_pre_ping=True)

engine = build_engine(settings.DATABASE_DSN)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

async def init_models():
    # In dev-only "create_all" mode, build the schema here; otherwise migrations own it.
    if settings.DB_MANAGE.lower() == "create_all":
        # register every table on Base.metadata
        from supportdesk.modules.users import models as _users  # noqa: F401
        from supportdesk.modules.tickets import models as _tickets  # noqa: F401
        from supportdesk.modules.events import models as _events  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
