from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from feeledger.core.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Local runs and tests; one shared connection is enough.
        return {"connect_args": {"check_same_thread": False}}
    # pool_pre_ping: drop connections the server closed while idle.
    # pool_recycle: retire connections after five minutes.
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(settings.database_url, echo=settings.debug, **_engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; routers pass it down to the services."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_models() -> None:
    """Create missing tables. Existing tables are left untouched."""
    import feeledger.core.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
